"""
Space Weather Monitor

Consumers of the telemetry core.

- config.py   - MonitorConfig from SWX_* environment variables
- logger.py   - Console/file logging setup
- alerts.py   - Threshold evaluation of a snapshot
- report.py   - Console status report
- service.py  - MonitorService wiring caches, evaluator and store
- api/        - FastAPI application
"""
