import uvicorn

from monitor.config import MonitorConfig
from monitor.logger import setup_logger

if __name__ == "__main__":
    config = MonitorConfig.from_env()
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    print("Starting Space Weather Monitor API...")
    print(f"Status:  http://localhost:{config.port}/api/status")
    print(f"Alerts:  http://localhost:{config.port}/api/alerts")
    print(f"Docs:    http://localhost:{config.port}/docs")

    uvicorn.run(
        "monitor.api.server:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower()
    )
