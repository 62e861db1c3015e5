"""
Space weather extraction entry point.

Usage:
    python run_extraction.py            # one cycle, then exit
    python run_extraction.py --cron     # poll every SWX_POLL_MINUTES (default 30)
"""
import argparse
import asyncio
from datetime import datetime, timezone

from telemetry.errors import ConfigError, DataUnavailable
from monitor.config import MonitorConfig
from monitor.logger import setup_logger
from monitor.report import format_report
from monitor.service import MonitorService


async def run_cycle(service: MonitorService, force: bool = False) -> bool:
    print(f"\n[{datetime.now(timezone.utc).isoformat()}] Starting data extraction...")
    if force:
        service.snapshot_cache.invalidate()

    try:
        snapshot, evaluation = await service.run_cycle()
    except DataUnavailable as e:
        print(f"[ERROR] Extraction cycle failed: {e}")
        return False

    saved_to = str(service.store.latest_path) if service.store else None
    print(format_report(snapshot, evaluation, saved_to=saved_to))
    return True


async def run(config: MonitorConfig, cron: bool, force: bool) -> int:
    service = MonitorService.from_config(config)

    mode = f"{config.poll_interval_minutes:g}-minute scheduled polling" if cron else "One-shot fetch"
    print("=" * 64)
    print("  NOAA Space Weather Live Extraction")
    print(f"  Mode: {mode}")
    print(f"  Feeds: {service.registry.enabled_count}")
    print("=" * 64)

    ok = await run_cycle(service, force=force)
    if not cron:
        return 0 if ok else 1

    print(f"[*] Next fetch in {config.poll_interval_minutes:g} minutes. Press Ctrl+C to stop.")
    while True:
        await asyncio.sleep(config.poll_interval_seconds)
        await run_cycle(service)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="NOAA Space Weather Extraction")
    parser.add_argument("--cron", action="store_true", help="Keep running and poll on an interval.")
    parser.add_argument("--force", action="store_true", help="Ignore a fresh persisted snapshot and fetch now.")
    args = parser.parse_args()

    try:
        config = MonitorConfig.from_env()
    except ConfigError as e:
        raise SystemExit(f"[!] {e}")

    setup_logger(level=config.log_level, log_dir=config.log_dir)

    try:
        raise SystemExit(asyncio.run(run(config, cron=args.cron, force=args.force)))
    except KeyboardInterrupt:
        print("\nExtraction Stopped.")
