#!/usr/bin/env python3
"""Keep a synchronized clock against a time server and report it.

Usage examples:
  - timesync-client
  - timesync-client --url ws://127.0.0.1:4200 --duration 60
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

from timesync.config.settings import settings
from timesync.sync.engine import SyncConfig, SyncEngine, SyncStatus
from timesync.sync.probe import SyncEstimate
from timesync.utils.logging_config import setup_logging


def format_ms(ms: float) -> str:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat(timespec="milliseconds")


async def run_client(url: str, duration: Optional[float], report_interval: float, log_level: str) -> None:
    logger = setup_logging(level=log_level, component="client")
    engine = SyncEngine(SyncConfig.from_settings(settings))

    def on_sync(estimate: SyncEstimate) -> None:
        logger.info("synced", offset_ms=estimate.offset, rtt_ms=estimate.rtt)

    def on_status(status: SyncStatus, detail: Any = None) -> None:
        logger.info("status", status=status.value, detail=str(detail) if detail else None)

    engine.connect(url, on_sync=on_sync, on_status=on_status)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + duration if duration else None
    try:
        while deadline is None or loop.time() < deadline:
            await asyncio.sleep(report_interval)
            logger.info(
                "server_time",
                server_time=format_ms(engine.get_server_time()),
                synced=engine.is_synced(),
                offset_ms=engine.get_offset(),
            )
    finally:
        engine.disconnect()


def main() -> None:
    parser = argparse.ArgumentParser(description="Synchronize with a time server")
    parser.add_argument("--url", default=settings.URL, help="Time server WebSocket URL (default: %(default)s)")
    parser.add_argument("--duration", type=float, default=None, help="Seconds to run (default: until Ctrl+C)")
    parser.add_argument("--report-interval", type=float, default=5.0, help="Seconds between time reports")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level (default: %(default)s)")
    args = parser.parse_args()

    try:
        asyncio.run(run_client(args.url, args.duration, args.report_interval, args.log_level))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
