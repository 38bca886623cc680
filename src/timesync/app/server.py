#!/usr/bin/env python3
"""Run the reference echo responder.

Usage examples:
  - timesync-server
  - timesync-server --host 127.0.0.1 --port 4200
"""

from __future__ import annotations

import argparse

import uvicorn

from timesync.config.settings import settings
from timesync.utils.logging_config import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the time sync echo responder")
    parser.add_argument("--host", default=settings.HOST, help=f"Bind address (default: {settings.HOST})")
    parser.add_argument("--port", type=int, default=settings.PORT, help=f"Listen port (default: {settings.PORT})")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level (default: %(default)s)")
    args = parser.parse_args()

    logger = setup_logging(level=args.log_level, component="responder")
    logger.info("responder_starting", http=f"http://{args.host}:{args.port}", ws=f"ws://{args.host}:{args.port}")

    from timesync.api.responder import app

    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower(), reload=False)


if __name__ == "__main__":
    main()
