#!/usr/bin/env python3
"""Cache entrypoint — wires the definition source and runs the refresher.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from alertcache.core.config import load_settings
from alertcache.core.logging import setup_logging
from alertcache.factory import create_cache_stack

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the refresher and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    logger.info(
        "alert_cache_starting",
        source=settings.source.kind,
        base_url=settings.source.base_url,
        refresh_interval_ms=settings.refresher.refresh_interval_ms,
    )

    index, refresher = create_cache_stack(settings)
    source = refresher.source
    await source.connect()
    await refresher.start()

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("alert_cache_shutting_down")
    await refresher.stop()
    await source.close()

    logger.info(
        "alert_cache_stopped",
        passes=refresher.pass_count,
        errors=refresher.error_count,
        cached=len(index),
        schedules=len(index.schedule_expressions()),
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the alert definitions cache refresher.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
