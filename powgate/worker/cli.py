"""CLI entry point for the standalone reaper worker."""

from __future__ import annotations

import asyncio
import signal

import structlog

from powgate.config.logging import setup_logging
from powgate.config.settings import get_settings
from powgate.web.dependencies import build_reaper

logger = structlog.get_logger(__name__)


async def _serve() -> None:
    reaper = build_reaper()
    loop = asyncio.get_running_loop()

    # Graceful shutdown on SIGTERM/SIGINT
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, reaper.stop)

    await reaper.run()


def main() -> None:
    """Start the reaper loop against the configured stores."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=True, service="powgate-reaper")
    if not settings.use_database:
        logger.warning("reaper_in_memory_stores", detail="nothing shared to sweep")
    asyncio.run(_serve())


if __name__ == "__main__":
    main()
