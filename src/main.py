"""Runtime entry point for the trading cockpit."""

from __future__ import annotations

import asyncio
import sys

import structlog
import uvicorn

from src.api.operator import create_app
from src.cockpit import build_cockpit
from src.config.settings import load_settings
from src.monitoring import Metrics, configure_logging

log = structlog.get_logger(__name__)


async def main_async() -> None:
    settings = load_settings()
    configure_logging(settings.monitoring.log_level, settings.storage.logs_path, settings.monitoring)
    if sys.version_info < (3, 10):
        log.warning(
            "python_version_unverified",
            version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        )
    problems = settings.validate_for_trading()
    if problems:
        # Read-only feeds still work; order placement reports the missing config.
        log.warning("trading_not_configured", problems=problems)

    metrics = Metrics()
    if settings.monitoring.metrics_enabled:
        metrics.start(settings.monitoring.metrics_port)
        log.info("metrics_server_started", port=settings.monitoring.metrics_port)

    cockpit = build_cockpit(settings, metrics=metrics)
    config = uvicorn.Config(
        create_app(cockpit, run_feeds=True),
        host=settings.monitoring.api_host,
        port=settings.monitoring.api_port,
        log_level=settings.monitoring.log_level.lower(),
    )
    server = uvicorn.Server(config)
    log.info(
        "cockpit_starting",
        host=settings.monitoring.api_host,
        port=settings.monitoring.api_port,
        testnet=settings.hyperliquid.use_testnet,
        storage_backend=settings.storage.backend,
    )
    try:
        await server.serve()
    finally:
        log.info("cockpit_stopped")


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
