from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal

import httpx
import structlog

from . import __version__
from .config import DEFAULT_CONFIG_PATH, WebhooksConfig, load_config
from .errors import ConfigurationError
from .runner import QueryRunner
from .scheduler import QueryScheduler
from .state import ConditionState


logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, str(level).upper(), logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    # Query headers may carry credentials.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def serve(config: WebhooksConfig, stop_requested: asyncio.Event | None = None) -> None:
    """Run every configured query until SIGINT/SIGTERM or until stop_requested is set."""
    if stop_requested is None:
        stop_requested = asyncio.Event()

    state = ConditionState()
    async with httpx.AsyncClient(timeout=config.http_timeout_seconds) as client:
        runners = [QueryRunner(query, client=client, state=state) for query in config.queries]
        scheduler = QueryScheduler(runners)

        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop_requested.set)
                installed.append(sig)

        await scheduler.start()
        try:
            await stop_requested.wait()
            logger.info("shutdown_requested")
        finally:
            await scheduler.stop()
            for sig in installed:
                loop.remove_signal_handler(sig)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="jsonwebhooks",
        description="Periodically fetch JSON data from URLs and send webhooks when conditions change.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-c",
        "--config",
        default=os.getenv("JSONWEBHOOKS_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to the configuration file (JSON or YAML)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (INFO, WARNING, ...); overrides the configuration file",
    )
    parser.add_argument("--check", action="store_true", help="Validate the configuration and exit")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))
        logger.error("configuration_error", error=str(e), config=args.config)
        return 1

    configure_logging(args.log_level or config.log_level)

    for query in config.queries:
        logger.info(
            "query_configured",
            query=query.name,
            interval_ms=query.interval,
            webhook_method=query.webhook_method,
            resend=query.resend,
            invert=query.invert,
        )

    if args.check:
        logger.info("configuration_valid", query_count=len(config.queries))
        return 0

    logger.info("configuration valid, starting", query_count=len(config.queries))
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        pass
    return 0
