"""
ONPOST Analytics — Application Entrypoint

Configures structlog, optionally connects the lease database, and either
serves the cron trigger or performs a single analytics run.

Run via:
    python -m src.main            # serve POST /api/cron/analytics
    python -m src.main --once     # one run, JSON report on stdout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

import structlog
import uvicorn
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from src.api.app import create_app
from src.config import settings
from src.pipeline.orchestrator import make_runner


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # stdlib logging carries uvicorn, httpx, and sqlalchemy output
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


async def create_db_engine() -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create the async engine and session factory for the lease table.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    logger.info("database_engine_initializing")

    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        await session.execute(text("SELECT 1"))

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main(once: bool = False, host: str | None = None, port: int | None = None) -> int:
    _configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("onpost_analytics_startup", version=settings.ANALYTICS_VERSION, once=once)

    if not settings.FORUMS_API_KEY:
        logger.warning("config_forums_api_key_missing", note="using empty API key")
    if not settings.ANTHROPIC_API_KEY:
        logger.warning("config_anthropic_api_key_missing", note="AI fallback and narratives disabled")
    if not settings.CRON_SECRET and not once:
        logger.warning("config_cron_secret_missing", note="every trigger will be rejected")

    engine = None
    session_factory = None
    if settings.DATABASE_URL:
        try:
            engine, session_factory = await create_db_engine()
        except Exception as e:
            logger.error(
                "database_engine_creation_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
    else:
        logger.info("lease_store_in_memory")

    runner = make_runner(session_factory)

    try:
        if once:
            report = await runner()
            print(json.dumps(report.to_wire(), indent=2))
            return 0 if report.success else 1

        config = uvicorn.Config(
            create_app(runner),
            host=host or settings.API_HOST,
            port=port or settings.API_PORT,
            log_config=None,
        )
        await uvicorn.Server(config).serve()
        return 0
    finally:
        if engine is not None:
            await engine.dispose()
        logger.info("onpost_analytics_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ONPOST market analytics job")
    parser.add_argument("--once", action="store_true", help="perform one run and exit")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = _parse_args()
    sys.exit(asyncio.run(main(once=args.once, host=args.host, port=args.port)))
