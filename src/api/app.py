"""Cron trigger surface for the analytics run."""

from __future__ import annotations

import hmac
from typing import Awaitable, Callable, Optional

import structlog
from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse

from src.config import settings
from src.models.report import RunReport
from src.pipeline.orchestrator import make_runner

logger = structlog.get_logger(__name__)

Runner = Callable[[], Awaitable[RunReport]]


def is_authorized(authorization: Optional[str], secret: str) -> bool:
    """Bearer token must equal the shared secret. An empty secret admits nobody."""
    if not secret or not authorization:
        return False
    expected = f"Bearer {secret}"
    return hmac.compare_digest(authorization.encode(), expected.encode())


def create_app(
    run_analytics: Optional[Runner] = None,
    cron_secret: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(title="ONPOST Analytics", version="1.0.0")
    runner = run_analytics or make_runner()

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok", "version": settings.ANALYTICS_VERSION}

    @app.post("/api/cron/analytics")
    async def cron_analytics(authorization: Optional[str] = Header(default=None)) -> JSONResponse:
        secret = cron_secret if cron_secret is not None else settings.CRON_SECRET
        if not is_authorized(authorization, secret):
            logger.warning("cron_unauthorized")
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        report = await runner()
        if not report.success:
            return JSONResponse(
                {"error": "Cron job failed", "details": report.details or "Unknown"},
                status_code=500,
            )
        return JSONResponse(report.to_wire())

    return app
