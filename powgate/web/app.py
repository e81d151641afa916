"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from powgate.config.logging import setup_logging
from powgate.config.settings import get_settings
from powgate.exceptions import PowGateError
from powgate.web.dependencies import build_reaper
from powgate.web.middleware import RequestIDMiddleware
from powgate.web.routes.pow import router as pow_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Sweep stale gate data at startup, then keep the reaper running in the background."""
    settings = get_settings()
    if settings.use_database:
        from powgate.storage.database import init_db

        await init_db()

    reaper = build_reaper()
    try:
        await reaper.run_once()
    except Exception as exc:
        logger.warning("startup_cleanup_failed", error=str(exc))

    task: asyncio.Task[None] | None = None
    if settings.reaper_enabled:
        task = asyncio.create_task(reaper.run(), name="powgate-reaper")
    try:
        yield
    finally:
        reaper.stop()
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


async def gate_error_handler(request: Request, exc: PowGateError) -> JSONResponse:
    """Map gate errors to their status code with a code-only body."""
    if exc.status_code >= 500:
        logger.error("gate_request_failed", path=request.url.path, error=exc.error_code)
    else:
        logger.warning("gate_request_rejected", path=request.url.path, error=exc.error_code)
    headers = None
    if exc.status_code == 429:
        headers = {"Retry-After": str(get_settings().pow_rate_limit_window_seconds)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.error_code},
        headers=headers,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    app = FastAPI(
        title="powgate",
        description="Proof-of-work gate in front of a protected application",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(PowGateError, gate_error_handler)  # type: ignore[arg-type]

    # Middleware: the last one added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(pow_router)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        from powgate.web.health import check_health

        return await check_health()

    logger.info("app_created")
    return app
