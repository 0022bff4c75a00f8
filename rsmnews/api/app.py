"""FastAPI server for RSM News"""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rsmnews.api.middleware.rate_limit import RateLimitMiddleware
from rsmnews.api.routes.health import router as health_router
from rsmnews.api.routes.news import router as news_router
from rsmnews.api.routes.subscribers import router as subscribers_router
from rsmnews.api.routes.webhook import router as webhook_router
from rsmnews.config import API_HOST, API_PORT, APP_VERSION, FRONTEND_URL, is_development
from rsmnews.infrastructure.database import init_database
from rsmnews.jobs.scheduler import build_scheduler, start_jobs
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter, log_event
from rsmnews.services import NewsBotServices, build_services

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


def _init_database() -> None:
    try:
        logger.info("Initializing database schema...")
        init_database()
        logger.info("Database initialization complete")
    except sqlite3.OperationalError as e:
        logger.critical("Database schema error: %s", e)
        raise RuntimeError(f"Database initialization failed: {e}") from e


def create_app(services: NewsBotServices | None = None, run_jobs: bool = True) -> FastAPI:
    """
    Build the application.

    Args:
        services: Prebuilt service container (tests); built at start-up when None
        run_jobs: Connect the channel and start the scheduler at start-up
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        _init_database()
        app.state.services = services or build_services()
        scheduler = None

        if run_jobs:
            connected = await asyncio.to_thread(app.state.services.transport.connect)
            if not connected:
                logger.warning("Chat channel not connected; daily digest will be skipped")
            scheduler = build_scheduler(app.state.services.news, app.state.services.digest_sender)
            await start_jobs(scheduler, app.state.services.news, app.state.services.digest_sender)

        log_event("api.startup", service="rsmnews", version=APP_VERSION, jobs=run_jobs)
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()
            log_event("api.shutdown", service="rsmnews")

    app = FastAPI(title="RSM News API", version=APP_VERSION, lifespan=lifespan)

    # Custom validation error handler to prevent information leakage
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        counter("api.validation_errors")

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "error": "Invalid request format. Please check your request and try again.",
                "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
            },
        )

    # CORS - the web frontend only
    allowed_origins = [FRONTEND_URL]
    if is_development():
        allowed_origins.extend(["http://localhost:3000", "http://127.0.0.1:3000"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # Subscription endpoints send WhatsApp messages, limit them per IP
    app.add_middleware(RateLimitMiddleware)

    app.include_router(health_router)
    app.include_router(news_router)
    app.include_router(subscribers_router)
    app.include_router(webhook_router)

    @app.get("/")
    def root() -> dict[str, Any]:
        return {
            "service": "RSM News API",
            "version": APP_VERSION,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "summary": "/api/summary",
                "subscribe": "/api/subscribe",
                "unsubscribe": "/api/unsubscribe",
                "stats": "/api/stats",
                "whatsapp_webhook": "/webhooks/whatsapp",
            },
        }

    return app


app = create_app()


def main() -> None:
    """Console entry point: rsmnews-api"""
    uvicorn.run("rsmnews.api.app:app", host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
