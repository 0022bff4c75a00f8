"""Health check endpoints for the RSM News API.

/health is the liveness probe; /health/db checks the schema.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rsmnews.api.dependencies import get_services
from rsmnews.config import APP_VERSION, get_google_api_key, get_google_cloud_project
from rsmnews.infrastructure.database import get_db_connection
from rsmnews.infrastructure.database_schema import validate_schema
from rsmnews.llm.gemini import llm_credentials_present
from rsmnews.observability.logging import get_logger
from rsmnews.services import NewsBotServices

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health")
async def health_check(services: NewsBotServices = Depends(get_services)) -> dict[str, Any]:
    """Health check endpoint.

    Returns service status, version, credential readiness for Gemini (only
    checks presence, no API call) and the chat channel state.
    """
    has_api_key = bool(get_google_api_key())
    has_project = bool(get_google_cloud_project())

    return {
        "status": "healthy",
        "service": "RSM News API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {
            "ready": llm_credentials_present(),
            "google_api_key": has_api_key,
            "google_cloud_project": has_project,
        },
        "channel": {"connected": services.transport.is_connected()},
    }


@router.get("/health/db")
def database_health() -> JSONResponse:
    try:
        with get_db_connection() as conn:
            validate_schema(conn)
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error("Database health check failed: %s", e)
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unavailable"})

    return JSONResponse(content={"status": "healthy", "database": "ok"})
