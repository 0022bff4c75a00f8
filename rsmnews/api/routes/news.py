"""News API: the current cache entry for the web frontend."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rsmnews.api.dependencies import get_services
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter
from rsmnews.services import NewsBotServices

router = APIRouter(prefix="/api", tags=["news"])
logger = get_logger(__name__)


@router.get("/summary", response_model=None)
async def get_summary(services: NewsBotServices = Depends(get_services)) -> dict[str, Any] | JSONResponse:
    """
    Current articles, straight from the cache.

    Only an empty cache triggers a refresh; a stale entry is served as is.
    """
    try:
        entry = await services.news.get_current()
    except Exception as e:
        counter("api.summary.error")
        logger.error("Error getting news summary: %s", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to get news summary"},
        )

    return {
        "success": True,
        "articles": [article.to_dict() for article in entry.articles],
        "cachedAt": entry.created_at.isoformat(),
        "timestamp": datetime.now(UTC).isoformat(),
    }
