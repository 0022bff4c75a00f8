"""
Subscriber API endpoints for the web form.

Subscribe and unsubscribe answer immediately; the WhatsApp confirmation is sent
afterwards as a background task and its failure never affects the response.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rsmnews.api.dependencies import get_services
from rsmnews.channel import messages
from rsmnews.channel.outbound import OutboundQueue
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter
from rsmnews.recipients.models import normalize_phone
from rsmnews.services import NewsBotServices

router = APIRouter(prefix="/api", tags=["subscribers"])
logger = get_logger(__name__)


# ============================================================================
# Request Models
# ============================================================================


class SubscribeRequest(BaseModel):
    phone: str | None = None
    email: str | None = None


class UnsubscribeRequest(BaseModel):
    phone: str | None = None


def _phone_required() -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": "Phone number required"})


async def send_confirmation(outbound: OutboundQueue, phone: str, text: str) -> None:
    """Best-effort WhatsApp confirmation."""
    try:
        await outbound.send(phone, text)
        logger.info("WhatsApp confirmation sent to %s", phone)
    except Exception as e:
        counter("api.confirmation_failed")
        logger.warning("Could not send WhatsApp confirmation to %s: %s", phone, e)


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/subscribe", response_model=None)
async def subscribe(
    request: SubscribeRequest,
    background_tasks: BackgroundTasks,
    services: NewsBotServices = Depends(get_services),
) -> dict[str, Any] | JSONResponse:
    phone = normalize_phone(request.phone)
    if not phone:
        return _phone_required()

    try:
        recipient = await asyncio.to_thread(services.recipients.upsert, phone, email=request.email or None)
    except Exception as e:
        logger.error("Error subscribing %s: %s", phone, e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to subscribe"})

    background_tasks.add_task(send_confirmation, services.outbound, phone, messages.WEB_SUBSCRIBED)
    counter("api.subscribed")

    return {
        "success": True,
        "message": "Successfully subscribed! You will receive a confirmation on WhatsApp.",
        "user": {"phone": recipient.phone, "subscribed": recipient.subscribed},
    }


@router.post("/unsubscribe", response_model=None)
async def unsubscribe(
    request: UnsubscribeRequest,
    background_tasks: BackgroundTasks,
    services: NewsBotServices = Depends(get_services),
) -> dict[str, Any] | JSONResponse:
    phone = normalize_phone(request.phone)
    if not phone:
        return _phone_required()

    try:
        deleted = await asyncio.to_thread(services.recipients.delete, phone)
    except Exception as e:
        logger.error("Error unsubscribing %s: %s", phone, e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to unsubscribe"})

    if deleted:
        background_tasks.add_task(send_confirmation, services.outbound, phone, messages.WEB_UNSUBSCRIBED)

    return {"success": True, "message": "Successfully unsubscribed"}


@router.get("/stats", response_model=None)
async def stats(services: NewsBotServices = Depends(get_services)) -> dict[str, Any] | JSONResponse:
    try:
        result = await asyncio.to_thread(services.recipients.stats)
    except Exception as e:
        logger.error("Error getting stats: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to get stats"})

    return {
        "success": True,
        "stats": {
            "totalUsers": result.total_users,
            "activeSubscribers": result.active_subscribers,
            "paidUsers": result.paid_users,
            "freeUsers": result.free_users,
        },
    }
