"""
WhatsApp Cloud API webhook.

GET answers Meta's verification handshake. POST receives message
notifications; commands are handled after the 200 response so the platform
does not redeliver while a reply is being produced.
"""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from rsmnews.api.dependencies import get_services
from rsmnews.config import get_whatsapp_verify_token
from rsmnews.channel.commands import CommandDispatcher, InboundMessage
from rsmnews.channel.inbound import parse_webhook_payload, verify_subscription
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter
from rsmnews.services import NewsBotServices

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = get_logger(__name__)


async def dispatch_messages(dispatcher: CommandDispatcher, inbound: list[InboundMessage]) -> None:
    """Handle a batch concurrently; the dispatcher serializes per sender."""
    results = await asyncio.gather(
        *(dispatcher.handle(message) for message in inbound),
        return_exceptions=True,
    )
    for message, result in zip(inbound, results, strict=True):
        if isinstance(result, BaseException):
            counter("webhook.dispatch_failed")
            logger.error("Failed to handle message from %s: %s", message.sender, result)


@router.get("/whatsapp", response_model=None)
def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
) -> PlainTextResponse | JSONResponse:
    if verify_subscription(mode, token, get_whatsapp_verify_token()):
        logger.info("WhatsApp webhook verified")
        return PlainTextResponse(challenge or "")

    counter("webhook.verify_rejected")
    logger.warning("WhatsApp webhook verification rejected")
    return JSONResponse(status_code=403, content={"detail": "Verification failed"})


@router.post("/whatsapp", response_model=None)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: NewsBotServices = Depends(get_services),
) -> dict[str, str] | JSONResponse:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        counter("webhook.invalid_json")
        return JSONResponse(status_code=400, content={"detail": "Invalid JSON"})

    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"detail": "Invalid payload"})

    inbound = parse_webhook_payload(payload)
    if inbound:
        background_tasks.add_task(dispatch_messages, services.dispatcher, inbound)

    return {"status": "ok"}
