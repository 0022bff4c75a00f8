"""
WhatsApp Cloud API webhook payload handling.

Payload shape (only the parts we read):

    {"entry": [{"changes": [{"value": {
        "contacts": [{"wa_id": "5491155550000"}],
        "messages": [{"from": "5491155550000", "id": "wamid...",
                      "type": "text", "text": {"body": "suscribir"}}]
    }}]}]}

Status callbacks (delivered/read receipts) carry no "messages" and are ignored,
as are non-text messages and redeliveries of a message id already seen.
"""

from __future__ import annotations

from typing import Any

from rsmnews.channel.commands import InboundMessage
from rsmnews.infrastructure.idempotency import is_duplicate, message_key
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter

logger = get_logger(__name__)


def verify_subscription(mode: str | None, token: str | None, expected_token: str | None) -> bool:
    """Webhook verification handshake check."""
    return mode == "subscribe" and bool(expected_token) and token == expected_token


def parse_webhook_payload(payload: dict[str, Any]) -> list[InboundMessage]:
    """Extract new text messages from a webhook delivery."""
    inbound: list[InboundMessage] = []

    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            contact_ids = [c.get("wa_id") for c in value.get("contacts") or [] if c.get("wa_id")]

            for message in value.get("messages") or []:
                if message.get("type") != "text":
                    counter("webhook.ignored_non_text")
                    continue

                sender = message.get("from") or ""
                text = ((message.get("text") or {}).get("body") or "").strip()
                if not sender or not text:
                    counter("webhook.ignored_empty")
                    continue

                message_id = message.get("id")
                if message_id:
                    if is_duplicate(message_key(message_id, sender)):
                        logger.info("Skipping redelivered message %s", message_id)
                        continue

                alternate_id = next((wa_id for wa_id in contact_ids if wa_id != sender), None)
                inbound.append(
                    InboundMessage(
                        sender=sender,
                        text=text,
                        alternate_id=alternate_id,
                        message_id=message_id,
                    )
                )

    counter("webhook.messages", len(inbound))
    return inbound
