"""
Outbound message queue.

Every message leaving the app (daily digest, command replies, web subscription
confirmations) goes through OutboundQueue.send. Sends to one destination never
overlap and are spaced by the post-send delay, whichever caller issued them;
different destinations do not wait on each other.
"""

from __future__ import annotations

import asyncio

from rsmnews.channel.transport import ChannelTransport
from rsmnews.config import CHANNEL_MAX_MESSAGE_CHARS, CHANNEL_POST_SEND_DELAY_SECONDS
from rsmnews.infrastructure.locks import KeyedLock
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter

logger = get_logger(__name__)

TRUNCATION_NOTICE = "\n\n...\n\nMensaje truncado por longitud."
TRUNCATED_BODY_CHARS = 3950


def truncate_message(text: str, max_chars: int = CHANNEL_MAX_MESSAGE_CHARS) -> str:
    """Cut overlong text and append the truncation notice."""
    if len(text) <= max_chars:
        return text
    counter("channel.truncated")
    return text[:TRUNCATED_BODY_CHARS] + TRUNCATION_NOTICE


class OutboundQueue:
    def __init__(
        self,
        transport: ChannelTransport,
        post_send_delay: float = CHANNEL_POST_SEND_DELAY_SECONDS,
    ):
        self.transport = transport
        self.post_send_delay = post_send_delay
        self._locks = KeyedLock("outbound")

    def is_connected(self) -> bool:
        return self.transport.is_connected()

    async def send(self, destination: str, text: str) -> None:
        """
        Send text to destination, one message per destination at a time.

        The destination stays reserved for post_send_delay after a successful
        send.

        Raises:
            ChannelError: Whatever the transport raised (logged, not retried)
        """
        body = truncate_message(text)

        async with self._locks.hold(destination):
            try:
                await asyncio.to_thread(self.transport.send_text, destination, body)
            except Exception as e:
                counter("outbound.failed")
                logger.error("Send to %s failed: %s", destination, e)
                raise

            counter("outbound.sent")
            logger.debug("Sent %d chars to %s", len(body), destination)
            if self.post_send_delay > 0:
                await asyncio.sleep(self.post_send_delay)
