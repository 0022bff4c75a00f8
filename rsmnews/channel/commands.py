"""
Inbound command handling.

Text from a subscriber is parsed into a closed Command set and dispatched.
Messages from one sender are handled strictly one at a time (parse, registry
change, reply); different senders are handled concurrently.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from rsmnews.channel import messages
from rsmnews.channel.outbound import OutboundQueue
from rsmnews.channel.transport import ChannelError
from rsmnews.infrastructure.locks import KeyedLock
from rsmnews.news.digest import format_digest
from rsmnews.news.service import NewsService
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter, log_event
from rsmnews.recipients.models import normalize_phone
from rsmnews.recipients.repository import RecipientRepository

logger = get_logger(__name__)


class Command(str, Enum):
    STATUS_NOW = "actualizame"
    SUBSCRIBE = "suscribir"
    PAUSE = "pausar"
    RESUME = "reanudar"
    UNSUBSCRIBE = "baja"
    HELP = "ayuda"
    UNKNOWN = "unknown"


_KEYWORDS = {
    "actualizame": Command.STATUS_NOW,
    "suscribir": Command.SUBSCRIBE,
    "pausar": Command.PAUSE,
    "reanudar": Command.RESUME,
    "baja": Command.UNSUBSCRIBE,
    "ayuda": Command.HELP,
    "help": Command.HELP,
}


def parse_command(text: str | None) -> Command:
    """Map message text to a Command (case-insensitive, surrounding whitespace ignored)."""
    normalized = (text or "").strip().lower()
    if normalized in _KEYWORDS:
        return _KEYWORDS[normalized]
    if "hola" in normalized or "ayuda" in normalized:
        return Command.HELP
    return Command.UNKNOWN


@dataclass(frozen=True)
class InboundMessage:
    """One text message received on the channel.

    sender is the channel address replies go to; alternate_id is a second
    address form the channel reported for the same person, if any.
    """

    sender: str
    text: str
    alternate_id: str | None = None
    message_id: str | None = None

    @property
    def phone(self) -> str:
        return normalize_phone(self.sender)


class CommandDispatcher:
    def __init__(
        self,
        news_service: NewsService,
        outbound: OutboundQueue,
        recipients: RecipientRepository | None = None,
    ):
        self.news_service = news_service
        self.outbound = outbound
        self.recipients = recipients or RecipientRepository()
        self._locks = KeyedLock("inbound")

    async def handle(self, message: InboundMessage) -> Command:
        """
        Process one message while holding the sender's lock.

        Returns:
            The parsed command
        """
        async with self._locks.hold(message.sender):
            command = parse_command(message.text)
            counter(f"commands.{command.name.lower()}")
            log_event("commands.received", command=command.name, sender=message.sender)

            reply = await self._execute(command, message)
            try:
                await self.outbound.send(message.sender, reply)
            except ChannelError as e:
                counter("commands.reply_failed")
                logger.error("Could not reply to %s (%s): %s", message.sender, command.name, e)

        return command

    async def _execute(self, command: Command, message: InboundMessage) -> str:
        match command:
            case Command.STATUS_NOW:
                return await self._status_now()
            case Command.SUBSCRIBE:
                return await self._subscribe(message)
            case Command.PAUSE:
                return await self._set_subscribed(message.phone, False)
            case Command.RESUME:
                return await self._set_subscribed(message.phone, True)
            case Command.UNSUBSCRIBE:
                return await self._unsubscribe(message.phone)
            case Command.HELP:
                return messages.HELP
            case Command.UNKNOWN:
                return messages.UNKNOWN_COMMAND

    async def _status_now(self) -> str:
        try:
            entry = await self.news_service.get_current()
            return format_digest(entry)
        except Exception as e:
            logger.error("Could not build on-demand digest: %s", e)
            return messages.NEWS_UNAVAILABLE

    async def _subscribe(self, message: InboundMessage) -> str:
        try:
            await asyncio.to_thread(
                self.recipients.upsert, message.phone, alternate_id=message.alternate_id
            )
        except Exception as e:
            logger.error("Error subscribing %s: %s", message.phone, e)
            return messages.SUBSCRIBE_FAILED
        return messages.SUBSCRIBED

    async def _set_subscribed(self, phone: str, subscribed: bool) -> str:
        try:
            updated = await asyncio.to_thread(self.recipients.set_subscribed, phone, subscribed)
        except Exception as e:
            logger.error("Error updating subscription for %s: %s", phone, e)
            updated = False
        if not updated:
            return messages.NOT_SUBSCRIBED
        return messages.RESUMED if subscribed else messages.PAUSED

    async def _unsubscribe(self, phone: str) -> str:
        try:
            deleted = await asyncio.to_thread(self.recipients.delete, phone)
        except Exception as e:
            logger.error("Error deleting %s: %s", phone, e)
            deleted = False
        return messages.UNSUBSCRIBED if deleted else messages.NOT_REGISTERED
