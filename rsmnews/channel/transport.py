"""
Chat channel transport.

ChannelTransport is the capability the rest of the app depends on: connect,
is_connected and send_text. WhatsAppCloudTransport implements it against the
WhatsApp Cloud API (Graph API) with requests; its methods block and are run
through asyncio.to_thread by the outbound queue.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import requests

from rsmnews.config import (
    CHANNEL_TIMEOUT_SECONDS,
    WHATSAPP_API_URL,
    WHATSAPP_API_VERSION,
    WHATSAPP_PHONE_NUMBER_ID,
    WHATSAPP_TOKEN,
)
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter, log_event

logger = get_logger(__name__)


class ChannelError(Exception):
    """Base class for channel failures."""


class ChannelNotConnectedError(ChannelError):
    """The channel has no usable session."""


class ChannelSendError(ChannelError):
    """The channel rejected or failed a send."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@runtime_checkable
class ChannelTransport(Protocol):
    def connect(self) -> bool: ...

    def is_connected(self) -> bool: ...

    def send_text(self, address: str, text: str) -> None: ...


class WhatsAppCloudTransport:
    """
    WhatsApp Cloud API client.

    The session is the access token plus the business phone number id.
    connect() verifies both by reading the phone number resource; a 401 on any
    send marks the transport disconnected until connect() succeeds again.
    """

    def __init__(
        self,
        token: str | None = WHATSAPP_TOKEN,
        phone_number_id: str | None = WHATSAPP_PHONE_NUMBER_ID,
        api_url: str = WHATSAPP_API_URL,
        api_version: str = WHATSAPP_API_VERSION,
        timeout: float = CHANNEL_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.token = token
        self.phone_number_id = phone_number_id
        self.base_url = f"{api_url.rstrip('/')}/{api_version}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self._connected = False

    @property
    def configured(self) -> bool:
        return bool(self.token and self.phone_number_id)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}

    def connect(self) -> bool:
        """Verify credentials. Returns the resulting connection state."""
        if not self.configured:
            logger.warning("WhatsApp credentials not configured, channel stays disconnected")
            self._connected = False
            return False

        try:
            response = self.session.get(
                f"{self.base_url}/{self.phone_number_id}",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("WhatsApp connect failed: %s", e)
            self._connected = False
            return False

        self._connected = response.ok
        if self._connected:
            logger.info("WhatsApp channel connected (phone_number_id=%s)", self.phone_number_id)
        else:
            logger.error("WhatsApp connect rejected: HTTP %s", response.status_code)
        log_event("channel.connect", connected=self._connected)
        return self._connected

    def is_connected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        self._connected = False
        self.session.close()

    def send_text(self, address: str, text: str) -> None:
        """
        Send one text message.

        Raises:
            ChannelNotConnectedError: If connect() has not succeeded
            ChannelSendError: On network failure or non-2xx response
        """
        if not self._connected:
            raise ChannelNotConnectedError("WhatsApp channel is not connected")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": address,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        try:
            response = self.session.post(
                f"{self.base_url}/{self.phone_number_id}/messages",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            counter("channel.send_error")
            raise ChannelSendError(f"WhatsApp send failed: {e}") from e

        if response.status_code == 401:
            self._connected = False
            counter("channel.unauthorized")
            logger.error("WhatsApp token rejected, marking channel disconnected")

        if not response.ok:
            counter("channel.send_error")
            raise ChannelSendError(
                f"WhatsApp send rejected: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        counter("channel.sent")
