"""
Daily digest fan-out.

Recipients are served one after another in registry order, with a pause
between them to stay under the channel's rate limits. A failed recipient is
logged, followed by a longer pause, and skipped for the day.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from rsmnews.channel.outbound import OutboundQueue
from rsmnews.config import DIGEST_FAILURE_BACKOFF_SECONDS, DIGEST_PACING_SECONDS
from rsmnews.news.digest import format_digest
from rsmnews.news.service import NewsService
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter, log_event, time_block
from rsmnews.recipients.repository import RecipientRepository

logger = get_logger(__name__)


@dataclass
class DeliveryReport:
    """Outcome of one daily run (phones, in delivery order)."""

    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


class DigestSender:
    def __init__(
        self,
        news_service: NewsService,
        outbound: OutboundQueue,
        recipients: RecipientRepository | None = None,
        pacing_seconds: float = DIGEST_PACING_SECONDS,
        failure_backoff_seconds: float = DIGEST_FAILURE_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.news_service = news_service
        self.outbound = outbound
        self.recipients = recipients or RecipientRepository()
        self.pacing_seconds = pacing_seconds
        self.failure_backoff_seconds = failure_backoff_seconds
        self._sleep = sleep

    async def send_daily_digest(self) -> DeliveryReport:
        """
        Send the current digest to every subscribed recipient.

        Never refreshes the cache; the pre-send refresh job runs a few minutes
        earlier. Skips the run (logs only) when the channel is down, nobody is
        subscribed or no news has ever been cached.

        Side Effects:
            - One outbound message per subscribed recipient
            - Sleeps pacing_seconds between recipients
        """
        if not self.outbound.is_connected():
            counter("digest.skipped_disconnected")
            logger.warning("Channel not connected, skipping daily digest")
            return DeliveryReport(skipped_reason="channel_not_connected")

        recipients = await asyncio.to_thread(self.recipients.list_subscribed)
        if not recipients:
            logger.info("No subscribed recipients, nothing to send")
            return DeliveryReport(skipped_reason="no_recipients")

        entry = await self.news_service.get_latest()
        if entry is None:
            counter("digest.skipped_no_news")
            logger.error("No cached news available, skipping daily digest")
            return DeliveryReport(skipped_reason="no_news")

        text = format_digest(entry)
        report = DeliveryReport()
        logger.info("Sending daily digest (entry %s) to %d recipients", entry.id, len(recipients))

        with time_block("digest.send_daily"):
            for index, recipient in enumerate(recipients):
                is_last = index == len(recipients) - 1
                try:
                    await self.outbound.send(recipient.address, text)
                except Exception as e:
                    counter("digest.failed")
                    logger.error("Failed to send digest to %s: %s", recipient.phone, e)
                    report.failed.append(recipient.phone)
                    if not is_last:
                        await self._sleep(self.failure_backoff_seconds)
                    continue

                counter("digest.sent")
                report.sent.append(recipient.phone)
                if not is_last:
                    await self._sleep(self.pacing_seconds)

        log_event(
            "digest.daily_complete",
            entry_id=entry.id,
            sent=len(report.sent),
            failed=len(report.failed),
        )
        return report
