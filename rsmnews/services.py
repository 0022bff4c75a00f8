"""
Service wiring.

build_services() constructs every long-lived object once; the API lifespan
owns the result and hands it to routes through app.state.
"""

from __future__ import annotations

from dataclasses import dataclass

from rsmnews.channel.commands import CommandDispatcher
from rsmnews.channel.outbound import OutboundQueue
from rsmnews.channel.transport import ChannelTransport, WhatsAppCloudTransport
from rsmnews.jobs.daily_sender import DigestSender
from rsmnews.news.service import NewsService
from rsmnews.recipients.repository import RecipientRepository


@dataclass
class NewsBotServices:
    transport: ChannelTransport
    outbound: OutboundQueue
    news: NewsService
    recipients: RecipientRepository
    dispatcher: CommandDispatcher
    digest_sender: DigestSender


def build_services(
    transport: ChannelTransport | None = None,
    news: NewsService | None = None,
    recipients: RecipientRepository | None = None,
    post_send_delay: float | None = None,
) -> NewsBotServices:
    transport = transport or WhatsAppCloudTransport()
    outbound = (
        OutboundQueue(transport)
        if post_send_delay is None
        else OutboundQueue(transport, post_send_delay=post_send_delay)
    )
    news = news or NewsService()
    recipients = recipients or RecipientRepository()

    return NewsBotServices(
        transport=transport,
        outbound=outbound,
        news=news,
        recipients=recipients,
        dispatcher=CommandDispatcher(news, outbound, recipients),
        digest_sender=DigestSender(news, outbound, recipients),
    )
