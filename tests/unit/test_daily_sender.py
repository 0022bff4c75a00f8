"""Unit tests for the daily digest fan-out"""

from __future__ import annotations

import asyncio

from rsmnews.channel.outbound import OutboundQueue
from rsmnews.jobs.daily_sender import DigestSender
from rsmnews.news.digest import DIGEST_HEADER
from rsmnews.recipients.models import Recipient
from rsmnews.recipients.repository import RecipientRepository


class FakeNews:
    def __init__(self, entry):
        self.entry = entry
        self.refreshed = False

    async def get_latest(self):
        return self.entry

    async def refresh(self):
        self.refreshed = True
        raise AssertionError("the daily send must not refresh")


class FakeRecipients:
    def __init__(self, recipients):
        self.recipients = recipients

    def list_subscribed(self):
        return [r for r in self.recipients if r.subscribed]


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _sender(transport, news, recipients):
    sleep = RecordingSleep()
    sender = DigestSender(
        news_service=news,
        outbound=OutboundQueue(transport, post_send_delay=0),
        recipients=recipients,
        pacing_seconds=3.0,
        failure_backoff_seconds=5.0,
        sleep=sleep,
    )
    return sender, sleep


def test_failed_recipient_does_not_stop_the_run(fake_transport, make_article, make_entry):
    transport = fake_transport(fail_for={"222"})
    entry = make_entry([make_article("https://e.com/1", title="Dolar")])
    recipients = FakeRecipients([Recipient(phone="111"), Recipient(phone="222"), Recipient(phone="333")])
    sender, sleep = _sender(transport, FakeNews(entry), recipients)

    report = asyncio.run(sender.send_daily_digest())

    assert report.sent == ["111", "333"]
    assert report.failed == ["222"]
    assert not report.skipped
    assert transport.addresses == ["111", "333"]
    assert sleep.calls == [3.0, 5.0]
    assert transport.texts_for("111")[0].startswith(DIGEST_HEADER)
    assert "*DOLAR:*" in transport.texts_for("333")[0]


def test_skips_when_channel_not_connected(fake_transport, make_article, make_entry):
    transport = fake_transport(connected=False)
    news = FakeNews(make_entry([make_article("https://e.com/1")]))
    sender, sleep = _sender(transport, news, FakeRecipients([Recipient(phone="111")]))

    report = asyncio.run(sender.send_daily_digest())

    assert report.skipped_reason == "channel_not_connected"
    assert transport.sent == []
    assert sleep.calls == []


def test_skips_when_no_news_cached(fake_transport):
    transport = fake_transport()
    news = FakeNews(None)
    sender, _ = _sender(transport, news, FakeRecipients([Recipient(phone="111")]))

    report = asyncio.run(sender.send_daily_digest())

    assert report.skipped_reason == "no_news"
    assert transport.sent == []
    assert not news.refreshed


def test_skips_when_nobody_is_subscribed(fake_transport, make_article, make_entry):
    transport = fake_transport()
    news = FakeNews(make_entry([make_article("https://e.com/1")]))
    sender, _ = _sender(transport, news, FakeRecipients([Recipient(phone="111", subscribed=False)]))

    report = asyncio.run(sender.send_daily_digest())

    assert report.skipped_reason == "no_recipients"
    assert transport.sent == []


def test_sends_to_alternate_id_in_registration_order(temp_db, fake_transport, make_article, make_entry):
    RecipientRepository.upsert("5491111111111")
    RecipientRepository.upsert("5491122222222", alternate_id="lid-22")
    RecipientRepository.upsert("5491133333333", subscribed=False)
    transport = fake_transport()
    sender, sleep = _sender(transport, FakeNews(make_entry([make_article("https://e.com/1")])), RecipientRepository())

    report = asyncio.run(sender.send_daily_digest())

    assert transport.addresses == ["5491111111111", "lid-22"]
    assert report.sent == ["5491111111111", "5491122222222"]
    assert sleep.calls == [3.0]
