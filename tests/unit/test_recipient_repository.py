"""Unit tests for RecipientRepository"""

from __future__ import annotations

import pytest

from rsmnews.recipients.models import normalize_phone
from rsmnews.recipients.repository import RecipientRepository


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("+54 9 11 5555-0000", "5491155550000"), ("5491155550000", "5491155550000"), ("", ""), (None, "")],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_upsert_creates_subscribed_recipient(temp_db):
    recipient = RecipientRepository.upsert("5491155550000", email="ana@example.com")

    assert recipient.id is not None
    assert recipient.subscribed
    assert not recipient.is_paid
    assert recipient.address == "5491155550000"
    assert RecipientRepository.get("5491155550000") == recipient


def test_upsert_updates_without_clearing_known_fields(temp_db):
    RecipientRepository.upsert("549", alternate_id="lid-1", email="ana@example.com")
    RecipientRepository.set_subscribed("549", False)

    recipient = RecipientRepository.upsert("549")

    assert recipient.subscribed
    assert recipient.alternate_id == "lid-1"
    assert recipient.email == "ana@example.com"
    assert recipient.address == "lid-1"


def test_upsert_requires_phone(temp_db):
    with pytest.raises(ValueError):
        RecipientRepository.upsert("")


def test_set_subscribed_unknown_phone_creates_nothing(temp_db):
    assert RecipientRepository.set_subscribed("549", False) is False
    assert RecipientRepository.get("549") is None


def test_delete(temp_db):
    RecipientRepository.upsert("549")

    assert RecipientRepository.delete("549") is True
    assert RecipientRepository.delete("549") is False


def test_list_subscribed_in_registration_order(temp_db):
    for phone in ("3", "1", "2"):
        RecipientRepository.upsert(phone)
    RecipientRepository.set_subscribed("1", False)

    assert [r.phone for r in RecipientRepository.list_subscribed()] == ["3", "2"]


def test_stats(temp_db):
    assert RecipientRepository.stats().total_users == 0

    RecipientRepository.upsert("1")
    RecipientRepository.upsert("2")
    RecipientRepository.upsert("3", subscribed=False)

    stats = RecipientRepository.stats()
    assert (stats.total_users, stats.active_subscribers, stats.paid_users, stats.free_users) == (3, 2, 0, 2)
