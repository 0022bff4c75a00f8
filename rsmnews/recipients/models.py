"""Subscriber registry models."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rsmnews.news.models import utc_now

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None) -> str:
    """Keep digits only ("+54 9 11-1234" -> "549111234"). Empty when nothing is left."""
    return _NON_DIGITS.sub("", raw or "")


class Recipient(BaseModel):
    """A phone number registered for the daily digest."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    phone: str = Field(..., description="Digits only, unique")
    alternate_id: str | None = Field(
        default=None, description="Channel address to use instead of the phone, when known"
    )
    email: str | None = None
    subscribed: bool = True
    is_paid: bool = Field(default=False, description="Tier flag, stored only")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def address(self) -> str:
        """Where outbound messages for this recipient go."""
        return self.alternate_id or self.phone

    @classmethod
    def from_row(cls, row: Any) -> Recipient:
        def parse(value: str) -> datetime:
            dt = datetime.fromisoformat(value)
            return dt if dt.tzinfo else dt.replace(tzinfo=UTC)

        return cls(
            id=row["id"],
            phone=row["phone"],
            alternate_id=row["alternate_id"],
            email=row["email"],
            subscribed=bool(row["subscribed"]),
            is_paid=bool(row["is_paid"]),
            created_at=parse(row["created_at"]),
            updated_at=parse(row["updated_at"]),
        )


class RecipientStats(BaseModel):
    total_users: int = 0
    active_subscribers: int = 0
    paid_users: int = 0

    @property
    def free_users(self) -> int:
        return self.active_subscribers - self.paid_users
