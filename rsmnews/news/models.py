"""
News domain models.

A refresh turns portal candidates into persisted Articles:

    ArticleCandidate -> SelectedArticle -> ArticleDetail -> Enrichment -> Article

Only Article and CacheEntry are persisted; the rest live for one refresh.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rsmnews.config import CACHE_MAX_AGE_MINUTES, PRINCIPAL_CATEGORY


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


class ArticleCandidate(BaseModel):
    """A headline link found on a portal home page."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., description="Link text or nearest heading")
    url: str = Field(..., description="Absolute article URL")
    excerpt: str = Field(default="", description="Teaser paragraph next to the link, may be empty")
    portal: str = Field(..., description="Portal hostname without www.")


class SelectedArticle(BaseModel):
    """One (url, category) pair chosen by the selection phase."""

    model_config = ConfigDict(frozen=True)

    url: str
    category: str

    @property
    def is_principal(self) -> bool:
        return self.category == PRINCIPAL_CATEGORY


class ArticleDetail(BaseModel):
    """Full text of one article page, or an error marker when the fetch failed."""

    url: str
    title: str = ""
    content: str = ""
    error: str | None = Field(default=None, description="Set when the fetch failed")

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.content)


class Enrichment(BaseModel):
    """Title, short description and long-form explanation for one article."""

    title: str
    description: str
    explanation: str
    fallback: bool = Field(default=False, description="True when the model call failed")


class Article(BaseModel):
    """A fully processed article as stored in a cache entry."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(..., description="PRINCIPALES or one topical category")
    title: str
    description: str
    url: str
    explained: str | None = Field(default=None, description="Long-form explanation")
    portal: str = Field(default="", description="Source portal hostname")
    content: str = Field(default="", description="Scraped article text, served to the web frontend")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class CacheEntry(BaseModel):
    """Immutable snapshot of the processed article set."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    created_at: datetime = Field(default_factory=utc_now)
    articles: tuple[Article, ...] = ()

    @property
    def article_count(self) -> int:
        return len(self.articles)

    def principal_articles(self) -> list[Article]:
        """PRINCIPALES articles in stored order."""
        return [a for a in self.articles if a.category == PRINCIPAL_CATEGORY]

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or utc_now()) - self.created_at

    def articles_json(self) -> str:
        """Serialize the article list for the articles_json column."""
        return json.dumps([a.to_dict() for a in self.articles], ensure_ascii=False)

    @classmethod
    def from_row(cls, row: Any) -> CacheEntry:
        """Build from a news_cache row (sqlite3.Row or mapping)."""
        created_at = datetime.fromisoformat(row["created_at"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        articles = tuple(Article(**item) for item in json.loads(row["articles_json"]))
        return cls(id=row["id"], created_at=created_at, articles=articles)


def is_stale(entry: CacheEntry, now: datetime | None = None) -> bool:
    """True once an entry is CACHE_MAX_AGE_MINUTES old or older (boundary is stale)."""
    return entry.age(now) >= timedelta(minutes=CACHE_MAX_AGE_MINUTES)
