"""Unit tests for news models and the staleness rule"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from rsmnews.news.models import ArticleDetail, CacheEntry, is_stale

CREATED = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("age", "stale"),
    [
        (timedelta(0), False),
        (timedelta(minutes=29, seconds=59), False),
        (timedelta(minutes=30), True),
        (timedelta(hours=5), True),
    ],
)
def test_is_stale_boundary(make_entry, age, stale):
    entry = make_entry([], created_at=CREATED)

    assert is_stale(entry, CREATED + age) is stale


def test_cache_entry_is_immutable(make_entry):
    entry = make_entry([])

    with pytest.raises(Exception):
        entry.id = 99


def test_principal_articles_keep_stored_order(make_article, make_entry):
    entry = make_entry(
        [
            make_article("https://e.com/a"),
            make_article("https://e.com/b", category="MUNDO"),
            make_article("https://e.com/c"),
        ]
    )

    assert [a.url for a in entry.principal_articles()] == ["https://e.com/a", "https://e.com/c"]


def test_cache_entry_row_roundtrip(make_article, make_entry):
    entry = make_entry([make_article("https://e.com/a", title="Año nuevo")], created_at=CREATED, entry_id=7)
    row = {"id": 7, "created_at": CREATED.isoformat(), "articles_json": entry.articles_json()}

    assert CacheEntry.from_row(row) == entry


def test_article_detail_ok_requires_content():
    assert ArticleDetail(url="u", content="texto").ok
    assert not ArticleDetail(url="u", content="").ok
    assert not ArticleDetail(url="u", content="texto", error="HTTP 500").ok
