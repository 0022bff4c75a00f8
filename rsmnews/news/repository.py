"""
News cache repository - persistence for news_cache snapshots.

Entries are append-only. "Current" is the row with the greatest created_at,
ties broken by the greater id. created_at is stored as a UTC ISO-8601 string
so lexical order is chronological order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC

from rsmnews.config import CACHE_HISTORY_SIZE
from rsmnews.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from rsmnews.news.models import Article, CacheEntry, utc_now
from rsmnews.observability.logging import get_logger

logger = get_logger(__name__)


class NewsCacheRepository:
    """
    Repository for CacheEntry rows.

    All methods use connection pooling and proper transaction handling.
    """

    @staticmethod
    @retry_on_db_lock()
    def save(articles: Sequence[Article], created_at=None) -> CacheEntry:
        """
        Persist a new snapshot.

        Returns:
            The stored CacheEntry with its generated id

        Side Effects:
            - Inserts one row into news_cache
        """
        entry = CacheEntry(created_at=(created_at or utc_now()).astimezone(UTC), articles=tuple(articles))

        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO news_cache (created_at, article_count, articles_json)
                VALUES (?, ?, ?)
                """,
                (entry.created_at.isoformat(), entry.article_count, entry.articles_json()),
            )
            entry_id = cursor.lastrowid

        logger.info("Saved news cache entry %s with %d articles", entry_id, entry.article_count)
        return entry.model_copy(update={"id": entry_id})

    @staticmethod
    def get_latest() -> CacheEntry | None:
        """Most recent entry, or None when the cache is empty."""
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM news_cache ORDER BY created_at DESC, id DESC LIMIT 1"
            ).fetchone()

        if not row:
            return None
        return CacheEntry.from_row(row)

    @staticmethod
    def list_ids_beyond(keep: int = CACHE_HISTORY_SIZE) -> list[int]:
        """Ids of every entry older than the `keep` most recent ones."""
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT id FROM news_cache ORDER BY created_at DESC, id DESC LIMIT -1 OFFSET ?",
                (keep,),
            ).fetchall()
        return [row["id"] for row in rows]

    @staticmethod
    @retry_on_db_lock()
    def delete_many(ids: Iterable[int]) -> int:
        """Delete entries by id. Returns the number of rows removed."""
        ids = list(ids)
        if not ids:
            return 0

        placeholders = ",".join("?" for _ in ids)
        with db_transaction() as conn:
            cursor = conn.execute(f"DELETE FROM news_cache WHERE id IN ({placeholders})", ids)
            deleted = cursor.rowcount

        logger.info("Pruned %d old news cache entries", deleted)
        return deleted

    @classmethod
    def prune(cls, keep: int = CACHE_HISTORY_SIZE) -> int:
        """Keep only the `keep` most recent entries."""
        return cls.delete_many(cls.list_ids_beyond(keep))

    @staticmethod
    def count() -> int:
        with get_db_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM news_cache").fetchone()[0]
