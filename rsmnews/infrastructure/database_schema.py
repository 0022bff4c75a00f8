"""
Database schema for RSM News.

news_cache holds immutable snapshots of the processed article set (articles are
stored as one JSON document per row). recipients is the subscriber registry;
its rowid order is the delivery order of the daily digest.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from rsmnews.observability.logging import get_logger

logger = get_logger(__name__)

EXPECTED_TABLES = ("news_cache", "recipients")


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Side Effects:
    - Creates the parent directory of db_path if needed
    - Creates tables and indexes with CREATE ... IF NOT EXISTS
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS news_cache (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                article_count INTEGER NOT NULL DEFAULT 0,
                articles_json TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_news_cache_created
                ON news_cache (created_at DESC, id DESC);

            CREATE TABLE IF NOT EXISTS recipients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                phone TEXT NOT NULL UNIQUE,
                alternate_id TEXT,
                email TEXT,
                subscribed INTEGER NOT NULL DEFAULT 1,
                is_paid INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_recipients_subscribed
                ON recipients (subscribed, id);
        """)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database schema ready at %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Check that every expected table exists

    Raises:
        ValueError: If tables are missing
    """
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    present = {row[0] for row in rows}
    missing = [table for table in EXPECTED_TABLES if table not in present]
    if missing:
        raise ValueError(f"Missing tables: {', '.join(missing)}")
    return True
