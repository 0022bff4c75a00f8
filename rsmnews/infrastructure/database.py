"""SQLite access for RSM News

One database file (rsmnews/data/rsmnews.db unless RSMNEWS_DB_PATH points
elsewhere) holds the news cache history and the recipient registry.

Repositories run on worker threads (the async services call them through
asyncio.to_thread), so connections come from a small thread-safe pool and are
opened with check_same_thread=False. Writers wrap their work in
@retry_on_db_lock() because the refresh job, the daily sender and webhook
handlers can write at the same time.
"""

from __future__ import annotations

import atexit
import os
import sqlite3
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from queue import Empty, Full, Queue
from threading import Lock
from typing import Any, TypeVar

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from rsmnews.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
    DB_TEMP_CONN_MAX,
)
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter, log_event

F = TypeVar("F", bound=Callable[..., Any])

DB_PATH = Path(__file__).parent.parent / "data" / "rsmnews.db"

logger = get_logger(__name__)


def _is_lock_error(error: BaseException) -> bool:
    if not isinstance(error, sqlite3.OperationalError):
        return False
    message = str(error).lower()
    return "locked" in message or "busy" in message


def _log_lock_retry(retry_state: Any) -> None:
    counter("database.lock_retry")
    logger.warning(
        "Database locked (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    )


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX,
    base_delay: float = DB_RETRY_BASE_DELAY,
    max_delay: float = DB_RETRY_MAX_DELAY,
) -> Callable[[F], F]:
    """
    Retry a write on "database is locked" / SQLITE_BUSY.

    Other OperationalErrors propagate immediately; the lock error itself is
    re-raised once max_retries is exhausted.

    Usage:
        @retry_on_db_lock()
        def save(...):
            with db_transaction() as conn:
                conn.execute("INSERT INTO ...")
    """
    return retry(
        retry=retry_if_exception(_is_lock_error),
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential_jitter(initial=base_delay, max=max_delay),
        before_sleep=_log_lock_retry,
        reraise=True,
    )


class DatabaseConnectionPool:
    """
    Thread-safe pool of WAL-mode connections with Row factories.

    When the pool is empty for DB_POOL_TIMEOUT seconds a temporary connection
    is opened (at most temp_conn_max at once) and closed on return.
    """

    def __init__(self, db_path: Path, pool_size: int = DB_POOL_SIZE, temp_conn_max: int = DB_TEMP_CONN_MAX):
        self.db_path = db_path
        self.pool_size = pool_size
        self.temp_conn_max = temp_conn_max
        self.closed = False
        self._pool: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self._temporary: set[int] = set()
        self._lock = Lock()

        for _ in range(pool_size):
            self._pool.put(self._connect())

        atexit.register(self.close_all)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=DB_CONNECT_TIMEOUT, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.row_factory = sqlite3.Row
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """
        Raises:
            RuntimeError: If the pool is closed or the temporary connection
                limit is reached
        """
        if self.closed:
            raise RuntimeError("Connection pool has been closed")

        try:
            return self._pool.get(timeout=DB_POOL_TIMEOUT)
        except Empty:
            pass

        with self._lock:
            if len(self._temporary) >= self.temp_conn_max:
                logger.critical(
                    "Connection pool exhausted (pool_size=%d, temporary=%d)",
                    self.pool_size,
                    len(self._temporary),
                )
                raise RuntimeError("Database connection pool exhausted") from None
            conn = self._connect()
            self._temporary.add(id(conn))
            in_use = len(self._temporary)

        counter("database.pool_exhausted")
        log_event("database.pool_exhausted", pool_size=self.pool_size, temporary=in_use)
        return conn

    def return_connection(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            temporary = id(conn) in self._temporary
            self._temporary.discard(id(conn))

        if self.closed or temporary:
            conn.close()
            return

        try:
            self._pool.put_nowait(conn)
        except Full:
            conn.close()

    def close_all(self) -> None:
        self.closed = True
        while True:
            try:
                self._pool.get_nowait().close()
            except Empty:
                break


@lru_cache(maxsize=1)
def get_pool() -> DatabaseConnectionPool:
    """Process-wide pool for get_db_path(), created on first use."""
    return DatabaseConnectionPool(get_db_path())


def reset_pool() -> None:
    """Close and forget the pool (tests point RSMNEWS_DB_PATH at a temp file)."""
    if get_pool.cache_info().currsize:
        get_pool().close_all()
    get_pool.cache_clear()


def get_db_path() -> Path:
    if env_path := os.getenv("RSMNEWS_DB_PATH"):
        return Path(env_path)
    return DB_PATH


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Pooled connection for the duration of the block.

    Raises:
        FileNotFoundError: If init_database() has not created the file yet
    """
    db_path = get_db_path()
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}\nRun init_database() first")

    pool = get_pool()
    conn = pool.get_connection()
    try:
        yield conn
    finally:
        pool.return_connection(conn)


@contextmanager
def db_transaction() -> Generator[sqlite3.Connection, None, None]:
    """Pooled connection that commits on success and rolls back on error."""
    with get_db_connection() as conn:
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise


def init_database() -> None:
    """
    Create the database file and schema if missing (idempotent).

    Side Effects:
    - Creates rsmnews/data/ (or the RSMNEWS_DB_PATH parent) if needed
    """
    from rsmnews.infrastructure.database_schema import init_database as _init_database

    _init_database(get_db_path())
