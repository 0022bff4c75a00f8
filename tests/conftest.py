"""
Pytest configuration for RSM News tests

Provides shared fixtures: a temporary SQLite database, a recording fake chat
transport, and builders for articles and cache entries.
"""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime

import pytest

from rsmnews.channel.transport import ChannelNotConnectedError, ChannelSendError
from rsmnews.infrastructure.database import init_database, reset_pool
from rsmnews.infrastructure.idempotency import reset_seen
from rsmnews.news.models import Article, CacheEntry
from rsmnews.observability import telemetry


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    telemetry.reset()
    reset_seen()
    yield
    telemetry.reset()
    reset_seen()


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the connection pool at a fresh database file."""
    db_path = tmp_path / "rsmnews-test.db"
    monkeypatch.setenv("RSMNEWS_DB_PATH", str(db_path))
    reset_pool()
    init_database()
    yield db_path
    reset_pool()


class FakeTransport:
    """
    In-memory ChannelTransport.

    Records (address, text, start, end) per send. `fail_for` addresses raise
    ChannelSendError; `send_seconds` makes each send block for that long
    (sends run in worker threads, like the real transport).
    """

    def __init__(self, connected: bool = True, fail_for=(), send_seconds: float = 0.0):
        self.connected = connected
        self.fail_for = set(fail_for)
        self.send_seconds = send_seconds
        self.sent: list[tuple[str, str, float, float]] = []
        self._lock = threading.Lock()

    def connect(self) -> bool:
        return self.connected

    def is_connected(self) -> bool:
        return self.connected

    def send_text(self, address: str, text: str) -> None:
        if not self.connected:
            raise ChannelNotConnectedError("not connected")
        start = time.monotonic()
        if self.send_seconds:
            time.sleep(self.send_seconds)
        if address in self.fail_for:
            raise ChannelSendError(f"rejected {address}", status_code=400)
        with self._lock:
            self.sent.append((address, text, start, time.monotonic()))

    @property
    def addresses(self) -> list[str]:
        return [address for address, *_ in self.sent]

    def texts_for(self, address: str) -> list[str]:
        return [text for addr, text, *_ in self.sent if addr == address]


@pytest.fixture
def fake_transport():
    return FakeTransport


def _article(url: str, category: str = "PRINCIPALES", title: str | None = None, **kwargs) -> Article:
    return Article(
        category=category,
        title=title or f"Titulo de {url.rsplit('/', 1)[-1]}",
        description=kwargs.pop("description", f"Descripcion de {url}"),
        url=url,
        explained=kwargs.pop("explained", "Explicacion"),
        portal=kwargs.pop("portal", "example.com"),
        content=kwargs.pop("content", "Texto completo de la nota."),
        **kwargs,
    )


def _entry(articles, created_at: datetime | None = None, entry_id: int | None = 1) -> CacheEntry:
    return CacheEntry(
        id=entry_id,
        created_at=created_at or datetime(2025, 3, 10, 12, 0, tzinfo=UTC),
        articles=tuple(articles),
    )


@pytest.fixture
def make_article():
    return _article


@pytest.fixture
def make_entry():
    return _entry
