"""
In-process telemetry for the refresh pipeline and the delivery jobs.

Nothing is exported to an external backend; events go to the log and counters
and timings stay in memory so tests and /health can read them back.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger("rsmnews.telemetry")

_COUNTERS: dict[str, int] = {}
_TIMINGS: dict[str, list[float]] = {}


def log_event(event_name: str, **fields: Any) -> None:
    """
    Structured log event.

    Side Effects:
        - Writes to logger (info level)
    """
    logger.info("event=%s %s", event_name, fields)


def counter(name: str, increment: int = 1) -> int:
    """
    Increment an in-memory counter and return its new value.

    Passing ``increment=0`` reads the counter without changing it.

    Side Effects:
        - Modifies _COUNTERS dict (in-memory state)
        - Writes to logger (debug level)
    """
    value = _COUNTERS.get(name, 0) + increment
    _COUNTERS[name] = value
    logger.debug("counter=%s value=%s", name, value)
    return value


@contextlib.contextmanager
def time_block(metric_name: str) -> Iterator[None]:
    """
    Time a block of code and record the elapsed seconds under metric_name.

    Side Effects:
        - Appends to _TIMINGS dict (in-memory state)
        - Writes to logger (debug level)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("timing=%s seconds=%.6f", metric_name, elapsed)
        _TIMINGS.setdefault(metric_name, []).append(elapsed)


def get_timings(metric_name: str) -> list[float]:
    return list(_TIMINGS.get(metric_name, []))


def snapshot() -> dict[str, int]:
    """Copy of every counter, for the health endpoint."""
    return dict(_COUNTERS)


def reset() -> None:
    """
    Clear counters and timings (useful for tests).

    Side Effects:
        - Clears _COUNTERS and _TIMINGS
    """
    _COUNTERS.clear()
    _TIMINGS.clear()
