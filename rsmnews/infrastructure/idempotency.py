"""
Duplicate detection for inbound WhatsApp webhook deliveries.

The Cloud API retries webhook calls it considers undelivered, so the same
message id can arrive more than once. Seen ids are kept in a bounded in-memory
window; a restart forgets them, which at worst answers a redelivered command
twice.
"""

from __future__ import annotations

from collections import OrderedDict
from hashlib import sha256

from rsmnews.observability.telemetry import counter, log_event

_MAX_SEEN = 5000
_SEEN_KEYS: OrderedDict[str, None] = OrderedDict()


def message_key(message_id: str, sender: str) -> str:
    """
    Deterministic idempotency key for an inbound message. Raises ValueError if
    required inputs are missing.
    """
    missing = [name for name, val in (("message_id", message_id), ("sender", sender)) if not val]
    if missing:
        counter("idempotency_drops")
        log_event("idempotency.drop", missing_fields=missing)
        raise ValueError(f"idempotency key requires: {', '.join(missing)}")

    return f"{sender}:{message_id}"


def is_duplicate(key: str) -> bool:
    """Check if key has been seen before and mark it as seen.

    Side Effects:
        Adds key to _SEEN_KEYS, evicting the oldest key past _MAX_SEEN.
        Logs telemetry event and increments counter if duplicate detected.
    """
    if key in _SEEN_KEYS:
        counter("idempotency_drops")
        log_event("idempotency.duplicate", key_hash=sha256(key.encode()).hexdigest()[:12])
        return True
    _SEEN_KEYS[key] = None
    if len(_SEEN_KEYS) > _MAX_SEEN:
        _SEEN_KEYS.popitem(last=False)
    return False


def reset_seen() -> None:
    """Clear all seen keys from memory."""
    _SEEN_KEYS.clear()
