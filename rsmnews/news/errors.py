"""Refresh pipeline exceptions."""

from __future__ import annotations


class RefreshError(Exception):
    """A refresh attempt produced nothing usable."""


class TransformError(Exception):
    """The content transform could not produce a usable answer."""


class NoContentError(RefreshError):
    """No portal returned any candidate."""


class SelectionError(RefreshError, TransformError):
    """The selection phase answer was missing or malformed."""


class EmptyRefreshError(RefreshError):
    """Every selected article was lost to detail fetch failures."""
