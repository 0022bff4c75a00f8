"""FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from rsmnews.services import NewsBotServices


def get_services(request: Request) -> NewsBotServices:
    """The service container built by the app lifespan."""
    return request.app.state.services
