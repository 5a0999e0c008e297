"""FastAPI dependencies shared by routers."""

from __future__ import annotations

from fastapi import Request

from .config import settings


async def get_actor_id(request: Request) -> str | None:
    """Id of the user acting on the request, taken from the actor header."""
    actor = request.headers.get(settings.actor_header, "").strip()
    return actor or None
