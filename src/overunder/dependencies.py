"""Shared FastAPI dependencies."""

import secrets
from collections.abc import AsyncGenerator

from fastapi import Header, HTTPException

from overunder.config import get_settings
from overunder.database import get_session as _get_session
from overunder.redis_client import get_optional_redis

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client (or None) as a FastAPI dependency."""
    yield get_optional_redis()


async def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    """Guard administrative endpoints with the configured admin API key."""
    expected = get_settings().admin_api_key
    if not expected:
        raise HTTPException(status_code=403, detail="Admin endpoints are disabled")
    if x_admin_key is None or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=403, detail="Invalid admin key")
