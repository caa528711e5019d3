"""Leaderboard arq worker: daily rebuild at a fixed UTC time."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from overunder.config import get_settings
from overunder.database import close_db, get_session, init_db
from overunder.leaderboard.aggregator import rebuild_leaderboard

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def leaderboard_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the DB connection on worker startup."""
    await init_db(get_settings().database_url)
    logger.info("Leaderboard worker started")


async def leaderboard_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_db()
    logger.info("Leaderboard worker shut down")


async def rebuild_leaderboard_job(ctx: dict) -> int:  # type: ignore[type-arg]
    """Scheduled arq task: rebuild the leaderboard. Safe to re-run."""
    db = await _get_db_session()
    try:
        return await rebuild_leaderboard(db)
    except Exception:
        logger.exception("Leaderboard rebuild failed")
        raise
    finally:
        await db.close()
