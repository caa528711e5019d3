"""Leaderboard endpoints."""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.config import get_settings
from overunder.database import get_session
from overunder.dependencies import require_admin_key
from overunder.leaderboard.aggregator import rebuild_leaderboard
from overunder.leaderboard.schemas import LeaderboardEntryResponse, LeaderboardResponse, RebuildResponse
from overunder.leaderboard.service import get_leaderboard

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=LeaderboardResponse)
async def leaderboard_endpoint(
    sort_by: Literal["net_profit", "win_rate", "total_wins", "current_streak"] = Query("net_profit"),
    db: AsyncSession = Depends(get_session),
):
    """Top players, sorted by the chosen metric (public)."""
    rows = await get_leaderboard(db, sort_by, get_settings().leaderboard_limit)
    entries = [
        LeaderboardEntryResponse(
            rank=i,
            user_id=entry.user_id,
            username=username,
            total_bets=entry.total_bets,
            total_wins=entry.total_wins,
            total_losses=entry.total_losses,
            win_rate=entry.win_rate,
            total_wagered=entry.total_wagered,
            total_winnings=entry.total_winnings,
            net_profit=entry.net_profit,
            current_streak=entry.current_streak,
            best_streak=entry.best_streak,
            last_updated=entry.last_updated,
        )
        for i, (entry, username) in enumerate(rows, start=1)
    ]
    return LeaderboardResponse(sort_by=sort_by, entries=entries)


@router.post("/rebuild", response_model=RebuildResponse, dependencies=[Depends(require_admin_key)])
async def rebuild_endpoint(db: AsyncSession = Depends(get_session)):
    """Recompute the leaderboard now. Idempotent."""
    updated = await rebuild_leaderboard(db)
    logger.info("leaderboard_rebuild_triggered", updated=updated)
    return RebuildResponse(updated=updated)
