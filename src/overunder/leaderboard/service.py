"""Leaderboard reads."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.db.models import LeaderboardEntry, User

SORT_COLUMNS = {
    "net_profit": LeaderboardEntry.net_profit,
    "win_rate": LeaderboardEntry.win_rate,
    "total_wins": LeaderboardEntry.total_wins,
    "current_streak": LeaderboardEntry.current_streak,
}


async def get_leaderboard(
    db: AsyncSession, sort_by: str = "net_profit", limit: int = 100,
) -> list[tuple[LeaderboardEntry, str]]:
    """Top entries with usernames, best first. Ties fall back to net profit, then user id."""
    column = SORT_COLUMNS[sort_by]
    result = await db.execute(
        select(LeaderboardEntry, User.username)
        .join(User, User.id == LeaderboardEntry.user_id)
        .order_by(column.desc(), LeaderboardEntry.net_profit.desc(), LeaderboardEntry.user_id.asc())
        .limit(limit)
    )
    return [(row.LeaderboardEntry, row.username) for row in result]
