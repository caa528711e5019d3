"""Pydantic schemas for leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    username: str
    total_bets: int
    total_wins: int
    total_losses: int
    win_rate: float
    total_wagered: int
    total_winnings: int
    net_profit: int
    current_streak: int
    best_streak: int
    last_updated: datetime


class LeaderboardResponse(BaseModel):
    sort_by: str
    entries: list[LeaderboardEntryResponse]


class RebuildResponse(BaseModel):
    success: bool = True
    updated: int
