"""Pydantic schemas for user statistics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class DailyStat(BaseModel):
    date: str
    total_wagered: int
    total_won: int
    net_profit: int
    bets_placed: int
    bets_won: int


class CumulativeStat(BaseModel):
    date: str
    cumulative_profit: int
    cumulative_wagered: int
    cumulative_bets: int
    win_rate: float


class OverallStats(BaseModel):
    total_bets: int
    total_wins: int
    total_losses: int
    total_wagered: int
    total_winnings: int
    net_profit: int
    win_rate: float
    best_win: int
    worst_loss: int


class MonthlyPerformance(BaseModel):
    month: str
    bets: int
    wins: int
    profit: int


class BettingStats(BaseModel):
    daily_stats: list[DailyStat]
    cumulative_stats: list[CumulativeStat]
    overall_stats: OverallStats
    monthly_performance: list[MonthlyPerformance]


class UserStatsResponse(BaseModel):
    success: bool = True
    data: BettingStats
    generated_at: datetime
