"""Leaderboard aggregation: batch recomputation over every resolved stake.

The leaderboard is derived data. Each rebuild rescans all stakes on resolved
propositions, recomputes winnings with the settlement formula, and replaces
the stored rows wholesale (upsert keyed by user, stale rows removed). Running
it twice without new resolutions yields identical rows.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.betting.settlement import payout_for
from overunder.clock import ensure_utc, utcnow
from overunder.config import get_settings
from overunder.db.models import SIDE_OVER, STATUS_RESOLVED, LeaderboardEntry, Proposition, Stake

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedStake:
    """One stake on a resolved proposition, as scanned for aggregation."""

    stake_id: int
    proposition_id: int
    user_id: str
    side: str
    amount: int
    winning_side: str
    resolved_at: datetime


@dataclass
class UserPerformance:
    user_id: str
    total_bets: int = 0
    total_wins: int = 0
    total_losses: int = 0
    win_rate: float = 0.0
    total_wagered: int = 0
    total_winnings: int = 0
    net_profit: int = 0
    current_streak: int = 0
    best_streak: int = 0

    def as_values(self) -> dict[str, object]:
        return {
            "total_bets": self.total_bets,
            "total_wins": self.total_wins,
            "total_losses": self.total_losses,
            "win_rate": self.win_rate,
            "total_wagered": self.total_wagered,
            "total_winnings": self.total_winnings,
            "net_profit": self.net_profit,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
        }


def compute_leaderboard(
    rows: Iterable[ResolvedStake],
    refund_when_no_winners: bool = False,
) -> dict[str, UserPerformance]:
    """Per-user performance from every stake on resolved propositions.

    Rows must cover all stakes of each proposition they mention, since pool
    totals are rebuilt from them. Streaks follow resolution order
    (resolved_at, then stake id).
    """
    rows = list(rows)

    pools: dict[int, list[int]] = defaultdict(lambda: [0, 0])
    for r in rows:
        pools[r.proposition_id][0 if r.side == SIDE_OVER else 1] += r.amount

    by_user: dict[str, list[ResolvedStake]] = defaultdict(list)
    for r in rows:
        by_user[r.user_id].append(r)

    board: dict[str, UserPerformance] = {}
    for user_id, stakes in by_user.items():
        stakes.sort(key=lambda r: (ensure_utc(r.resolved_at), r.stake_id))
        perf = UserPerformance(user_id=user_id)
        run = 0
        for r in stakes:
            over, under = pools[r.proposition_id]
            winning_total = over if r.winning_side == SIDE_OVER else under
            perf.total_bets += 1
            perf.total_wagered += r.amount
            if r.side == r.winning_side:
                perf.total_wins += 1
                perf.total_winnings += payout_for(r.amount, winning_total, over + under)
                run += 1
                perf.best_streak = max(perf.best_streak, run)
            else:
                perf.total_losses += 1
                if winning_total == 0 and refund_when_no_winners:
                    perf.total_winnings += r.amount
                run = 0
        perf.current_streak = run
        perf.net_profit = perf.total_winnings - perf.total_wagered
        perf.win_rate = round(perf.total_wins / perf.total_bets * 100, 2) if perf.total_bets else 0.0
        board[user_id] = perf
    return board


async def load_resolved_stakes(db: AsyncSession) -> list[ResolvedStake]:
    result = await db.execute(
        select(
            Stake.id,
            Stake.proposition_id,
            Stake.user_id,
            Stake.side,
            Stake.amount,
            Proposition.winning_side,
            Proposition.resolved_at,
        )
        .join(Proposition, Proposition.id == Stake.proposition_id)
        .where(Proposition.status == STATUS_RESOLVED)
    )
    return [ResolvedStake(*row) for row in result]


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert
    return postgresql.insert


async def rebuild_leaderboard(db: AsyncSession, now: datetime | None = None) -> int:
    """Recompute and store every leaderboard row. Returns the number of rows written."""
    now = now or utcnow()
    board = compute_leaderboard(await load_resolved_stakes(db), get_settings().refund_when_no_winners)
    insert = _insert_for(db)

    try:
        for perf in board.values():
            values = perf.as_values()
            stmt = insert(LeaderboardEntry).values(user_id=perf.user_id, last_updated=now, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[LeaderboardEntry.user_id],
                set_={**values, "last_updated": now},
            )
            await db.execute(stmt)

        stale = delete(LeaderboardEntry)
        if board:
            stale = stale.where(LeaderboardEntry.user_id.notin_(list(board)))
        await db.execute(stale)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Leaderboard rebuilt: %d entries", len(board))
    return len(board)
