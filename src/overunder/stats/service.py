"""Per-user betting statistics over a rolling window of stake creation dates.

Stakes are bucketed by their UTC creation day and month. Only stakes on
resolved propositions count as wins or losses, but every stake in the window
counts toward bets placed and amount wagered, so open stakes pull net profit
down until they resolve.
"""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.betting.pool import PoolTotals, get_totals_many
from overunder.betting.settlement import payout_for
from overunder.clock import ensure_utc, utc_date, utcnow
from overunder.db.models import STATUS_RESOLVED, Proposition, Stake
from overunder.users.service import require_user


@dataclass(frozen=True)
class StakeRecord:
    proposition_id: int
    side: str
    amount: int
    created_at: datetime
    status: str
    winning_side: str | None


def _round1(value: float) -> float:
    """Round half up to one decimal."""
    return math.floor(value * 10 + 0.5) / 10


def process_user_stakes(stakes: Iterable[StakeRecord], pools: dict[int, PoolTotals]) -> dict[str, Any]:
    """Daily, cumulative, overall and monthly statistics for one user's stakes."""
    daily: dict[str, dict[str, Any]] = {}
    monthly: dict[str, dict[str, Any]] = {}

    total_bets = total_wins = total_losses = 0
    total_wagered = total_winnings = 0
    best_win = worst_loss = 0

    for s in sorted(stakes, key=lambda r: ensure_utc(r.created_at)):
        day = utc_date(s.created_at).isoformat()
        month = day[:7]
        d = daily.setdefault(day, {
            "date": day,
            "total_wagered": 0,
            "total_won": 0,
            "net_profit": 0,
            "bets_placed": 0,
            "bets_won": 0,
        })
        m = monthly.setdefault(month, {"month": month, "bets": 0, "wins": 0, "profit": 0})

        d["bets_placed"] += 1
        d["total_wagered"] += s.amount
        m["bets"] += 1
        total_bets += 1
        total_wagered += s.amount

        if s.status != STATUS_RESOLVED or not s.winning_side:
            continue

        won = s.side == s.winning_side
        winnings = 0
        if won:
            pool = pools.get(s.proposition_id, PoolTotals())
            winnings = payout_for(s.amount, pool.side_total(s.winning_side), pool.total_pot)
        profit = winnings - s.amount if won else -s.amount

        if won:
            d["bets_won"] += 1
            d["total_won"] += winnings
            m["wins"] += 1
            total_wins += 1
            total_winnings += winnings
            best_win = max(best_win, profit)
        else:
            total_losses += 1
            worst_loss = min(worst_loss, profit)

        d["net_profit"] += profit
        m["profit"] += profit

    daily_stats = [daily[k] for k in sorted(daily)]

    cumulative_stats = []
    cum_profit = cum_wagered = cum_bets = cum_wins = 0
    for d in daily_stats:
        cum_profit += d["net_profit"]
        cum_wagered += d["total_wagered"]
        cum_bets += d["bets_placed"]
        cum_wins += d["bets_won"]
        cumulative_stats.append({
            "date": d["date"],
            "cumulative_profit": cum_profit,
            "cumulative_wagered": cum_wagered,
            "cumulative_bets": cum_bets,
            "win_rate": _round1(cum_wins / cum_bets * 100) if cum_bets else 0,
        })

    return {
        "daily_stats": daily_stats,
        "cumulative_stats": cumulative_stats,
        "overall_stats": {
            "total_bets": total_bets,
            "total_wins": total_wins,
            "total_losses": total_losses,
            "total_wagered": total_wagered,
            "total_winnings": total_winnings,
            "net_profit": total_winnings - total_wagered,
            "win_rate": _round1(total_wins / total_bets * 100) if total_bets else 0,
            "best_win": best_win,
            "worst_loss": worst_loss,
        },
        "monthly_performance": [monthly[k] for k in sorted(monthly)],
    }


def stats_etag(stats: dict[str, Any]) -> str:
    """SHA-256 hex digest of the canonical JSON of the stats."""
    canonical = json.dumps(stats, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


async def get_user_stats(
    db: AsyncSession, user_id: str, range_days: int, now: datetime | None = None,
) -> dict[str, Any]:
    """Statistics for stakes the user placed within the last ``range_days`` days."""
    await require_user(db, user_id)
    since = ensure_utc(now or utcnow()) - timedelta(days=range_days)

    result = await db.execute(
        select(
            Stake.proposition_id,
            Stake.side,
            Stake.amount,
            Stake.created_at,
            Proposition.status,
            Proposition.winning_side,
        )
        .join(Proposition, Proposition.id == Stake.proposition_id)
        .where(Stake.user_id == user_id, Stake.created_at >= since)
        .order_by(Stake.created_at.asc(), Stake.id.asc())
    )
    records = [StakeRecord(*row) for row in result]

    resolved_ids = sorted({r.proposition_id for r in records if r.status == STATUS_RESOLVED})
    pools = await get_totals_many(db, resolved_ids)
    return process_user_stakes(records, pools)
