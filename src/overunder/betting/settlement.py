"""Pari-mutuel settlement.

Winners split the entire pot (both sides, their own principal included) in
proportion to their share of the winning side's total stake. There is no house
cut. Payouts are floored to whole units everywhere, so the sum of payouts can
never exceed the pot; the remainder (at most one unit per winner) is not
redistributed.

If nobody staked the winning side the pot is forfeited by default. With
``refund_when_no_winners`` every stake is returned instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.db.models import SIDES, Proposition, Stake
from overunder.errors import ValidationError
from overunder.ledger.service import REASON_PAYOUT, REASON_REFUND, credit, payout_key, refund_key

logger = logging.getLogger(__name__)


class StakeLike(Protocol):
    id: int
    user_id: str
    side: str
    amount: int


def payout_for(amount: int, winning_side_total: int, total_pot: int) -> int:
    """floor(amount / winning_side_total * total_pot), computed exactly in integers."""
    if winning_side_total <= 0 or amount <= 0:
        return 0
    return (amount * total_pot) // winning_side_total


@dataclass(frozen=True)
class Distribution:
    stake_id: int
    user_id: str
    side: str
    amount: int
    payout: int


@dataclass(frozen=True)
class SettlementPlan:
    winning_side: str
    total_over: int
    total_under: int
    winning_side_total: int
    winners: list[Distribution] = field(default_factory=list)
    losers: list[Distribution] = field(default_factory=list)
    refunded: bool = False

    @property
    def total_pot(self) -> int:
        return self.total_over + self.total_under

    @property
    def total_paid(self) -> int:
        return sum(d.payout for d in self.winners) + sum(d.payout for d in self.losers)

    @property
    def forfeited(self) -> int:
        """Units of the pot nobody receives (rounding dust or an unclaimed pot)."""
        return self.total_pot - self.total_paid


def plan_settlement(
    stakes: Iterable[StakeLike],
    winning_side: str,
    refund_when_no_winners: bool = False,
) -> SettlementPlan:
    """Compute every stake's payout without touching the store."""
    if winning_side not in SIDES:
        raise ValidationError(f"Winning side must be one of {', '.join(SIDES)}")

    stakes = list(stakes)
    total_over = sum(s.amount for s in stakes if s.side == "over")
    total_under = sum(s.amount for s in stakes if s.side == "under")
    winning_side_total = total_over if winning_side == "over" else total_under
    total_pot = total_over + total_under

    if winning_side_total == 0:
        losers = [
            Distribution(s.id, s.user_id, s.side, s.amount, s.amount if refund_when_no_winners else 0)
            for s in stakes
        ]
        return SettlementPlan(
            winning_side=winning_side,
            total_over=total_over,
            total_under=total_under,
            winning_side_total=0,
            losers=losers,
            refunded=refund_when_no_winners and bool(stakes),
        )

    winners = []
    losers = []
    for s in stakes:
        if s.side == winning_side:
            winners.append(
                Distribution(s.id, s.user_id, s.side, s.amount, payout_for(s.amount, winning_side_total, total_pot))
            )
        else:
            losers.append(Distribution(s.id, s.user_id, s.side, s.amount, 0))

    return SettlementPlan(
        winning_side=winning_side,
        total_over=total_over,
        total_under=total_under,
        winning_side_total=winning_side_total,
        winners=winners,
        losers=losers,
    )


async def apply_settlement(
    db: AsyncSession,
    proposition: Proposition,
    plan: SettlementPlan,
    now: datetime,
) -> None:
    """Credit balances and record each stake's payout inside the caller's transaction."""
    source_id = f"proposition:{proposition.id}"

    for d in plan.winners:
        await credit(
            db, d.user_id, d.payout,
            reason=REASON_PAYOUT,
            source_id=source_id,
            idempotency_key=payout_key(proposition.id, d.user_id),
            now=now,
        )

    for d in plan.losers:
        if d.payout > 0:
            await credit(
                db, d.user_id, d.payout,
                reason=REASON_REFUND,
                source_id=source_id,
                idempotency_key=refund_key(proposition.id, d.user_id),
                now=now,
            )

    for d in (*plan.winners, *plan.losers):
        await db.execute(update(Stake).where(Stake.id == d.stake_id).values(payout=d.payout))

    if plan.winning_side_total == 0:
        logger.info(
            "Proposition %d resolved %s with no winning stakes: pot of %d %s",
            proposition.id, plan.winning_side, plan.total_pot,
            "refunded" if plan.refunded else "forfeited",
        )


def summarize(plan: SettlementPlan) -> Sequence[dict]:
    """Payout lines for API responses, winners first."""
    return [
        {
            "user_id": d.user_id,
            "side": d.side,
            "amount": d.amount,
            "payout": d.payout,
            "won": d.side == plan.winning_side,
        }
        for d in (*plan.winners, *plan.losers)
    ]
