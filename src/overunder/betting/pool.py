"""Stake pool: placement, aggregate totals and odds.

Placement is one unit of work: the balance check, the debit and the stake
insert commit together or not at all. The proposition row is locked for share
while placing so a concurrent resolution (which updates that row) either
settles this stake or sees it rejected, never both. The unique
(proposition, user) constraint and the ledger's idempotency key backstop
concurrent duplicate placements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.betting.lifecycle import is_bettable
from overunder.betting.settlement import payout_for
from overunder.clock import utcnow
from overunder.db.models import SIDE_OVER, SIDE_UNDER, SIDES, STATUS_RESOLVED, Proposition, Stake, User
from overunder.errors import (
    AuthorizationError,
    BettingClosedError,
    DuplicateStakeError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
    WagerError,
)
from overunder.groups.service import is_member, require_group
from overunder.ledger.service import REASON_STAKE, debit, stake_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolTotals:
    total_over: int = 0
    total_under: int = 0
    participants: int = 0

    @property
    def total_pot(self) -> int:
        return self.total_over + self.total_under

    def side_total(self, side: str) -> int:
        return self.total_over if side == SIDE_OVER else self.total_under


def compute_odds(total_over: int, total_under: int) -> tuple[float, float]:
    """Share of the pot on each side as ``(over, under)``; an empty pool is 50/50."""
    total = total_over + total_under
    if total <= 0:
        return 0.5, 0.5
    over_share = total_over / total
    return over_share, 1.0 - over_share


def _totals_query():
    return select(
        Stake.proposition_id,
        func.coalesce(func.sum(case((Stake.side == SIDE_OVER, Stake.amount), else_=0)), 0),
        func.coalesce(func.sum(case((Stake.side == SIDE_UNDER, Stake.amount), else_=0)), 0),
        func.count(func.distinct(Stake.user_id)),
    ).group_by(Stake.proposition_id)


async def get_totals(db: AsyncSession, proposition_id: int) -> PoolTotals:
    """Totals over all committed stakes on one proposition."""
    return (await get_totals_many(db, [proposition_id])).get(proposition_id, PoolTotals())


async def get_totals_many(db: AsyncSession, proposition_ids: list[int]) -> dict[int, PoolTotals]:
    """Totals for several propositions in one query. Missing ids have no stakes."""
    if not proposition_ids:
        return {}
    result = await db.execute(_totals_query().where(Stake.proposition_id.in_(proposition_ids)))
    return {
        prop_id: PoolTotals(int(over), int(under), int(participants))
        for prop_id, over, under, participants in result
    }


async def get_user_stake(db: AsyncSession, proposition_id: int, user_id: str) -> Stake | None:
    result = await db.execute(
        select(Stake).where(Stake.proposition_id == proposition_id, Stake.user_id == user_id)
    )
    return result.scalar_one_or_none()


def potential_winnings(stake: Stake, totals: PoolTotals, proposition: Proposition) -> int:
    """What the stake pays if its side wins against the current pool.

    Once the proposition is resolved this is the settled payout.
    """
    if proposition.status == STATUS_RESOLVED:
        return stake.payout or 0
    return payout_for(stake.amount, totals.side_total(stake.side), totals.total_pot)


def _validate_stake_input(side: str, amount: object) -> None:
    if side not in SIDES:
        raise ValidationError(f"Side must be one of {', '.join(SIDES)}")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Amount must be a whole number")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")


@dataclass(frozen=True)
class PlacementResult:
    stake: Stake
    balance: int
    totals: PoolTotals


async def place_stake(
    db: AsyncSession,
    proposition_id: int,
    user_id: str,
    side: str,
    amount: int,
    now: datetime | None = None,
) -> PlacementResult:
    """Place one stake and debit the staker, atomically.

    Raises:
        ValidationError: bad side or non-positive amount.
        NotFoundError: unknown proposition or user.
        AuthorizationError: staker is not a member of the proposition's group.
        BettingClosedError: the proposition is resolved or its window has ended.
        DuplicateStakeError: the user already staked on this proposition.
        InsufficientFundsError: amount exceeds the user's balance.

    Any rejection raised after the first read rolls the session back, which
    expires ORM objects loaded in it; read their ids before calling.
    """
    _validate_stake_input(side, amount)
    now = now or utcnow()

    try:
        result = await db.execute(
            select(Proposition).where(Proposition.id == proposition_id).with_for_update(read=True)
        )
        prop = result.scalar_one_or_none()
        if prop is None:
            raise NotFoundError(f"Proposition {proposition_id} not found")

        group = await require_group(db, prop.group_id)
        if not await is_member(db, group, user_id):
            raise AuthorizationError("Only members of this group can bet on it")

        if not is_bettable(prop, now):
            raise BettingClosedError("Betting is closed for this proposition")

        if await get_user_stake(db, prop.id, user_id) is not None:
            raise DuplicateStakeError("You have already placed a bet on this proposition")

        available = await db.scalar(select(User.balance).where(User.id == user_id))
        if available is None:
            raise NotFoundError(f"User {user_id} not found")
        if amount > available:
            raise InsufficientFundsError(f"Insufficient balance: {available} available, {amount} requested")

        balance = await debit(
            db, user_id, amount,
            reason=REASON_STAKE,
            source_id=f"proposition:{prop.id}",
            idempotency_key=stake_key(prop.id, user_id),
            now=now,
        )

        # Re-read inside the write transaction; stores without row locks serialize here
        status = await db.scalar(select(Proposition.status).where(Proposition.id == prop.id))
        if status == STATUS_RESOLVED:
            raise BettingClosedError("Betting is closed for this proposition")

        stake = Stake(proposition_id=prop.id, user_id=user_id, side=side, amount=amount, created_at=now)
        db.add(stake)
        await db.flush()
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateStakeError("You have already placed a bet on this proposition") from None
    except WagerError:
        await db.rollback()
        raise

    totals = await get_totals(db, prop.id)
    logger.info(
        "Stake placed: user=%s proposition=%d side=%s amount=%d balance=%d",
        user_id, prop.id, side, amount, balance,
    )
    return PlacementResult(stake=stake, balance=balance, totals=totals)


async def list_user_stakes(db: AsyncSession, user_id: str, limit: int = 100) -> list[tuple[Stake, Proposition]]:
    """The user's stakes with their propositions, newest first."""
    result = await db.execute(
        select(Stake, Proposition)
        .join(Proposition, Proposition.id == Stake.proposition_id)
        .where(Stake.user_id == user_id)
        .order_by(Stake.created_at.desc(), Stake.id.desc())
        .limit(limit)
    )
    return [(row.Stake, row.Proposition) for row in result]
