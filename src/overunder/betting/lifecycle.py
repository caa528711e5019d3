"""Proposition lifecycle: creation, the bettable predicate and resolution.

State machine:
  open ──(now >= window_end)──▶ closed ──(creator resolves)──▶ resolved

``closed`` is never written: it is derived from ``window_end`` on every read
and write. ``resolved`` is written exactly once, by a conditional UPDATE in
the same transaction that pays the winners.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from numbers import Real

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.betting.settlement import SettlementPlan, apply_settlement, plan_settlement
from overunder.clock import ensure_utc, utcnow
from overunder.config import get_settings
from overunder.db.models import (
    SIDES,
    STATUS_CLOSED,
    STATUS_OPEN,
    STATUS_RESOLVED,
    Group,
    Proposition,
    Stake,
)
from overunder.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from overunder.groups.service import is_member, member_group_ids, require_group

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------


def is_bettable(prop: Proposition, now: datetime) -> bool:
    """True iff the proposition is open and its betting window has not ended."""
    return prop.status == STATUS_OPEN and ensure_utc(now) < ensure_utc(prop.window_end)


def effective_status(prop: Proposition, now: datetime) -> str:
    """``open``, ``closed`` or ``resolved`` as seen at ``now``."""
    if prop.status == STATUS_RESOLVED:
        return STATUS_RESOLVED
    if ensure_utc(now) >= ensure_utc(prop.window_end):
        return STATUS_CLOSED
    return STATUS_OPEN


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_proposition(db: AsyncSession, proposition_id: int) -> Proposition | None:
    result = await db.execute(select(Proposition).where(Proposition.id == proposition_id))
    return result.scalar_one_or_none()


async def require_proposition(db: AsyncSession, proposition_id: int) -> Proposition:
    prop = await get_proposition(db, proposition_id)
    if prop is None:
        raise NotFoundError(f"Proposition {proposition_id} not found")
    return prop


async def require_visible_proposition(db: AsyncSession, proposition_id: int, user_id: str) -> Proposition:
    """Propositions in private groups are only visible to members."""
    prop = await require_proposition(db, proposition_id)
    group = await require_group(db, prop.group_id)
    if group.is_private and not await is_member(db, group, user_id):
        raise AuthorizationError("This proposition belongs to a private group")
    return prop


async def list_feed(db: AsyncSession, user_id: str, limit: int = 50) -> list[Proposition]:
    """Propositions in every group the user belongs to, newest first."""
    group_ids = await member_group_ids(db, user_id)
    if not group_ids:
        return []
    result = await db.execute(
        select(Proposition)
        .where(Proposition.group_id.in_(group_ids))
        .order_by(Proposition.created_at.desc(), Proposition.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_group_propositions(
    db: AsyncSession, group_id: int, user_id: str, limit: int = 50,
) -> list[Proposition]:
    """Propositions of one group, newest first. Private groups require membership."""
    group = await require_group(db, group_id)
    if group.is_private and not await is_member(db, group, user_id):
        raise AuthorizationError("This group is private")
    result = await db.execute(
        select(Proposition)
        .where(Proposition.group_id == group.id)
        .order_by(Proposition.created_at.desc(), Proposition.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def _validate_target(target: object) -> float:
    if isinstance(target, bool) or not isinstance(target, Real):
        raise ValidationError("Target must be a number")
    value = float(target)
    if not math.isfinite(value):
        raise ValidationError("Target must be a finite number")
    return value


async def create_proposition(
    db: AsyncSession,
    title: str,
    description: str,
    target: float,
    group_id: int,
    creator_id: str,
    window_end: datetime,
    now: datetime | None = None,
) -> Proposition:
    """Create an open proposition.

    The creator must lead the group, unless it is the Global group, where any
    user may create. The betting window must end strictly after ``now``.
    """
    settings = get_settings()
    now = now or utcnow()

    title = (title or "").strip()
    description = (description or "").strip()
    if len(title) < settings.title_min_length:
        raise ValidationError(f"Title must be at least {settings.title_min_length} characters")
    if len(description) < settings.description_min_length:
        raise ValidationError(f"Description must be at least {settings.description_min_length} characters")
    target_value = _validate_target(target)
    if ensure_utc(window_end) <= ensure_utc(now):
        raise ValidationError("Betting window must end in the future")

    group: Group = await require_group(db, group_id)
    if not group.is_global and group.leader_id != creator_id:
        raise AuthorizationError("Only the group leader can create propositions in this group")

    prop = Proposition(
        title=title,
        description=description,
        target=target_value,
        group_id=group.id,
        creator_id=creator_id,
        window_end=ensure_utc(window_end),
        status=STATUS_OPEN,
        created_at=now,
    )
    db.add(prop)
    await db.flush()
    await db.commit()

    logger.info("Proposition created: id=%d group=%d creator=%s", prop.id, group.id, creator_id)
    return prop


# ---------------------------------------------------------------------------
# Resolve
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolutionResult:
    proposition: Proposition
    plan: SettlementPlan

    @property
    def total_paid(self) -> int:
        return self.plan.total_paid


async def _publish_resolution(redis: object, prop: Proposition, plan: SettlementPlan) -> None:
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            "pubsub:proposition_resolved",
            json.dumps({
                "proposition_id": prop.id,
                "group_id": prop.group_id,
                "winning_side": plan.winning_side,
                "total_pot": plan.total_pot,
                "total_paid": plan.total_paid,
                "winners": [d.user_id for d in plan.winners],
            }),
        )
    except Exception:
        logger.warning("Failed to publish proposition_resolved for %d", prop.id, exc_info=True)


async def resolve_proposition(
    db: AsyncSession,
    proposition_id: int,
    winning_side: str,
    requester_id: str,
    now: datetime | None = None,
    redis: object = None,
) -> ResolutionResult:
    """Resolve a proposition and settle its pool in one transaction.

    Raises:
        ValidationError: winning side is not over/under.
        NotFoundError: unknown proposition.
        AuthorizationError: requester is not the creator.
        InvalidStateError: already resolved, or the betting window has not ended.
    """
    if winning_side not in SIDES:
        raise ValidationError(f"Winning side must be one of {', '.join(SIDES)}")
    now = now or utcnow()

    prop = await require_proposition(db, proposition_id)
    if prop.creator_id != requester_id:
        raise AuthorizationError("Only the creator can resolve this proposition")
    if prop.status == STATUS_RESOLVED:
        raise InvalidStateError("This proposition has already been resolved")
    if ensure_utc(now) < ensure_utc(prop.window_end):
        raise InvalidStateError("Cannot resolve before the betting window ends")

    try:
        result = await db.execute(
            update(Proposition)
            .where(Proposition.id == prop.id, Proposition.status != STATUS_RESOLVED)
            .values(status=STATUS_RESOLVED, winning_side=winning_side, resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError("This proposition has already been resolved")

        stakes = (
            await db.execute(select(Stake).where(Stake.proposition_id == prop.id).order_by(Stake.id))
        ).scalars().all()
        plan = plan_settlement(stakes, winning_side, get_settings().refund_when_no_winners)
        await apply_settlement(db, prop, plan, now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(prop)
    logger.info(
        "Proposition %d resolved %s: %d winners paid %d of a %d pot",
        prop.id, winning_side, len(plan.winners), plan.total_paid, plan.total_pot,
    )
    await _publish_resolution(redis, prop, plan)
    return ResolutionResult(proposition=prop, plan=plan)
