"""Daily currency grant, claimable once per UTC calendar day.

Eligibility resets at UTC midnight, not on a rolling 24h timer: a claim at
23:59 UTC may be followed by another at 00:00 UTC. The claim is a conditional
UPDATE on ``last_claim_date`` so concurrent claims for the same user issue at
most one grant; the per-day ledger key is a second backstop.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.clock import ensure_utc, next_utc_midnight, start_of_utc_day, utc_date, utcnow
from overunder.config import get_settings
from overunder.db.models import User
from overunder.errors import AlreadyClaimedError, NotFoundError
from overunder.ledger.service import REASON_DAILY_GRANT, daily_grant_key, record_entry

logger = logging.getLogger(__name__)


def can_claim(last_claim_date: datetime | None, now: datetime) -> bool:
    """True if never claimed, or ``now`` is at/after the UTC midnight following the last claim."""
    if last_claim_date is None:
        return True
    return ensure_utc(now) >= next_utc_midnight(last_claim_date)


def next_claim_at(last_claim_date: datetime | None, now: datetime) -> datetime:
    """When the user may next claim; ``now`` if they already can."""
    if can_claim(last_claim_date, now):
        return ensure_utc(now)
    return next_utc_midnight(last_claim_date)  # type: ignore[arg-type]


def seconds_until_next_claim(last_claim_date: datetime | None, now: datetime) -> int:
    """Whole seconds until eligibility, rounded up; 0 when claimable."""
    delta = (next_claim_at(last_claim_date, now) - ensure_utc(now)).total_seconds()
    return max(0, math.ceil(delta))


@dataclass(frozen=True)
class GrantStatus:
    can_claim: bool
    next_claim_at: datetime
    seconds_until_next_claim: int


def grant_status(last_claim_date: datetime | None, now: datetime) -> GrantStatus:
    return GrantStatus(
        can_claim=can_claim(last_claim_date, now),
        next_claim_at=next_claim_at(last_claim_date, now),
        seconds_until_next_claim=seconds_until_next_claim(last_claim_date, now),
    )


@dataclass(frozen=True)
class ClaimResult:
    amount: int
    balance: int
    next_claim_at: datetime


def _already_claimed(last_claim_date: datetime, now: datetime) -> AlreadyClaimedError:
    wait = seconds_until_next_claim(last_claim_date, now)
    hours, rem = divmod(wait, 3600)
    minutes = rem // 60
    return AlreadyClaimedError(
        f"Daily grant already claimed. Next claim in {hours}h {minutes}m",
        next_claim_at=next_utc_midnight(last_claim_date),
        retry_after_seconds=wait,
    )


async def claim(db: AsyncSession, user_id: str, now: datetime | None = None) -> ClaimResult:
    """Credit the daily grant and stamp ``last_claim_date``, atomically.

    Raises:
        NotFoundError: unknown user.
        AlreadyClaimedError: already claimed today (UTC); carries the wait.

    A rejection after the conditional update rolls the session back and
    expires ORM objects loaded in it.
    """
    now = ensure_utc(now or utcnow())
    amount = get_settings().daily_grant_amount

    row = (await db.execute(select(User.id, User.last_claim_date).where(User.id == user_id))).one_or_none()
    if row is None:
        raise NotFoundError(f"User {user_id} not found")
    last = row.last_claim_date
    if not can_claim(last, now):
        raise _already_claimed(last, now)

    try:
        result = await db.execute(
            update(User)
            .where(
                User.id == user_id,
                or_(User.last_claim_date.is_(None), User.last_claim_date < start_of_utc_day(now)),
            )
            .values(balance=User.balance + amount, last_claim_date=now)
            .returning(User.balance)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            # A concurrent claim won the race
            raise AlreadyClaimedError(
                "Daily grant already claimed today",
                next_claim_at=next_utc_midnight(now),
                retry_after_seconds=seconds_until_next_claim(now, now),
            )
        await record_entry(
            db, user_id, amount, REASON_DAILY_GRANT, None,
            daily_grant_key(user_id, utc_date(now).isoformat()), balance, now,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyClaimedError(
            "Daily grant already claimed today",
            next_claim_at=next_utc_midnight(now),
            retry_after_seconds=seconds_until_next_claim(now, now),
        ) from None
    except AlreadyClaimedError:
        await db.rollback()
        raise

    logger.info("Daily grant issued: user=%s amount=%d balance=%d", user_id, amount, balance)
    return ClaimResult(amount=amount, balance=balance, next_claim_at=next_utc_midnight(now))
