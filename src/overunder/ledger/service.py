"""Currency ledger: atomic debit/credit with a journal entry per mutation.

Balances live on ``users.balance``; every change also writes one
``ledger_entries`` row whose unique ``idempotency_key`` rejects a repeated
stake, payout or grant for the same source. Callers own the transaction:
these helpers flush but never commit.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.clock import utcnow
from overunder.db.models import LedgerEntry, User
from overunder.errors import InsufficientFundsError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

REASON_SIGNUP_BONUS = "signup_bonus"
REASON_STAKE = "stake"
REASON_PAYOUT = "payout"
REASON_REFUND = "refund"
REASON_DAILY_GRANT = "daily_grant"


def stake_key(proposition_id: int, user_id: str) -> str:
    return f"stake:{proposition_id}:{user_id}"


def payout_key(proposition_id: int, user_id: str) -> str:
    return f"payout:{proposition_id}:{user_id}"


def refund_key(proposition_id: int, user_id: str) -> str:
    return f"refund:{proposition_id}:{user_id}"


def daily_grant_key(user_id: str, day_iso: str) -> str:
    return f"daily_grant:{user_id}:{day_iso}"


async def record_entry(
    db: AsyncSession,
    user_id: str,
    amount: int,
    reason: str,
    source_id: str | None,
    idempotency_key: str,
    balance_after: int,
    now: datetime | None = None,
) -> LedgerEntry:
    """Append a journal entry. Raises IntegrityError on a repeated idempotency key."""
    entry = LedgerEntry(
        user_id=user_id,
        amount=amount,
        reason=reason,
        source_id=source_id,
        balance_after=balance_after,
        idempotency_key=idempotency_key,
        created_at=now or utcnow(),
    )
    db.add(entry)
    await db.flush()
    return entry


async def _raise_missing_or_short(db: AsyncSession, user_id: str, amount: int) -> None:
    balance = await db.scalar(select(User.balance).where(User.id == user_id))
    if balance is None:
        raise NotFoundError(f"User {user_id} not found")
    raise InsufficientFundsError(f"Insufficient balance: {balance} available, {amount} requested")


async def debit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    *,
    reason: str,
    source_id: str | None,
    idempotency_key: str,
    now: datetime | None = None,
) -> int:
    """Subtract ``amount`` from the balance if it covers it. Returns the new balance.

    The guard lives in the UPDATE itself, so two concurrent debits can never
    drive the balance negative.
    """
    if amount <= 0:
        raise ValidationError("Amount must be positive")

    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.balance >= amount)
        .values(balance=User.balance - amount)
        .returning(User.balance)
    )
    new_balance = result.scalar_one_or_none()
    if new_balance is None:
        await _raise_missing_or_short(db, user_id, amount)

    await record_entry(db, user_id, -amount, reason, source_id, idempotency_key, new_balance, now)
    return new_balance


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    *,
    reason: str,
    source_id: str | None,
    idempotency_key: str,
    now: datetime | None = None,
) -> int:
    """Add ``amount`` to the balance. Returns the new balance."""
    if amount <= 0:
        raise ValidationError("Amount must be positive")

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(balance=User.balance + amount)
        .returning(User.balance)
    )
    new_balance = result.scalar_one_or_none()
    if new_balance is None:
        raise NotFoundError(f"User {user_id} not found")

    await record_entry(db, user_id, amount, reason, source_id, idempotency_key, new_balance, now)
    return new_balance


async def get_entries(db: AsyncSession, user_id: str, limit: int = 50) -> list[LedgerEntry]:
    """Most recent ledger entries for a user, newest first."""
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.user_id == user_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
