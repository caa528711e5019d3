"""User profile business logic: lookup and first-login bootstrap."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from overunder.clock import utcnow
from overunder.config import get_settings
from overunder.db.models import User
from overunder.errors import NotFoundError
from overunder.groups.service import add_member_if_missing, ensure_global_group
from overunder.ledger.service import REASON_SIGNUP_BONUS, record_entry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


def default_username(user_id: str) -> str:
    """Username used when the identity provider supplies none."""
    return f"user_{user_id[:8]}"


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    """Get a user by id."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def require_user(db: AsyncSession, user_id: str) -> User:
    """Get a user by id or raise NotFoundError."""
    user = await get_user(db, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def bootstrap_user(
    db: AsyncSession,
    user_id: str,
    email: str | None,
    username: str | None = None,
    now: datetime | None = None,
) -> tuple[User, bool]:
    """Get or create the profile for an authenticated identity.

    On first authentication the profile is created with the configured
    starting balance (journaled as a signup bonus) and joined to the Global
    group, all in one transaction. Returns ``(user, created)``.
    """
    existing = await get_user(db, user_id)
    if existing is not None:
        return existing, False

    settings = get_settings()
    now = now or utcnow()
    user = User(
        id=user_id,
        email=email,
        username=(username or "").strip() or default_username(user_id),
        balance=settings.initial_balance,
        created_at=now,
    )
    db.add(user)
    try:
        await db.flush()
        await record_entry(
            db,
            user_id,
            settings.initial_balance,
            REASON_SIGNUP_BONUS,
            None,
            f"signup:{user_id}",
            settings.initial_balance,
            now,
        )
        global_group = await ensure_global_group(db)
        await add_member_if_missing(db, global_group.id, user_id, now)
        await db.commit()
    except IntegrityError:
        # A concurrent first request created the profile
        await db.rollback()
        return await require_user(db, user_id), False

    logger.info("user_bootstrapped", user_id=user_id, balance=user.balance)
    return user, True
