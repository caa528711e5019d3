"""Profile router: the caller's profile, stakes and ledger."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.auth.dependencies import get_current_user
from overunder.betting.pool import get_totals_many, list_user_stakes, potential_winnings
from overunder.betting.router import build_proposition_response
from overunder.clock import utcnow
from overunder.database import get_session
from overunder.db.models import STATUS_RESOLVED, User
from overunder.grants.service import grant_status
from overunder.ledger.service import get_entries
from overunder.users.schemas import (
    DailyGrantInfo,
    LedgerEntryResponse,
    LedgerResponse,
    MyStakeItem,
    MyStakesResponse,
    UserResponse,
)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    status = grant_status(user.last_claim_date, utcnow())
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        balance=user.balance,
        last_claim_date=user.last_claim_date,
        created_at=user.created_at,
        daily_grant=DailyGrantInfo(
            can_claim=status.can_claim,
            next_claim_at=status.next_claim_at,
            seconds_until_next_claim=status.seconds_until_next_claim,
        ),
    )


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    """The caller's profile, created on first authentication."""
    return _user_response(user)


@router.get("/me/stakes", response_model=MyStakesResponse)
async def my_stakes(
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The caller's stakes with their propositions and potential or settled winnings."""
    now = utcnow()
    rows = await list_user_stakes(db, user.id, limit)
    totals = await get_totals_many(db, [prop.id for _, prop in rows])

    items = []
    for stake, prop in rows:
        pool = totals[prop.id]
        items.append(MyStakeItem(
            stake_id=stake.id,
            side=stake.side,
            amount=stake.amount,
            created_at=stake.created_at,
            payout=stake.payout,
            potential_winnings=potential_winnings(stake, pool, prop),
            won=(stake.side == prop.winning_side) if prop.status == STATUS_RESOLVED else None,
            proposition=build_proposition_response(prop, pool, now, stake),
        ))
    return MyStakesResponse(stakes=items, total=len(items))


@router.get("/me/ledger", response_model=LedgerResponse)
async def my_ledger(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Most recent balance changes, newest first."""
    entries = await get_entries(db, user.id, limit)
    return LedgerResponse(entries=[
        LedgerEntryResponse(
            id=e.id,
            amount=e.amount,
            reason=e.reason,
            source_id=e.source_id,
            balance_after=e.balance_after,
            created_at=e.created_at,
        )
        for e in entries
    ])
