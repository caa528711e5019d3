"""Daily grant endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.auth.dependencies import get_current_user
from overunder.clock import utcnow
from overunder.config import get_settings
from overunder.database import get_session
from overunder.db.models import User
from overunder.grants.schemas import ClaimResponse, GrantStatusResponse
from overunder.grants.service import claim, grant_status

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/daily-grant", tags=["Daily Grant"])


@router.get("", response_model=GrantStatusResponse)
async def grant_status_endpoint(user: User = Depends(get_current_user)):
    """Whether the caller can claim now, and when the next window opens."""
    status = grant_status(user.last_claim_date, utcnow())
    return GrantStatusResponse(
        can_claim=status.can_claim,
        next_claim_at=status.next_claim_at,
        seconds_until_next_claim=status.seconds_until_next_claim,
        amount=get_settings().daily_grant_amount,
    )


@router.post("/claim", response_model=ClaimResponse)
async def claim_endpoint(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Claim today's grant. 409 with the remaining wait if already claimed."""
    result = await claim(db, user.id, utcnow())
    logger.info("daily_grant_claimed", user_id=user.id, amount=result.amount)
    return ClaimResponse(amount=result.amount, balance=result.balance, next_claim_at=result.next_claim_at)
