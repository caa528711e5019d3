"""Proposition endpoints: create, feed, detail, stake and resolve."""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.auth.dependencies import get_current_user
from overunder.betting.lifecycle import (
    create_proposition,
    effective_status,
    is_bettable,
    list_feed,
    require_visible_proposition,
    resolve_proposition,
)
from overunder.betting.pool import (
    PoolTotals,
    compute_odds,
    get_totals,
    get_totals_many,
    place_stake,
    potential_winnings,
)
from overunder.betting.schemas import (
    CreatePropositionRequest,
    MyStakeResponse,
    PayoutLine,
    PlaceStakeRequest,
    PlaceStakeResponse,
    PoolResponse,
    PropositionListResponse,
    PropositionResponse,
    ResolveRequest,
    ResolveResponse,
    StakeResponse,
)
from overunder.betting.settlement import summarize
from overunder.clock import utcnow
from overunder.database import get_session
from overunder.db.models import Proposition, Stake, User
from overunder.dependencies import get_redis_dep

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/propositions", tags=["Propositions"])


# ── Helpers ──


def _pool_response(totals: PoolTotals) -> PoolResponse:
    over_share, under_share = compute_odds(totals.total_over, totals.total_under)
    return PoolResponse(
        total_over=totals.total_over,
        total_under=totals.total_under,
        total_pot=totals.total_pot,
        participants=totals.participants,
        over_share=round(over_share, 4),
        under_share=round(under_share, 4),
    )


def _stake_response(stake: Stake) -> StakeResponse:
    return StakeResponse(
        id=stake.id,
        proposition_id=stake.proposition_id,
        user_id=stake.user_id,
        side=stake.side,
        amount=stake.amount,
        payout=stake.payout,
        created_at=stake.created_at,
    )


def build_proposition_response(
    prop: Proposition,
    totals: PoolTotals,
    now: datetime,
    my_stake: Stake | None = None,
) -> PropositionResponse:
    """Build a PropositionResponse with derived status, odds and the caller's stake."""
    mine = None
    if my_stake is not None:
        mine = MyStakeResponse(
            **_stake_response(my_stake).model_dump(),
            potential_winnings=potential_winnings(my_stake, totals, prop),
        )
    return PropositionResponse(
        id=prop.id,
        title=prop.title,
        description=prop.description,
        target=prop.target,
        group_id=prop.group_id,
        creator_id=prop.creator_id,
        window_end=prop.window_end,
        status=effective_status(prop, now),
        is_bettable=is_bettable(prop, now),
        winning_side=prop.winning_side,
        resolved_at=prop.resolved_at,
        created_at=prop.created_at,
        pool=_pool_response(totals),
        my_stake=mine,
    )


async def build_proposition_list(
    db: AsyncSession, props: list[Proposition], user_id: str, now: datetime,
) -> list[PropositionResponse]:
    """Responses for a page of propositions with two queries for totals and stakes."""
    ids = [p.id for p in props]
    totals = await get_totals_many(db, ids)
    mine: dict[int, Stake] = {}
    if ids:
        result = await db.execute(select(Stake).where(Stake.proposition_id.in_(ids), Stake.user_id == user_id))
        mine = {s.proposition_id: s for s in result.scalars().all()}
    return [
        build_proposition_response(p, totals.get(p.id, PoolTotals()), now, mine.get(p.id))
        for p in props
    ]


# ── Endpoints ──


@router.post("", response_model=PropositionResponse, status_code=201)
async def create_proposition_endpoint(
    body: CreatePropositionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Create a proposition in a group the caller leads (or in Global)."""
    now = utcnow()
    prop = await create_proposition(
        db, body.title, body.description, body.target, body.group_id, user.id, body.window_end, now,
    )
    return build_proposition_response(prop, PoolTotals(), now)


@router.get("", response_model=PropositionListResponse)
async def list_propositions_endpoint(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Propositions from every group the caller belongs to, newest first."""
    now = utcnow()
    props = await list_feed(db, user.id, limit)
    items = await build_proposition_list(db, props, user.id, now)
    return PropositionListResponse(propositions=items, total=len(items))


@router.get("/{proposition_id}", response_model=PropositionResponse)
async def get_proposition_endpoint(
    proposition_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Proposition detail with pool totals, odds and the caller's stake."""
    prop = await require_visible_proposition(db, proposition_id, user.id)
    items = await build_proposition_list(db, [prop], user.id, utcnow())
    return items[0]


@router.post("/{proposition_id}/stakes", response_model=PlaceStakeResponse, status_code=201)
async def place_stake_endpoint(
    proposition_id: int,
    body: PlaceStakeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Stake on one side. Returns the stake, the caller's new balance and fresh totals."""
    result = await place_stake(db, proposition_id, user.id, body.side, body.amount, utcnow())
    logger.info(
        "stake_placed",
        proposition_id=proposition_id,
        user_id=user.id,
        side=body.side,
        amount=body.amount,
    )
    return PlaceStakeResponse(
        stake=_stake_response(result.stake),
        balance=result.balance,
        pool=_pool_response(result.totals),
    )


@router.post("/{proposition_id}/resolve", response_model=ResolveResponse)
async def resolve_proposition_endpoint(
    proposition_id: int,
    body: ResolveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Resolve with the winning side and pay out the pool. Creator only."""
    now = utcnow()
    result = await resolve_proposition(db, proposition_id, body.winning_side, user.id, now, redis=redis)
    totals = await get_totals(db, proposition_id)
    logger.info(
        "proposition_resolved",
        proposition_id=proposition_id,
        winning_side=body.winning_side,
        actual_result=body.actual_result,
        total_paid=result.total_paid,
    )
    return ResolveResponse(
        message=f"Resolved {body.winning_side}: paid {result.total_paid} to {len(result.plan.winners)} winner(s)",
        proposition=build_proposition_response(result.proposition, totals, now),
        payouts=[PayoutLine(**line) for line in summarize(result.plan)],
        total_paid=result.total_paid,
    )
