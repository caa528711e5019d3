"""Pydantic schemas for proposition and stake endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Side = Literal["over", "under"]


class CreatePropositionRequest(BaseModel):
    title: str = Field(..., max_length=200)
    description: str
    target: float
    group_id: int
    window_end: datetime


class PlaceStakeRequest(BaseModel):
    side: Side
    amount: int


class ResolveRequest(BaseModel):
    winning_side: Side
    actual_result: float | None = None  # Accepted for the client's convenience, never stored


class PoolResponse(BaseModel):
    total_over: int
    total_under: int
    total_pot: int
    participants: int
    over_share: float
    under_share: float


class StakeResponse(BaseModel):
    id: int
    proposition_id: int
    user_id: str
    side: Side
    amount: int
    payout: int | None = None
    created_at: datetime


class MyStakeResponse(StakeResponse):
    potential_winnings: int


class PropositionResponse(BaseModel):
    id: int
    title: str
    description: str
    target: float
    group_id: int
    creator_id: str
    window_end: datetime
    status: Literal["open", "closed", "resolved"]
    is_bettable: bool
    winning_side: Side | None = None
    resolved_at: datetime | None = None
    created_at: datetime
    pool: PoolResponse
    my_stake: MyStakeResponse | None = None


class PropositionListResponse(BaseModel):
    propositions: list[PropositionResponse]
    total: int


class PlaceStakeResponse(BaseModel):
    success: bool = True
    stake: StakeResponse
    balance: int
    pool: PoolResponse


class PayoutLine(BaseModel):
    user_id: str
    side: Side
    amount: int
    payout: int
    won: bool


class ResolveResponse(BaseModel):
    success: bool = True
    message: str
    proposition: PropositionResponse
    payouts: list[PayoutLine]
    total_paid: int
