"""Pydantic schemas for profile endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from overunder.betting.schemas import PropositionResponse


class DailyGrantInfo(BaseModel):
    can_claim: bool
    next_claim_at: datetime
    seconds_until_next_claim: int


class UserResponse(BaseModel):
    id: str
    email: str | None = None
    username: str
    balance: int
    last_claim_date: datetime | None = None
    created_at: datetime
    daily_grant: DailyGrantInfo


class MyStakeItem(BaseModel):
    stake_id: int
    side: str
    amount: int
    created_at: datetime
    payout: int | None = None
    potential_winnings: int
    won: bool | None = None
    proposition: PropositionResponse


class MyStakesResponse(BaseModel):
    stakes: list[MyStakeItem]
    total: int


class LedgerEntryResponse(BaseModel):
    id: int
    amount: int
    reason: str
    source_id: str | None = None
    balance_after: int
    created_at: datetime


class LedgerResponse(BaseModel):
    entries: list[LedgerEntryResponse]
