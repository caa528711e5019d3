"""Pydantic schemas for daily grant endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class GrantStatusResponse(BaseModel):
    can_claim: bool
    next_claim_at: datetime
    seconds_until_next_claim: int
    amount: int


class ClaimResponse(BaseModel):
    success: bool = True
    amount: int
    balance: int
    next_claim_at: datetime
