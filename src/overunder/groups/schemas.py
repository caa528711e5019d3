"""Pydantic schemas for group endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateGroupRequest(BaseModel):
    name: str = Field(..., max_length=64)
    description: str | None = Field(None, max_length=500)
    is_private: bool = False


class AddMembersRequest(BaseModel):
    user_ids: list[str] = Field(..., min_length=1, max_length=100)


class GroupMemberResponse(BaseModel):
    user_id: str
    username: str
    joined_at: datetime
    is_leader: bool


class GroupResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_private: bool
    is_global: bool
    leader_id: str | None = None
    created_at: datetime
    member_count: int
    is_member: bool
    is_leader: bool
    members: list[GroupMemberResponse] = []


class GroupListResponse(BaseModel):
    groups: list[GroupResponse]
    total: int


class MembershipChangeResponse(BaseModel):
    success: bool = True
    message: str
    added: list[str] = []
