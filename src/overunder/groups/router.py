"""Group endpoints. Group services commit their own unit of work."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.auth.dependencies import get_current_user
from overunder.betting.lifecycle import list_group_propositions
from overunder.betting.router import build_proposition_list
from overunder.betting.schemas import PropositionListResponse
from overunder.clock import utcnow
from overunder.database import get_session
from overunder.db.models import Group, User
from overunder.errors import AuthorizationError
from overunder.groups.schemas import (
    AddMembersRequest,
    CreateGroupRequest,
    GroupListResponse,
    GroupMemberResponse,
    GroupResponse,
    MembershipChangeResponse,
)
from overunder.groups.service import (
    add_members,
    count_members,
    create_group,
    get_group_members,
    is_member,
    join_group,
    leave_group,
    list_groups,
    require_group,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/groups", tags=["Groups"])


def _group_response(
    group: Group,
    member_count: int,
    user_id: str,
    member: bool,
    members: list | None = None,
) -> GroupResponse:
    """Build a GroupResponse from ORM model."""
    member_responses = [
        GroupMemberResponse(
            user_id=gm.user_id,
            username=u.username,
            joined_at=gm.joined_at,
            is_leader=gm.user_id == group.leader_id,
        )
        for gm, u in members or []
    ]
    return GroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        is_private=group.is_private,
        is_global=group.is_global,
        leader_id=group.leader_id,
        created_at=group.created_at,
        member_count=member_count,
        is_member=member,
        is_leader=group.leader_id == user_id,
        members=member_responses,
    )


@router.get("", response_model=GroupListResponse)
async def list_groups_endpoint(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Groups the caller belongs to plus every public group."""
    rows = await list_groups(db, user.id)
    items = [_group_response(r["group"], r["member_count"], user.id, r["is_member"]) for r in rows]
    return GroupListResponse(groups=items, total=len(items))


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group_endpoint(
    body: CreateGroupRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Create a group. The creator becomes its leader and first member."""
    group = await create_group(db, user.id, body.name, body.description, body.is_private, utcnow())
    logger.info("group_created", group_id=group.id, leader_id=user.id)

    members = await get_group_members(db, group.id)
    return _group_response(group, len(members), user.id, True, members)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Group detail. Members of private groups are only listed to members."""
    group = await require_group(db, group_id)
    member = await is_member(db, group, user.id)
    if group.is_private and not member:
        raise AuthorizationError("This group is private")

    members = [] if group.is_global else await get_group_members(db, group.id)
    return _group_response(group, await count_members(db, group), user.id, member, members)


@router.post("/{group_id}/join", response_model=MembershipChangeResponse)
async def join_group_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Join a public group. Idempotent."""
    added = await join_group(db, group_id, user.id, utcnow())
    message = "Joined group" if added else "Already a member"
    return MembershipChangeResponse(message=message, added=[user.id] if added else [])


@router.post("/{group_id}/members", response_model=MembershipChangeResponse)
async def add_members_endpoint(
    group_id: int,
    body: AddMembersRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Leader adds existing users to the group. Current members are skipped."""
    added = await add_members(db, group_id, user.id, body.user_ids, utcnow())
    return MembershipChangeResponse(message=f"Added {len(added)} member(s)", added=added)


@router.delete("/{group_id}/members/me", response_model=MembershipChangeResponse)
async def leave_group_endpoint(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Leave a group. The leader cannot leave, and nobody leaves Global."""
    await leave_group(db, group_id, user.id)
    return MembershipChangeResponse(message="Left group")


@router.get("/{group_id}/propositions", response_model=PropositionListResponse)
async def group_propositions_endpoint(
    group_id: int,
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Propositions in one group, newest first."""
    props = await list_group_propositions(db, group_id, user.id, limit)
    items = await build_proposition_list(db, props, user.id, utcnow())
    return PropositionListResponse(propositions=items, total=len(items))
