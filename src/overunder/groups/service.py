"""Group business logic.

Rules:
- Every group except Global has exactly one leader, who is always a member
- The leader cannot leave their own group
- The Global group has no leader; every user is implicitly a member
- Only public groups can be joined without an invitation
- Only the leader can add members to a group

Group mutations commit their own unit of work. ensure_global_group and
add_member_if_missing only flush, so user bootstrap can compose them.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.clock import utcnow
from overunder.config import get_settings
from overunder.db.models import Group, GroupMember, User
from overunder.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def get_group(db: AsyncSession, group_id: int) -> Group | None:
    """Get a group by ID."""
    result = await db.execute(select(Group).where(Group.id == group_id))
    return result.scalar_one_or_none()


async def require_group(db: AsyncSession, group_id: int) -> Group:
    """Get a group by ID or raise NotFoundError."""
    group = await get_group(db, group_id)
    if group is None:
        raise NotFoundError(f"Group {group_id} not found")
    return group


async def ensure_global_group(db: AsyncSession) -> Group:
    """Return the Global group, creating it on first use. Flushes only."""
    result = await db.execute(select(Group).where(Group.is_global.is_(True)))
    group = result.scalar_one_or_none()
    if group is not None:
        return group

    group = Group(
        name=get_settings().global_group_name,
        description="Everyone is a member of the Global group.",
        is_private=False,
        is_global=True,
        leader_id=None,
        created_at=utcnow(),
    )
    try:
        async with db.begin_nested():
            db.add(group)
    except IntegrityError:
        result = await db.execute(select(Group).where(Group.is_global.is_(True)))
        return result.scalar_one()
    logger.info("Global group created (id=%d)", group.id)
    return group


async def get_membership(db: AsyncSession, group_id: int, user_id: str) -> GroupMember | None:
    """Get an explicit membership row."""
    result = await db.execute(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def is_member(db: AsyncSession, group: Group, user_id: str) -> bool:
    """Whether the user belongs to the group (always true for Global)."""
    if group.is_global:
        return True
    return await get_membership(db, group.id, user_id) is not None


async def add_member_if_missing(
    db: AsyncSession, group_id: int, user_id: str, now: datetime | None = None,
) -> bool:
    """Insert a membership unless one exists. Returns True if inserted.

    Flushes only; the caller owns the transaction. A concurrent insert that
    wins the race trips the (group_id, user_id) key inside a savepoint and
    counts as already a member.
    """
    if await get_membership(db, group_id, user_id) is not None:
        return False
    try:
        async with db.begin_nested():
            db.add(GroupMember(group_id=group_id, user_id=user_id, joined_at=now or utcnow()))
    except IntegrityError:
        logger.debug("Membership %s in group %d inserted concurrently", user_id, group_id)
        return False
    return True


def _validate_group_name(name: str) -> str:
    settings = get_settings()
    cleaned = name.strip()
    if not settings.group_name_min_length <= len(cleaned) <= settings.group_name_max_length:
        raise ValidationError(
            f"Group name must be {settings.group_name_min_length}-{settings.group_name_max_length} characters"
        )
    return cleaned


async def create_group(
    db: AsyncSession,
    leader_id: str,
    name: str,
    description: str | None = None,
    is_private: bool = False,
    now: datetime | None = None,
) -> Group:
    """Create a group. The creator becomes its leader and first member."""
    cleaned = _validate_group_name(name)
    if cleaned.lower() == get_settings().global_group_name.lower():
        raise ValidationError("That group name is reserved")

    now = now or utcnow()
    group = Group(
        name=cleaned,
        description=(description or "").strip() or None,
        is_private=is_private,
        is_global=False,
        leader_id=leader_id,
        created_at=now,
    )
    db.add(group)
    await db.flush()

    db.add(GroupMember(group_id=group.id, user_id=leader_id, joined_at=now))
    await db.commit()

    logger.info("Group created: %s (id=%d, leader=%s)", cleaned, group.id, leader_id)
    return group


async def join_group(db: AsyncSession, group_id: int, user_id: str, now: datetime | None = None) -> bool:
    """Join a public group. Returns False if the user was already a member."""
    group = await require_group(db, group_id)
    if group.is_private:
        raise AuthorizationError("This group is private; ask its leader for an invitation")

    added = await add_member_if_missing(db, group.id, user_id, now)
    await db.commit()
    if added:
        logger.info("User %s joined group %d", user_id, group.id)
    return added


async def add_members(
    db: AsyncSession,
    group_id: int,
    leader_id: str,
    user_ids: list[str],
    now: datetime | None = None,
) -> list[str]:
    """Leader adds users to the group. Returns the ids that were newly added."""
    group = await require_group(db, group_id)
    if group.is_global:
        raise InvalidStateError("Everyone is already a member of the Global group")
    if group.leader_id != leader_id:
        raise AuthorizationError("Only the group leader can add members")

    unique_ids = list(dict.fromkeys(user_ids))
    found = await db.execute(select(User.id).where(User.id.in_(unique_ids)))
    known = set(found.scalars().all())
    missing = [uid for uid in unique_ids if uid not in known]
    if missing:
        raise NotFoundError(f"Unknown users: {', '.join(missing)}")

    added = []
    for uid in unique_ids:
        if await add_member_if_missing(db, group.id, uid, now):
            added.append(uid)
    await db.commit()

    logger.info("Leader %s added %d members to group %d", leader_id, len(added), group.id)
    return added


async def leave_group(db: AsyncSession, group_id: int, user_id: str) -> None:
    """Leave a group. Leaders must keep their group; nobody leaves Global."""
    group = await require_group(db, group_id)
    if group.is_global:
        raise InvalidStateError("You cannot leave the Global group")
    if group.leader_id == user_id:
        raise InvalidStateError("Group leaders cannot leave their group. Delete the group instead.")

    membership = await get_membership(db, group.id, user_id)
    if membership is None:
        raise NotFoundError("You are not a member of this group")

    await db.delete(membership)
    await db.commit()
    logger.info("User %s left group %d", user_id, group.id)


async def count_members(db: AsyncSession, group: Group) -> int:
    """Number of members; for Global that is every user."""
    if group.is_global:
        return await db.scalar(select(func.count()).select_from(User)) or 0
    return await db.scalar(
        select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group.id)
    ) or 0


async def member_group_ids(db: AsyncSession, user_id: str) -> list[int]:
    """IDs of every group the user belongs to, Global included."""
    result = await db.execute(
        select(Group.id)
        .outerjoin(
            GroupMember,
            (GroupMember.group_id == Group.id) & (GroupMember.user_id == user_id),
        )
        .where(or_(Group.is_global.is_(True), GroupMember.id.isnot(None)))
    )
    return list(result.scalars().all())


async def list_groups(db: AsyncSession, user_id: str) -> list[dict]:
    """Groups the user belongs to plus all public groups."""
    mine = set(await member_group_ids(db, user_id))

    result = await db.execute(
        select(Group)
        .where(or_(Group.id.in_(mine), Group.is_private.is_(False)))
        .order_by(Group.is_global.desc(), Group.created_at.asc(), Group.id.asc())
    )
    groups = list(result.scalars().all())

    counts_result = await db.execute(
        select(GroupMember.group_id, func.count(GroupMember.id))
        .where(GroupMember.group_id.in_([g.id for g in groups]))
        .group_by(GroupMember.group_id)
    )
    counts = {group_id: n for group_id, n in counts_result}
    total_users = await db.scalar(select(func.count()).select_from(User)) or 0

    return [
        {
            "group": g,
            "member_count": total_users if g.is_global else counts.get(g.id, 0),
            "is_member": g.id in mine,
            "is_leader": g.leader_id == user_id,
        }
        for g in groups
    ]


async def get_group_members(db: AsyncSession, group_id: int) -> list[tuple[GroupMember, User]]:
    """Explicit members of a group with user info, oldest first."""
    result = await db.execute(
        select(GroupMember, User)
        .join(User, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc())
    )
    return [(row.GroupMember, row.User) for row in result]
