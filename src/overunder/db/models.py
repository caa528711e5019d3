"""ORM models for the wagering core.

The relational store is the only state holder. Constraints declared here are
the correctness backstops for the atomic operations: non-negative balances,
one stake per (user, proposition), one membership per (group, user) and unique
ledger idempotency keys.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from overunder.db.base import Base, BigIntPK

SIDE_OVER = "over"
SIDE_UNDER = "under"
SIDES = (SIDE_OVER, SIDE_UNDER)

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"
STATUS_RESOLVED = "resolved"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A player profile keyed by the identity provider's subject id."""

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("balance >= 0", name="balance_non_negative"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    last_claim_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class Group(Base):
    """A betting group. The Global group has no leader and contains everyone."""

    __tablename__ = "groups"
    __table_args__ = (
        Index(
            "uq_groups_single_global",
            "is_global",
            unique=True,
            postgresql_where=text("is_global"),
            sqlite_where=text("is_global"),
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    leader_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GroupMember(Base):
    """Membership of a user in a group."""

    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="group_members_group_user_key"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Propositions & stakes
# ---------------------------------------------------------------------------


class Proposition(Base):
    """An over/under wager definition with a numeric target and a betting deadline.

    Only ``open`` and ``resolved`` are ever persisted; ``closed`` is derived
    from ``window_end`` at read time.
    """

    __tablename__ = "propositions"
    __table_args__ = (
        CheckConstraint("status IN ('open', 'resolved')", name="status_valid"),
        CheckConstraint(
            "winning_side IS NULL OR winning_side IN ('over', 'under')", name="winning_side_valid",
        ),
        Index("idx_propositions_group_created", "group_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    target: Mapped[float] = mapped_column(Float, nullable=False)
    group_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    creator_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    window_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN, server_default=STATUS_OPEN)
    winning_side: Mapped[str | None] = mapped_column(String(8), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Stake(Base):
    """A single user's wager on one side of a proposition."""

    __tablename__ = "stakes"
    __table_args__ = (
        UniqueConstraint("proposition_id", "user_id", name="stakes_proposition_user_key"),
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint("side IN ('over', 'under')", name="side_valid"),
        Index("idx_stakes_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    proposition_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("propositions.id", ondelete="CASCADE"), nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payout: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerEntry(Base):
    """One balance mutation. ``amount`` is signed: debits are negative."""

    __tablename__ = "ledger_entries"
    __table_args__ = (Index("idx_ledger_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Leaderboard (materialized, rebuilt wholesale)
# ---------------------------------------------------------------------------


class LeaderboardEntry(Base):
    """Per-user performance across all resolved propositions."""

    __tablename__ = "leaderboard"
    __table_args__ = (Index("idx_leaderboard_net_profit", "net_profit"),)

    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    total_bets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_wagered: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_winnings: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_profit: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
