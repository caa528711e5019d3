"""Initial schema: users, groups, propositions, stakes, ledger, leaderboard.

Constraints carry the invariants the services rely on: non-negative
balances, one stake per (proposition, user), one membership per
(group, user), a single Global group and unique ledger idempotency keys.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-16
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

BigIntPK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create all tables."""
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("balance", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("last_claim_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
    )

    # --- groups ---
    op.create_table(
        "groups",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_private", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("is_global", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("leader_id", sa.String(64), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "uq_groups_single_global",
        "groups",
        ["is_global"],
        unique=True,
        postgresql_where=sa.text("is_global"),
        sqlite_where=sa.text("is_global"),
    )

    op.create_table(
        "group_members",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("group_id", "user_id", name="group_members_group_user_key"),
    )

    # --- propositions ---
    op.create_table(
        "propositions",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("target", sa.Float(), nullable=False),
        sa.Column("group_id", sa.BigInteger(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("creator_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(16), server_default="open", nullable=False),
        sa.Column("winning_side", sa.String(8), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('open', 'resolved')", name="ck_propositions_status_valid"),
        sa.CheckConstraint(
            "winning_side IS NULL OR winning_side IN ('over', 'under')",
            name="ck_propositions_winning_side_valid",
        ),
    )
    op.create_index("idx_propositions_group_created", "propositions", ["group_id", "created_at"])

    # --- stakes ---
    op.create_table(
        "stakes",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column(
            "proposition_id", sa.BigInteger(),
            sa.ForeignKey("propositions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("side", sa.String(8), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("payout", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("proposition_id", "user_id", name="stakes_proposition_user_key"),
        sa.CheckConstraint("amount > 0", name="ck_stakes_amount_positive"),
        sa.CheckConstraint("side IN ('over', 'under')", name="ck_stakes_side_valid"),
    )
    op.create_index("idx_stakes_user_created", "stakes", ["user_id", "created_at"])

    # --- ledger ---
    op.create_table(
        "ledger_entries",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("source_id", sa.String(64), nullable=True),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("idempotency_key", name="uq_ledger_entries_idempotency_key"),
    )
    op.create_index("idx_ledger_user_created", "ledger_entries", ["user_id", "created_at"])

    # --- leaderboard (derived, rebuilt wholesale) ---
    op.create_table(
        "leaderboard",
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("total_bets", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_wins", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_losses", sa.Integer(), server_default="0", nullable=False),
        sa.Column("win_rate", sa.Float(), server_default="0", nullable=False),
        sa.Column("total_wagered", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("total_winnings", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("net_profit", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("current_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("best_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_leaderboard_net_profit", "leaderboard", ["net_profit"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("leaderboard")
    op.drop_index("idx_ledger_user_created", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_index("idx_stakes_user_created", table_name="stakes")
    op.drop_table("stakes")
    op.drop_index("idx_propositions_group_created", table_name="propositions")
    op.drop_table("propositions")
    op.drop_table("group_members")
    op.drop_index("uq_groups_single_global", table_name="groups")
    op.drop_table("groups")
    op.drop_table("users")
