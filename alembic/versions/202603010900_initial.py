"""initial ledger schema

Revision ID: 202603010900
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202603010900"
down_revision = None
branch_labels = None
depends_on = None

KIND = sa.Enum("income", "expense", name="transactionkind")
MONEY = sa.Numeric(14, 2)


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", KIND, nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archived_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "account_type",
            sa.Enum(
                "savings", "current", "cash", "wallet", "salary", name="accounttype"
            ),
            nullable=False,
        ),
        sa.Column("initial_balance", MONEY, nullable=False, server_default="0"),
        sa.Column(
            "use_manual_override",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("manual_balance_override", MONEY),
        sa.Column("deleted_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_accounts_user_name", "accounts", ["user_id", "name"])

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("kind", KIND, nullable=False),
        sa.Column(
            "schedule_type",
            sa.Enum("one_time", "recurring", name="scheduletype"),
            nullable=False,
        ),
        sa.Column(
            "cadence",
            sa.Enum(
                "weekly",
                "monthly",
                "quarterly",
                "every_4_months",
                "half_yearly",
                "yearly",
                name="cadence",
            ),
        ),
        sa.Column("date", sa.Date()),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("paid_from_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column(
            "received_to_account_id", sa.Integer(), sa.ForeignKey("accounts.id")
        ),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("entries.id")),
        sa.Column("recurrence_group_id", sa.String(length=36)),
        sa.Column(
            "entry_role",
            sa.Enum("standard", "recurring_completion", name="entryrole"),
            nullable=False,
            server_default="standard",
        ),
        sa.Column(
            "is_completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("deleted_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_entries_amount_positive"),
        sa.CheckConstraint(
            "parent_id IS NULL OR parent_id != id", name="ck_entries_not_own_parent"
        ),
    )
    op.create_index(
        "ix_entries_user_role_date", "entries", ["user_id", "entry_role", "date"]
    )
    op.create_index(
        "ix_entries_user_schedule_start",
        "entries",
        ["user_id", "schedule_type", "start_date"],
    )
    op.create_index("ix_entries_parent_date", "entries", ["parent_id", "date"])
    op.create_index("ix_entries_group", "entries", ["recurrence_group_id"])


def downgrade() -> None:
    op.drop_index("ix_entries_group", table_name="entries")
    op.drop_index("ix_entries_parent_date", table_name="entries")
    op.drop_index("ix_entries_user_schedule_start", table_name="entries")
    op.drop_index("ix_entries_user_role_date", table_name="entries")
    op.drop_table("entries")
    op.drop_index("ix_accounts_user_name", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("categories")
