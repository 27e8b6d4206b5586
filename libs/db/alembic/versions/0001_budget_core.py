# ruff: noqa: I001
"""Budget core tables: categories, budgets, transactions, splits, rules.

Revision ID: 0001_budget_core
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_budget_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("emoji", sa.String(), nullable=True),
        sa.Column("section", sa.String(), nullable=False, server_default=sa.text("'EXPENSES'")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "section in ('EXPENSES','RECURRING','SAVINGS','DEBT')",
            name="ck_categories_section",
        ),
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("month", sa.Date(), nullable=False, unique=True),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status in ('DRAFT','FINALIZED')", name="ck_budgets_status"),
    )

    op.create_table(
        "budget_allocations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "budget_id",
            sa.String(36),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column(
            "planned_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("spent_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint(
            "budget_id", "category_id", name="uq_budget_allocations_budget_category"
        ),
    )

    op.create_table(
        "import_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("file_name", sa.String(), nullable=True),
        sa.Column(
            "imported_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column("posted_on", sa.Date(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("origin", sa.String(), nullable=False, server_default=sa.text("'MANUAL'")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("merchant", sa.Text(), nullable=True),
        sa.Column("merchant_raw", sa.Text(), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("raw_record", sa.JSON(), nullable=True),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column(
            "budget_id",
            sa.String(36),
            sa.ForeignKey("budgets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "import_batch_id",
            sa.String(36),
            sa.ForeignKey("import_batches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_id", sa.String(), nullable=True, unique=True),
        sa.Column("fingerprint", sa.String(64), nullable=False, unique=True),
        sa.Column("is_pending", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_transactions_type"),
        sa.CheckConstraint(
            "origin in ('MANUAL','IMPORT','ADJUSTMENT')", name="ck_transactions_origin"
        ),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_occurred_on", "transactions", ["occurred_on"])
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"])

    op.create_table(
        "transaction_splits",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.String(36),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_transaction_splits_transaction_id", "transaction_splits", ["transaction_id"]
    )

    op.create_table(
        "rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column(
            "category_id",
            sa.String(36),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "match_field", sa.String(), nullable=False, server_default=sa.text("'DESCRIPTION'")
        ),
        sa.Column(
            "match_type", sa.String(), nullable=False, server_default=sa.text("'CONTAINS'")
        ),
        sa.Column("match_value", sa.Text(), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "match_field in ('DESCRIPTION','MERCHANT','RAW')", name="ck_rules_match_field"
        ),
        sa.CheckConstraint(
            "match_type in ('EXACT','STARTS_WITH','ENDS_WITH','CONTAINS','REGEX')",
            name="ck_rules_match_type",
        ),
    )
    op.create_index("ix_rules_active_created", "rules", ["is_active", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_rules_active_created", table_name="rules")
    op.drop_table("rules")
    op.drop_index("ix_transaction_splits_transaction_id", table_name="transaction_splits")
    op.drop_table("transaction_splits")
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_occurred_on", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("import_batches")
    op.drop_table("budget_allocations")
    op.drop_table("budgets")
    op.drop_table("categories")
