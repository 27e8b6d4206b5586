# ruff: noqa: I001
"""Merchant identities and aliases; link transactions to merchants.

Revision ID: 0002_merchants
Revises: 0001_budget_core
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_merchants"
down_revision: str | None = "0001_budget_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "merchants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("canonical_name", sa.String(), nullable=False, unique=True),
        sa.Column("yelp_id", sa.String(), nullable=True),
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
    )
    op.create_index("ix_merchants_yelp_id", "merchants", ["yelp_id"])

    op.create_table(
        "merchant_aliases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "merchant_id",
            sa.String(36),
            sa.ForeignKey("merchants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("normalized_key", sa.String(), nullable=False),
        sa.Column("raw_name", sa.Text(), nullable=False),
        sa.Column("yelp_id", sa.String(), nullable=True),
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
        sa.UniqueConstraint(
            "merchant_id", "normalized_key", name="uq_merchant_aliases_merchant_key"
        ),
    )
    op.create_index(
        "ix_merchant_aliases_normalized_key", "merchant_aliases", ["normalized_key"]
    )

    with op.batch_alter_table("transactions") as batch:
        batch.add_column(sa.Column("merchant_id", sa.String(36), nullable=True))
        batch.create_foreign_key(
            "fk_transactions_merchant_id",
            "merchants",
            ["merchant_id"],
            ["id"],
            ondelete="SET NULL",
        )
        batch.create_index("ix_transactions_merchant_id", ["merchant_id"])


def downgrade() -> None:
    with op.batch_alter_table("transactions") as batch:
        batch.drop_index("ix_transactions_merchant_id")
        batch.drop_constraint("fk_transactions_merchant_id", type_="foreignkey")
        batch.drop_column("merchant_id")
    op.drop_index("ix_merchant_aliases_normalized_key", table_name="merchant_aliases")
    op.drop_table("merchant_aliases")
    op.drop_index("ix_merchants_yelp_id", table_name="merchants")
    op.drop_table("merchants")
