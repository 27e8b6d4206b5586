from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

MONEY = Numeric(12, 2)


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    emoji: Mapped[str | None] = mapped_column(String, nullable=True)
    section: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'EXPENSES'"), default="EXPENSES"
    )
    sort_order: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0"), default=0
    )
    # Archived categories stay referenced by historical transactions but are
    # never chosen as the import fallback.
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        CheckConstraint(
            "section in ('EXPENSES','RECURRING','SAVINGS','DEBT')",
            name="ck_categories_section",
        ),
    )


# ---------------------------
# Budgets: one row per month plus per-category allocations
# ---------------------------


class Budget(Base):
    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    # Always the first day of the month.
    month: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'DRAFT'"), default="DRAFT"
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=_utcnow,
        onupdate=_utcnow,
    )

    allocations: Mapped[list[BudgetAllocation]] = relationship(
        back_populates="budget", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("status in ('DRAFT','FINALIZED')", name="ck_budgets_status"),
    )


class BudgetAllocation(Base):
    __tablename__ = "budget_allocations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    budget_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("categories.id"), nullable=False
    )
    planned_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, server_default=text("0"), default=Decimal("0.00")
    )
    # Materialized aggregate; overwritten by ``budget_pipeline.budget_sync``.
    spent_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, server_default=text("0"), default=Decimal("0.00")
    )

    budget: Mapped[Budget] = relationship(back_populates="allocations")

    __table_args__ = (
        UniqueConstraint("budget_id", "category_id", name="uq_budget_allocations_budget_category"),
    )


# ---------------------------
# Import batches
# ---------------------------


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    source: Mapped[str] = mapped_column(String, nullable=False)
    file_name: Mapped[str | None] = mapped_column(String, nullable=True)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------
# Merchant identities
# ---------------------------


class Merchant(Base):
    __tablename__ = "merchants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    canonical_name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    yelp_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=_utcnow,
        onupdate=_utcnow,
    )


class MerchantAlias(Base):
    __tablename__ = "merchant_aliases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    merchant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False
    )
    normalized_key: Mapped[str] = mapped_column(String, nullable=False)
    # Latest observed spelling; display/search only, never part of identity.
    raw_name: Mapped[str] = mapped_column(Text, nullable=False)
    yelp_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=_utcnow,
        onupdate=_utcnow,
    )

    merchant: Mapped[Merchant] = relationship()

    __table_args__ = (
        UniqueConstraint("merchant_id", "normalized_key", name="uq_merchant_aliases_merchant_key"),
        Index("ix_merchant_aliases_normalized_key", "normalized_key"),
    )


# ---------------------------
# Core: transactions and splits
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    posted_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Always positive; the direction lives in ``type``.
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    origin: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'MANUAL'"), default="MANUAL"
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Mirrors ``merchants.canonical_name`` whenever ``merchant_id`` is set.
    merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Spelling as entered or imported; fingerprints hash its sanitized form.
    merchant_raw: Mapped[str | None] = mapped_column(Text, nullable=True)
    merchant_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("merchants.id", ondelete="SET NULL", name="fk_transactions_merchant_id"),
        nullable=True,
    )
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_record: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("categories.id"), nullable=True
    )
    budget_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("budgets.id", ondelete="SET NULL"), nullable=True
    )
    import_batch_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True
    )
    external_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    is_pending: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false"), default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=_utcnow,
        onupdate=_utcnow,
    )

    splits: Mapped[list[TransactionSplit]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionSplit.created_at",
    )

    __table_args__ = (
        CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_transactions_type"),
        CheckConstraint(
            "origin in ('MANUAL','IMPORT','ADJUSTMENT')", name="ck_transactions_origin"
        ),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_occurred_on", "occurred_on"),
        Index("ix_transactions_category_id", "category_id"),
        Index("ix_transactions_merchant_id", "merchant_id"),
    )


class TransactionSplit(Base):
    __tablename__ = "transaction_splits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    transaction_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("categories.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )

    transaction: Mapped[Transaction] = relationship(back_populates="splits")

    __table_args__ = (Index("ix_transaction_splits_transaction_id", "transaction_id"),)


# ---------------------------
# Categorization rules
# ---------------------------


class Rule(Base):
    __tablename__ = "rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true"), default=True
    )
    match_field: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'DESCRIPTION'"), default="DESCRIPTION"
    )
    match_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'CONTAINS'"), default="CONTAINS"
    )
    match_value: Mapped[str] = mapped_column(Text, nullable=False)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Evaluation precedence: earliest created wins.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        CheckConstraint(
            "match_field in ('DESCRIPTION','MERCHANT','RAW')", name="ck_rules_match_field"
        ),
        CheckConstraint(
            "match_type in ('EXACT','STARTS_WITH','ENDS_WITH','CONTAINS','REGEX')",
            name="ck_rules_match_type",
        ),
        Index("ix_rules_active_created", "is_active", "created_at"),
    )


__all__ = [
    "Base",
    "Budget",
    "BudgetAllocation",
    "Category",
    "ImportBatch",
    "Merchant",
    "MerchantAlias",
    "Rule",
    "Transaction",
    "TransactionSplit",
]
