# ruff: noqa: I001
"""Store operations shared by the pipeline services.

Everything here takes an explicit SQLAlchemy ``Session``; callers own the
transaction scope (commit/rollback). Upserts use the dialect's native
``INSERT ... ON CONFLICT`` so repeated or concurrent writes for the same
unique key converge on one row instead of racing a read-then-insert.

Scope:
- Point lookups: transaction by fingerprint, alias by key, budget by month.
- Upserts: merchants by canonical name, aliases by (merchant, key),
  budget allocations by (budget, category).
- Scans: active rules, transactions by month range.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, selectinload

from db.models.budget import (
    Budget,
    BudgetAllocation,
    Merchant,
    MerchantAlias,
    Rule,
    Transaction,
)


def upsert_insert(session: Session, model: type[Any]):
    """Return a dialect-specific ``insert()`` that supports ``on_conflict_*``."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise RuntimeError(f"Unsupported database dialect for upserts: {dialect!r}")


# ---------------------------
# Transactions
# ---------------------------


def find_transaction_by_fingerprint(session: Session, fingerprint: str) -> Transaction | None:
    return session.execute(
        select(Transaction).where(Transaction.fingerprint == fingerprint)
    ).scalar_one_or_none()


def get_transaction(session: Session, transaction_id: str) -> Transaction | None:
    return session.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .options(selectinload(Transaction.splits))
    ).scalar_one_or_none()


def manual_transactions_on_day(
    session: Session, *, occurred_on: date, amount: Decimal, tx_type: str
) -> list[Transaction]:
    """Manually entered transactions matching an imported row's day/amount/type."""

    return list(
        session.execute(
            select(Transaction)
            .where(
                Transaction.origin == "MANUAL",
                Transaction.type == tx_type,
                Transaction.amount == amount,
                Transaction.occurred_on == occurred_on,
            )
            .options(selectinload(Transaction.splits))
            .order_by(Transaction.created_at)
        ).scalars()
    )


# ---------------------------
# Merchants and aliases
# ---------------------------


def find_alias_by_key(session: Session, normalized_key: str) -> MerchantAlias | None:
    """Return the alias for ``normalized_key`` (earliest created when several
    merchants share the key)."""

    return (
        session.execute(
            select(MerchantAlias)
            .where(MerchantAlias.normalized_key == normalized_key)
            .options(selectinload(MerchantAlias.merchant))
            .order_by(MerchantAlias.created_at, MerchantAlias.id)
            .limit(1)
        )
        .scalars()
        .first()
    )


def find_aliases_by_keys(
    session: Session, normalized_keys: Iterable[str]
) -> dict[str, MerchantAlias]:
    keys = sorted({k for k in normalized_keys if k})
    if not keys:
        return {}
    rows = session.execute(
        select(MerchantAlias)
        .where(MerchantAlias.normalized_key.in_(keys))
        .options(selectinload(MerchantAlias.merchant))
        .order_by(MerchantAlias.created_at, MerchantAlias.id)
    ).scalars()
    found: dict[str, MerchantAlias] = {}
    for alias in rows:
        found.setdefault(alias.normalized_key, alias)
    return found


def upsert_merchant(session: Session, *, canonical_name: str, yelp_id: str | None) -> Merchant:
    """Create the merchant for ``canonical_name`` or refresh its ``yelp_id``."""

    stmt = upsert_insert(session, Merchant).values(canonical_name=canonical_name, yelp_id=yelp_id)
    if yelp_id:
        stmt = stmt.on_conflict_do_update(
            index_elements=[Merchant.canonical_name],
            set_={"yelp_id": stmt.excluded.yelp_id, "updated_at": func.now()},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=[Merchant.canonical_name])
    session.execute(stmt)
    return session.execute(
        select(Merchant)
        .where(Merchant.canonical_name == canonical_name)
        .execution_options(populate_existing=True)
    ).scalar_one()


def upsert_merchant_alias(
    session: Session,
    *,
    merchant_id: str,
    normalized_key: str,
    raw_name: str,
    yelp_id: str | None,
) -> MerchantAlias:
    """Insert the alias or refresh its latest raw spelling (and ``yelp_id``)."""

    stmt = upsert_insert(session, MerchantAlias).values(
        merchant_id=merchant_id,
        normalized_key=normalized_key,
        raw_name=raw_name,
        yelp_id=yelp_id,
    )
    set_: dict[str, Any] = {"raw_name": stmt.excluded.raw_name, "updated_at": func.now()}
    if yelp_id:
        set_["yelp_id"] = stmt.excluded.yelp_id
    stmt = stmt.on_conflict_do_update(
        index_elements=[MerchantAlias.merchant_id, MerchantAlias.normalized_key],
        set_=set_,
    )
    session.execute(stmt)
    return session.execute(
        select(MerchantAlias)
        .where(
            MerchantAlias.merchant_id == merchant_id,
            MerchantAlias.normalized_key == normalized_key,
        )
        .execution_options(populate_existing=True)
    ).scalar_one()


# ---------------------------
# Rules
# ---------------------------


def load_active_rules(session: Session) -> list[Rule]:
    """Active rules in evaluation order (earliest created first)."""

    return list(
        session.execute(
            select(Rule).where(Rule.is_active.is_(True)).order_by(Rule.created_at, Rule.id)
        ).scalars()
    )


# ---------------------------
# Budgets
# ---------------------------


def find_budget_for_month(session: Session, month: date) -> Budget | None:
    return session.execute(select(Budget).where(Budget.month == month)).scalar_one_or_none()


def upsert_allocation(
    session: Session,
    *,
    budget_id: str,
    category_id: str,
    planned_amount: Decimal,
) -> BudgetAllocation:
    stmt = upsert_insert(session, BudgetAllocation).values(
        budget_id=budget_id, category_id=category_id, planned_amount=planned_amount
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[BudgetAllocation.budget_id, BudgetAllocation.category_id],
        set_={"planned_amount": stmt.excluded.planned_amount},
    )
    session.execute(stmt)
    return session.execute(
        select(BudgetAllocation)
        .where(
            BudgetAllocation.budget_id == budget_id,
            BudgetAllocation.category_id == category_id,
        )
        .execution_options(populate_existing=True)
    ).scalar_one()


__all__ = [
    "find_alias_by_key",
    "find_aliases_by_keys",
    "find_budget_for_month",
    "find_transaction_by_fingerprint",
    "get_transaction",
    "load_active_rules",
    "manual_transactions_on_day",
    "upsert_allocation",
    "upsert_insert",
    "upsert_merchant",
    "upsert_merchant_alias",
]
