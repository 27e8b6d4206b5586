# ruff: noqa: I001
"""Budget month helpers and the spend synchronizer.

``BudgetAllocation.spent_amount`` is a materialized aggregate: the sum of
split amounts of EXPENSE transactions dated within the budget's month,
grouped by the split's category. It is always recomputed from the
transaction set and overwritten, never adjusted incrementally, so running
the sync any number of times after any sequence of writes converges on the
same values.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from db.models.budget import Budget, BudgetAllocation, Transaction, TransactionSplit
from . import repository
from .logging_setup import get_logger

logger = get_logger("budget_pipeline.budget_sync")

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")
_ZERO = Decimal("0.00")


# ---------------------------
# Month helpers
# ---------------------------


def month_start(d: date) -> date:
    return date(d.year, d.month, 1)


def month_bounds(d: date) -> tuple[date, date]:
    """Return ``(first day, first day of next month)`` for ``d``'s month."""

    start = month_start(d)
    if start.month == 12:
        return start, date(start.year + 1, 1, 1)
    return start, date(start.year, start.month + 1, 1)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def parse_month_key(key: str) -> date | None:
    """Parse ``YYYY-MM`` into the month's first day; ``None`` when invalid."""

    m = _MONTH_KEY_RE.match(key.strip())
    if not m:
        return None
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12:
        return None
    return date(year, month, 1)


# ---------------------------
# Budget rows
# ---------------------------


def get_or_create_budget(session: Session, month: date) -> Budget:
    start = month_start(month)
    budget = repository.find_budget_for_month(session, start)
    if budget is not None:
        return budget
    budget = Budget(month=start)
    session.add(budget)
    session.flush()
    logger.info("Created budget for %s", month_key(start))
    return budget


def upsert_allocation(
    session: Session, *, month: date, category_id: str, planned_amount: Decimal | str | int
) -> BudgetAllocation:
    """Set the planned amount for a category in ``month``'s budget.

    Creates the budget when the month has none. Spent is recomputed right
    away so a new allocation starts out consistent with the transactions.
    """

    budget = get_or_create_budget(session, month)
    allocation = repository.upsert_allocation(
        session,
        budget_id=budget.id,
        category_id=category_id,
        planned_amount=Decimal(str(planned_amount)).quantize(Decimal("0.01")),
    )
    sync_budget_spent_for_month(session, month)
    session.refresh(allocation)
    return allocation


def link_transaction_to_budget(session: Session, transaction: Transaction) -> str | None:
    """Point ``transaction.budget_id`` at its month's budget (``None`` if none)."""

    budget = repository.find_budget_for_month(session, month_start(transaction.occurred_on))
    transaction.budget_id = budget.id if budget is not None else None
    return transaction.budget_id


# ---------------------------
# Synchronizer
# ---------------------------


def sync_budget_spent_for_month(session: Session, month: date) -> bool:
    """Recompute ``spent_amount`` of every allocation in ``month``'s budget.

    Returns False when the month has no budget (nothing to do).
    """

    start, end = month_bounds(month)
    budget = repository.find_budget_for_month(session, start)
    if budget is None:
        return False

    # Pending ORM changes must be visible to the aggregate.
    session.flush()

    totals_stmt = (
        select(TransactionSplit.category_id, func.sum(TransactionSplit.amount))
        .join(Transaction, Transaction.id == TransactionSplit.transaction_id)
        .where(
            TransactionSplit.category_id.is_not(None),
            Transaction.type == "EXPENSE",
            Transaction.occurred_on >= start,
            Transaction.occurred_on < end,
        )
        .group_by(TransactionSplit.category_id)
    )
    totals: dict[str, Decimal] = {
        category_id: Decimal(str(total)) for category_id, total in session.execute(totals_stmt)
    }

    allocations = session.execute(
        select(BudgetAllocation.id, BudgetAllocation.category_id).where(
            BudgetAllocation.budget_id == budget.id
        )
    ).all()
    for allocation_id, category_id in allocations:
        spent = totals.get(category_id, _ZERO).quantize(Decimal("0.01"))
        session.execute(
            update(BudgetAllocation)
            .where(BudgetAllocation.id == allocation_id)
            .values(spent_amount=spent)
            .execution_options(synchronize_session="fetch")
        )

    logger.debug(
        "Synced %d allocation(s) for %s", len(allocations), month_key(start)
    )
    return True


def sync_months(session: Session, months: Iterable[date]) -> None:
    """Sync each distinct month once, oldest first."""

    for start in sorted({month_start(m) for m in months}):
        sync_budget_spent_for_month(session, start)


__all__ = [
    "get_or_create_budget",
    "link_transaction_to_budget",
    "month_bounds",
    "month_key",
    "month_start",
    "parse_month_key",
    "sync_budget_spent_for_month",
    "sync_months",
    "upsert_allocation",
]
