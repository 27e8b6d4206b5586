from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from db.models.budget import Budget
from sqlalchemy import select
from sqlalchemy.orm import Session

from budget_pipeline.budget_sync import (
    get_or_create_budget,
    link_transaction_to_budget,
    month_bounds,
    month_key,
    month_start,
    parse_month_key,
    sync_budget_spent_for_month,
    sync_months,
    upsert_allocation,
)
from tests.helpers.db import add_budget, add_category, add_transaction, spent_by_category

MARCH = date(2024, 3, 1)


def test_month_helpers() -> None:
    assert month_start(date(2024, 3, 31)) == MARCH
    assert month_bounds(date(2024, 12, 15)) == (date(2024, 12, 1), date(2025, 1, 1))
    assert month_key(date(2024, 3, 9)) == "2024-03"
    assert parse_month_key("2024-03") == MARCH
    assert parse_month_key(" 2024-12 ") == date(2024, 12, 1)


@pytest.mark.parametrize("key", ["2024-13", "2024-00", "2024-3", "03/2024", ""])
def test_parse_month_key_rejects_bad_input(key: str) -> None:
    assert parse_month_key(key) is None


def test_sync_without_budget_is_a_no_op(session: Session) -> None:
    assert sync_budget_spent_for_month(session, MARCH) is False


def test_sync_sums_expense_splits_in_month(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    dining = add_category(session, "Dining")
    travel = add_category(session, "Travel")
    add_budget(session, MARCH, {groceries.id: "300", dining.id: "100", travel.id: "0"})
    add_transaction(session, occurred_on=date(2024, 3, 1), amount="40.00", category_id=groceries.id,
                    description="a")
    add_transaction(session, occurred_on=date(2024, 3, 31), amount="2.55", category_id=groceries.id,
                    description="b")
    add_transaction(session, occurred_on=date(2024, 3, 15), amount="30.00", description="c",
                    splits=[(groceries.id, "10.00"), (dining.id, "20.00")])
    # Excluded: income, other months, uncategorized splits.
    add_transaction(session, occurred_on=date(2024, 3, 5), amount="99.00", type="INCOME",
                    category_id=groceries.id, description="d")
    add_transaction(session, occurred_on=date(2024, 2, 29), amount="11.00",
                    category_id=groceries.id, description="e")
    add_transaction(session, occurred_on=date(2024, 4, 1), amount="12.00",
                    category_id=groceries.id, description="f")
    add_transaction(session, occurred_on=date(2024, 3, 20), amount="5.00", category_id=None,
                    description="g")  # fmt: skip

    assert sync_budget_spent_for_month(session, date(2024, 3, 17)) is True
    session.commit()

    spent = spent_by_category(session, MARCH)
    assert spent == {
        groceries.id: Decimal("52.55"),
        dining.id: Decimal("20.00"),
        travel.id: Decimal("0.00"),
    }


def test_sync_converges_and_zeroes_emptied_categories(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    add_budget(session, MARCH, {groceries.id: "300"})
    tx = add_transaction(
        session, occurred_on=date(2024, 3, 3), amount="40.00", category_id=groceries.id,
        description="a",
    )  # fmt: skip
    sync_months(session, [MARCH, date(2024, 3, 20)])
    sync_months(session, [MARCH])
    assert spent_by_category(session, MARCH)[groceries.id] == Decimal("40.00")

    session.delete(tx)
    sync_budget_spent_for_month(session, MARCH)
    session.commit()
    assert spent_by_category(session, MARCH)[groceries.id] == Decimal("0.00")


def test_upsert_allocation_creates_budget_and_counts_existing_spend(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    add_transaction(session, occurred_on=date(2024, 3, 3), amount="40.00",
                    category_id=groceries.id, description="a")  # fmt: skip

    alloc = upsert_allocation(
        session, month=date(2024, 3, 18), category_id=groceries.id, planned_amount="250"
    )
    again = upsert_allocation(session, month=MARCH, category_id=groceries.id, planned_amount=300)
    session.commit()

    assert alloc.id == again.id
    assert again.planned_amount == Decimal("300.00")
    assert again.spent_amount == Decimal("40.00")
    budgets = session.execute(select(Budget)).scalars().all()
    assert [b.month for b in budgets] == [MARCH]


def test_get_or_create_budget_and_link(session: Session) -> None:
    tx = add_transaction(session, occurred_on=date(2024, 3, 3), amount="1.00", description="a")
    assert link_transaction_to_budget(session, tx) is None

    budget = get_or_create_budget(session, date(2024, 3, 28))
    assert budget.month == MARCH
    assert get_or_create_budget(session, MARCH).id == budget.id
    assert link_transaction_to_budget(session, tx) == budget.id
    assert tx.budget_id == budget.id
