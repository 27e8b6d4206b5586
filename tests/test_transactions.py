from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from db.models.budget import Merchant, Transaction, TransactionSplit
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from budget_pipeline.budget_sync import upsert_allocation
from budget_pipeline.categories import ensure_default_category
from budget_pipeline.errors import (
    DuplicateTransactionError,
    FingerprintConflictError,
    InvalidTransactionError,
    SplitTotalMismatchError,
    TransactionNotFoundError,
)
from budget_pipeline.ingest.importer import import_transactions_csv
from budget_pipeline.models import NewTransaction, SplitInput, TransactionUpdate
from budget_pipeline.transactions import (
    create_transaction,
    delete_transaction,
    get_transaction,
    update_transaction,
)
from tests.helpers.db import add_category, add_rule, spent_by_category

MARCH = date(2024, 3, 1)
APRIL = date(2024, 4, 1)


def _new(**overrides) -> NewTransaction:
    fields = {
        "occurred_on": date(2024, 3, 5),
        "amount": "42.10",
        "description": "Groceries run",
    }
    fields.update(overrides)
    return NewTransaction(**fields)


def _split_count(session: Session) -> int:
    return session.execute(select(func.count()).select_from(TransactionSplit)).scalar_one()


# ---------------------------
# Payload validation
# ---------------------------


def test_payload_rejects_non_positive_amount() -> None:
    with pytest.raises(ValidationError):
        _new(amount="0")
    with pytest.raises(ValidationError):
        _new(amount="-5")
    with pytest.raises(ValidationError):
        _new(amount="abc")


def test_payload_requires_description() -> None:
    with pytest.raises(ValidationError):
        _new(description="   ")


def test_payload_quantizes_amount() -> None:
    assert _new(amount="10.005").amount == Decimal("10.01")


# ---------------------------
# Create
# ---------------------------


def test_create_defaults_to_fallback_category(session: Session) -> None:
    default = ensure_default_category(session)
    upsert_allocation(session, month=MARCH, category_id=default.id, planned_amount="100")

    tx = create_transaction(session, _new(merchant="AMZN Mktp US*AB12C"))
    session.commit()

    assert tx.origin == "MANUAL"
    assert tx.external_id == f"manual:{tx.id}"
    assert tx.category_id == default.id
    assert tx.merchant == "Amazon"
    assert tx.merchant_id is not None
    assert tx.budget_id is not None
    assert [(s.category_id, s.amount) for s in tx.splits] == [(default.id, Decimal("42.10"))]
    assert spent_by_category(session, MARCH)[default.id] == Decimal("42.10")


def test_create_uses_matching_rule(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    add_rule(session, match_value="groceries", category_id=groceries.id)
    tx = create_transaction(session, _new())
    assert tx.category_id == groceries.id


def test_explicit_category_beats_rules(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    household = add_category(session, "Household")
    add_rule(session, match_value="groceries", category_id=groceries.id)
    tx = create_transaction(session, _new(category_id=household.id))
    assert tx.category_id == household.id


def test_create_with_splits(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    household = add_category(session, "Household")
    tx = create_transaction(
        session,
        _new(
            amount="50.00",
            splits=(
                SplitInput(amount="30.00", category_id=groceries.id),
                SplitInput(amount="20.00", category_id=household.id, memo=" soap "),
            ),
        ),
    )
    assert tx.category_id is None
    assert sorted((s.category_id, s.amount, s.memo) for s in tx.splits) == sorted(
        [(groceries.id, Decimal("30.00"), None), (household.id, Decimal("20.00"), "soap")]
    )


def test_create_rejects_mismatched_splits(session: Session) -> None:
    with pytest.raises(SplitTotalMismatchError):
        create_transaction(
            session, _new(amount="50.00", splits=(SplitInput(amount="49.98"),))
        )
    assert session.execute(select(func.count()).select_from(Transaction)).scalar_one() == 0


def test_split_total_within_a_cent_is_accepted(session: Session) -> None:
    tx = create_transaction(
        session,
        _new(amount="10.00", splits=(SplitInput(amount="3.33"), SplitInput(amount="6.66"))),
    )
    assert len(tx.splits) == 2


def test_create_duplicate_is_rejected(session: Session) -> None:
    first = create_transaction(session, _new(merchant="Target"))
    session.commit()
    with pytest.raises(DuplicateTransactionError) as exc:
        create_transaction(session, _new(merchant="TARGET.COM"))
    assert exc.value.existing_id == first.id


# ---------------------------
# Update
# ---------------------------


def test_update_amount_moves_single_split_and_resyncs(session: Session) -> None:
    default = ensure_default_category(session)
    upsert_allocation(session, month=MARCH, category_id=default.id, planned_amount="100")
    tx = create_transaction(session, _new())
    session.commit()
    old_fingerprint = tx.fingerprint

    updated = update_transaction(session, tx.id, TransactionUpdate(amount="50"))
    session.commit()

    assert updated.amount == Decimal("50.00")
    assert [s.amount for s in updated.splits] == [Decimal("50.00")]
    assert updated.fingerprint != old_fingerprint
    assert spent_by_category(session, MARCH)[default.id] == Decimal("50.00")


def test_update_moving_month_resyncs_both(session: Session) -> None:
    default = ensure_default_category(session)
    upsert_allocation(session, month=MARCH, category_id=default.id, planned_amount="100")
    upsert_allocation(session, month=APRIL, category_id=default.id, planned_amount="100")
    tx = create_transaction(session, _new())
    session.commit()
    march_budget = tx.budget_id

    update_transaction(session, tx.id, TransactionUpdate(occurred_on=date(2024, 4, 2)))
    session.commit()

    assert tx.budget_id != march_budget
    assert spent_by_category(session, MARCH)[default.id] == Decimal("0.00")
    assert spent_by_category(session, APRIL)[default.id] == Decimal("42.10")


def test_update_category_on_single_split(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    tx = create_transaction(session, _new(description="Weekly shop"))
    update_transaction(session, tx.id, TransactionUpdate(category_id=groceries.id))
    assert tx.category_id == groceries.id
    assert tx.splits[0].category_id == groceries.id


def test_update_replaces_splits(session: Session) -> None:
    groceries = add_category(session, "Groceries")
    household = add_category(session, "Household")
    tx = create_transaction(session, _new(amount="30.00"))
    session.commit()

    update_transaction(
        session,
        tx.id,
        TransactionUpdate(
            splits=(
                SplitInput(amount="10.00", category_id=groceries.id),
                SplitInput(amount="20.00", category_id=household.id),
            )
        ),
    )
    session.commit()

    assert tx.category_id is None
    assert _split_count(session) == 2


def test_update_amount_on_multi_split_requires_new_splits(session: Session) -> None:
    tx = create_transaction(
        session,
        _new(amount="30.00", splits=(SplitInput(amount="10.00"), SplitInput(amount="20.00"))),
    )
    session.commit()

    with pytest.raises(SplitTotalMismatchError):
        update_transaction(session, tx.id, TransactionUpdate(amount="31.00"))
    with pytest.raises(InvalidTransactionError):
        update_transaction(session, tx.id, TransactionUpdate(category_id="whatever"))
    with pytest.raises(InvalidTransactionError):
        update_transaction(session, tx.id, TransactionUpdate(splits=()))
    session.rollback()

    fresh = get_transaction(session, tx.id)
    assert fresh.amount == Decimal("30.00")
    assert len(fresh.splits) == 2


def test_update_rejects_fingerprint_conflict(session: Session) -> None:
    a = create_transaction(session, _new(description="Coffee"))
    b = create_transaction(session, _new(description="Tea"))
    session.commit()

    with pytest.raises(FingerprintConflictError) as exc:
        update_transaction(session, b.id, TransactionUpdate(description="Coffee"))
    assert exc.value.conflicting_id == a.id
    assert b.description == "Tea"


def test_edit_then_revert_still_detects_reimport(session: Session) -> None:
    text = "Date,Description,Amount\n2024-03-08,SQ *BLUE BOTTLE OAKLAND CA,-6.50\n"
    import_transactions_csv(session, text)
    tx = session.execute(select(Transaction)).scalar_one()
    original = tx.fingerprint
    assert tx.merchant_raw == "SQ *BLUE BOTTLE OAKLAND CA"

    update_transaction(session, tx.id, TransactionUpdate(amount="7.00"))
    session.commit()
    assert tx.fingerprint != original

    update_transaction(session, tx.id, TransactionUpdate(amount="6.50"))
    session.commit()
    assert tx.fingerprint == original

    again = import_transactions_csv(session, text)
    assert (again.imported, again.duplicates) == (0, 1)
    assert session.execute(select(func.count()).select_from(Transaction)).scalar_one() == 1


def test_manual_fingerprint_follows_entered_spelling(session: Session) -> None:
    tx = create_transaction(session, _new(merchant="SQ *BLUE BOTTLE OAKLAND CA"))
    session.commit()
    assert tx.merchant == "SQ Blue Bottle Oakland"
    original = tx.fingerprint

    update_transaction(session, tx.id, TransactionUpdate(description="Latte"))
    update_transaction(session, tx.id, TransactionUpdate(description="Groceries run"))
    assert tx.fingerprint == original


def test_update_clears_memo_only_when_given(session: Session) -> None:
    tx = create_transaction(session, _new(memo="note"))
    update_transaction(session, tx.id, TransactionUpdate(is_pending=True))
    assert tx.memo == "note" and tx.is_pending is True
    update_transaction(session, tx.id, TransactionUpdate(memo=None))
    assert tx.memo is None


def test_update_merchant(session: Session) -> None:
    tx = create_transaction(session, _new())
    update_transaction(session, tx.id, TransactionUpdate(merchant="Starbucks #98765"))
    assert tx.merchant == "Starbucks"
    assert tx.merchant_id is not None
    assert session.execute(select(func.count()).select_from(Merchant)).scalar_one() == 1

    update_transaction(session, tx.id, TransactionUpdate(merchant=""))
    assert tx.merchant is None and tx.merchant_id is None


def test_update_unknown_transaction(session: Session) -> None:
    with pytest.raises(TransactionNotFoundError):
        update_transaction(session, "missing", TransactionUpdate(amount="1"))


# ---------------------------
# Delete
# ---------------------------


def test_delete_removes_splits_and_resyncs(session: Session) -> None:
    default = ensure_default_category(session)
    upsert_allocation(session, month=MARCH, category_id=default.id, planned_amount="100")
    tx = create_transaction(session, _new())
    session.commit()
    assert spent_by_category(session, MARCH)[default.id] == Decimal("42.10")

    delete_transaction(session, tx.id)
    session.commit()

    assert _split_count(session) == 0
    assert spent_by_category(session, MARCH)[default.id] == Decimal("0.00")
    with pytest.raises(TransactionNotFoundError):
        delete_transaction(session, tx.id)
