# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Make sure the workspace `packages/` dir is on sys.path so `budget_pipeline` is importable
_ROOT = Path(__file__).resolve().parents[2]
_PKG_DIR = _ROOT / "packages"
_DB_DIR = _ROOT / "libs/db/src"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_DB_DIR), str(_ROOT)] if p not in sys.path]

from db.client import session_scope  # noqa: E402
from db.models.budget import Merchant, Transaction  # noqa: E402
from sqlalchemy import select  # noqa: E402

from budget_pipeline.budget_sync import upsert_allocation  # noqa: E402
from budget_pipeline.categories import create_category, ensure_default_category  # noqa: E402
from budget_pipeline.config import PipelineSettings  # noqa: E402
from budget_pipeline.ingest.importer import import_csv_file  # noqa: E402
from budget_pipeline.models import TransactionUpdate  # noqa: E402
from budget_pipeline.rules import create_rule  # noqa: E402
from budget_pipeline.transactions import update_transaction  # noqa: E402

from tests.helpers.db import bootstrap_sqlite_db, spent_by_category  # noqa: E402

MARCH = date(2024, 3, 1)


def test_e2e_import_categorize_and_budget_sync(tmp_path: Path):
    # -------------------------
    # Input (fixture file path)
    # -------------------------
    csv_path = Path(__file__).resolve().parents[1] / "data/bank_march_2024.csv"

    # -------------------------
    # DB bootstrap + March budget
    # -------------------------
    db_url = bootstrap_sqlite_db(tmp_path / "budget-e2e.db")
    settings = PipelineSettings(database_url=db_url)
    with session_scope(database_url=db_url) as s:
        default = ensure_default_category(s)
        rides = create_category(s, name="Rides").category
        upsert_allocation(s, month=MARCH, category_id=default.id, planned_amount="400")
        upsert_allocation(s, month=MARCH, category_id=rides.id, planned_amount="60")
        default_id, rides_id = default.id, rides.id

    # -------------------------
    # First import
    # -------------------------
    summary = import_csv_file(csv_path, settings=settings, source="bank-export")
    assert summary.imported == 6
    assert summary.skipped == 2
    assert summary.duplicates == 0
    assert summary.errors == []

    with session_scope(database_url=db_url) as s:
        amazon = s.execute(
            select(Transaction).where(Transaction.description == "AMZN Mktp US*AB12C")
        ).scalar_one()
        assert amazon.type == "EXPENSE"
        assert amazon.amount == Decimal("42.10")
        assert amazon.merchant == "Amazon"
        assert amazon.category_id == default_id
        merchant = s.get(Merchant, amazon.merchant_id)
        assert merchant is not None and merchant.canonical_name == "Amazon"

        spent = spent_by_category(s, MARCH)
        assert spent[default_id] == Decimal("86.04")  # 42.10 + 5.75 + 18.20 + 19.99
        assert spent[rides_id] == Decimal("0.00")

    # -------------------------
    # Re-import is idempotent
    # -------------------------
    again = import_csv_file(csv_path, settings=settings, source="bank-export")
    assert again.imported == 0
    assert again.duplicates == summary.imported

    # -------------------------
    # A rule applied to history moves spend between categories
    # -------------------------
    with session_scope(database_url=db_url) as s:
        _, result = create_rule(
            s, name="Rides", match_value="uber", category_id=rides_id, apply_to_existing=True
        )
        assert result is not None and result.updated == 1

    with session_scope(database_url=db_url) as s:
        spent = spent_by_category(s, MARCH)
        assert spent[default_id] == Decimal("67.84")
        assert spent[rides_id] == Decimal("18.20")

    # -------------------------
    # Editing an imported amount re-syncs the month
    # -------------------------
    with session_scope(database_url=db_url) as s:
        uber = s.execute(
            select(Transaction).where(Transaction.description == "UBER *TRIP")
        ).scalar_one()
        update_transaction(s, uber.id, TransactionUpdate(amount="20.00"))

    with session_scope(database_url=db_url) as s:
        assert spent_by_category(s, MARCH)[rides_id] == Decimal("20.00")
