from __future__ import annotations

import csv
from datetime import date
from decimal import Decimal

import pytest

from budget_pipeline.ingest.csv_rows import (
    extract_candidate,
    extract_candidates,
    normalize_header,
    parse_amount,
    parse_date,
    read_csv_records,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-05", date(2024, 3, 5)),
        ("03/05/2024", date(2024, 3, 5)),
        ("3/5/24", date(2024, 3, 5)),
        ("03-05-2024", date(2024, 3, 5)),
        ("03/05/2024 10:15:00", date(2024, 3, 5)),
        ("02/30/2024", None),
        ("03/05-2024", None),
        ("March 5", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_date(raw: str | None, expected: date | None) -> None:
    assert parse_date(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("42.10", Decimal("42.10")),
        ("(42.10)", Decimal("-42.10")),
        ("-$1,234.56", Decimal("-1234.56")),
        ("$-5", Decimal("-5.00")),
        ("-($1,234.56)", Decimal("-1234.56")),
        ("+12.345", Decimal("12.35")),
        ("abc", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_amount(raw: str | None, expected: Decimal | None) -> None:
    assert parse_amount(raw) == expected


def test_normalize_header() -> None:
    assert normalize_header("Transaction Date") == "transactiondate"
    assert normalize_header(" Posted_Date ") == "posteddate"


def test_extract_expense_from_parenthesized_amount() -> None:
    cand = extract_candidate(
        {"Date": "03/05/2024", "Description": "AMZN Mktp US*AB12C", "Amount": "(42.10)"}
    )
    assert cand is not None
    assert cand.occurred_on == date(2024, 3, 5)
    assert cand.amount == Decimal("42.10")
    assert cand.type == "EXPENSE"
    assert cand.description == "AMZN Mktp US*AB12C"
    assert cand.merchant_raw == "AMZN Mktp US*AB12C"
    assert cand.merchant == "Amazon"
    assert cand.canonical_merchant == "Amazon"
    assert cand.merchant_key == "amazon"
    assert cand.raw_record["Amount"] == "(42.10)"


def test_positive_amount_is_income() -> None:
    cand = extract_candidate({"Date": "2024-03-01", "Description": "PAYROLL", "Amount": "1500"})
    assert cand is not None
    assert cand.type == "INCOME"
    assert cand.amount == Decimal("1500.00")


def test_debit_and_credit_columns() -> None:
    debit = extract_candidate(
        {"Posted Date": "2024-03-02", "Payee": "KROGER #123", "Debit": "18.40", "Credit": ""}
    )
    credit = extract_candidate(
        {"Posted Date": "2024-03-02", "Payee": "REFUND", "Debit": "", "Credit": "5.00"}
    )
    assert debit is not None and debit.type == "EXPENSE" and debit.amount == Decimal("18.40")
    assert debit.merchant == "Kroger"
    assert credit is not None and credit.type == "INCOME" and credit.amount == Decimal("5.00")


def test_transaction_date_wins_over_posted_date() -> None:
    cand = extract_candidate(
        {
            "Posted Date": "2024-03-04",
            "Transaction Date": "2024-03-02",
            "Description": "COFFEE",
            "Amount": "-3.50",
        }
    )
    assert cand is not None
    assert cand.occurred_on == date(2024, 3, 2)
    assert cand.posted_on == date(2024, 3, 4)


def test_merchant_column_preferred_over_description() -> None:
    cand = extract_candidate(
        {
            "Date": "2024-03-02",
            "Description": "POS PURCHASE 8831",
            "Merchant": "Target.com",
            "Amount": "-20",
        }
    )
    assert cand is not None
    assert cand.description == "POS PURCHASE 8831"
    assert cand.merchant_raw == "Target.com"
    assert cand.merchant_key == "target"


@pytest.mark.parametrize(
    "record",
    [
        {"Date": "", "Description": "X", "Amount": "-1"},
        {"Date": "not a date", "Description": "X", "Amount": "-1"},
        {"Date": "2024-03-01", "Description": "X", "Amount": "0.00"},
        {"Date": "2024-03-01", "Description": "X", "Amount": "n/a"},
        {"Date": "2024-03-01", "Description": "X"},
    ],
)
def test_unusable_rows_are_rejected(record: dict[str, str]) -> None:
    assert extract_candidate(record) is None


def test_read_csv_records_strips_and_drops_blank_rows() -> None:
    text = "\ufeffDate , Description,Amount\n 2024-03-01 , Coffee ,-3.50\n,,\n"
    headers, records = read_csv_records(text)
    assert headers == ["Date", "Description", "Amount"]
    assert records == [{"Date": "2024-03-01", "Description": "Coffee", "Amount": "-3.50"}]


def test_read_csv_records_requires_header() -> None:
    with pytest.raises(csv.Error):
        read_csv_records("")


def test_extract_candidates_keeps_positions() -> None:
    headers, records = read_csv_records(
        "Date,Description,Amount\n2024-03-01,A,-1\nbad,B,-2\n2024-03-03,C,3\n"
    )
    out = extract_candidates(records, headers)
    assert [i for i, _ in out] == [0, 1, 2]
    assert out[1][1] is None
    assert out[2][1] is not None and out[2][1].type == "INCOME"
