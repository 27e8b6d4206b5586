# ruff: noqa: I001
"""Manual create/edit/delete of transactions.

Each operation validates everything up front and only then writes, so a
rejected payload never leaves a partial change behind. Writes are flushed on
the caller's session; the caller commits (``db.client.session_scope``).

Every operation keeps the derived state consistent:
- ``fingerprint`` is recomputed whenever one of its inputs changes and must
  stay unique across transactions.
- Split amounts always add up to the transaction amount (within one cent).
- ``budget_id`` points at the budget of the transaction's month.
- ``BudgetAllocation.spent_amount`` is re-synced for every month touched.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.budget import Transaction, TransactionSplit
from . import repository
from .budget_sync import link_transaction_to_budget, sync_months
from .categories import ensure_default_category
from .config import DEFAULT_CATEGORY_NAME
from .errors import (
    DuplicateTransactionError,
    FingerprintConflictError,
    InvalidTransactionError,
    SplitTotalMismatchError,
    TransactionNotFoundError,
)
from .fingerprint import compute_fingerprint, fingerprint_merchant
from .logging_setup import get_logger
from .merchant_names import sanitize_merchant_name
from .merchant_resolver import resolve_merchant
from .models import NewTransaction, SplitInput, TransactionUpdate
from .rules import load_active_rules, resolve_rule_category

logger = get_logger("budget_pipeline.transactions")

SPLIT_TOLERANCE = Decimal("0.01")


def _clean(v: str | None) -> str | None:
    if v is None:
        return None
    s = v.strip()
    return s or None


def check_split_total(amount: Decimal, splits: tuple[SplitInput, ...] | list[SplitInput]) -> None:
    """Raise :class:`SplitTotalMismatchError` unless splits add up to ``amount``."""

    total = sum((s.amount for s in splits), Decimal("0.00"))
    if abs(total - amount) > SPLIT_TOLERANCE:
        raise SplitTotalMismatchError(amount, total)


def _merchant_fields(session: Session, text: str | None) -> tuple[str | None, str | None]:
    """Return ``(merchant_id, display text)`` for free-text merchant input."""

    sanitized = sanitize_merchant_name(text) if text else ""
    if not sanitized:
        return None, None
    resolution = resolve_merchant(session, text)
    if resolution is None:
        return None, sanitized
    return resolution.merchant_id, resolution.canonical_name


def get_transaction(session: Session, transaction_id: str) -> Transaction:
    tx = repository.get_transaction(session, transaction_id)
    if tx is None:
        raise TransactionNotFoundError(transaction_id)
    return tx


# ---------------------------
# Create
# ---------------------------


def create_transaction(
    session: Session,
    payload: NewTransaction,
    *,
    default_category_name: str = DEFAULT_CATEGORY_NAME,
) -> Transaction:
    """Record a manually entered transaction.

    Without explicit splits the transaction gets one split at the full
    amount, on ``payload.category_id`` or else the first matching rule's
    category or else the default category.

    Raises
    ------
    SplitTotalMismatchError
        When explicit splits do not add up to the amount.
    DuplicateTransactionError
        When a stored transaction already has the same fingerprint.
    """

    if payload.splits:
        check_split_total(payload.amount, payload.splits)

    fingerprint = compute_fingerprint(
        occurred_on=payload.occurred_on,
        posted_on=payload.posted_on,
        amount=payload.amount,
        merchant=fingerprint_merchant(payload.merchant),
        description=payload.description,
    )
    existing = repository.find_transaction_by_fingerprint(session, fingerprint)
    if existing is not None:
        raise DuplicateTransactionError(existing.id)

    default_category = ensure_default_category(session, default_category_name)
    merchant_id, merchant_display = _merchant_fields(session, payload.merchant)
    memo = _clean(payload.memo)

    if payload.splits:
        splits = [
            TransactionSplit(
                category_id=s.category_id or default_category.id,
                amount=s.amount,
                memo=_clean(s.memo),
            )
            for s in payload.splits
        ]
    else:
        category_id = payload.category_id or resolve_rule_category(
            load_active_rules(session),
            description=payload.description,
            merchant=merchant_display,
            raw=memo,
        )
        splits = [
            TransactionSplit(category_id=category_id or default_category.id, amount=payload.amount)
        ]

    tx = Transaction(
        occurred_on=payload.occurred_on,
        posted_on=payload.posted_on,
        amount=payload.amount,
        type=payload.type,
        origin="MANUAL",
        description=payload.description,
        merchant=merchant_display,
        merchant_raw=_clean(payload.merchant),
        merchant_id=merchant_id,
        memo=memo,
        is_pending=payload.is_pending,
        fingerprint=fingerprint,
        category_id=splits[0].category_id if len(splits) == 1 else None,
        splits=splits,
    )
    session.add(tx)
    session.flush()
    tx.external_id = f"manual:{tx.id}"
    link_transaction_to_budget(session, tx)
    session.flush()

    sync_months(session, [tx.occurred_on])
    logger.info("Created transaction %s (%s %s)", tx.id, tx.type, tx.amount)
    return tx


# ---------------------------
# Update
# ---------------------------


def update_transaction(
    session: Session,
    transaction_id: str,
    changes: TransactionUpdate,
    *,
    default_category_name: str = DEFAULT_CATEGORY_NAME,
) -> Transaction:
    """Apply a partial edit to a stored transaction.

    Only fields present in ``changes`` are touched (``posted_on`` and
    ``memo`` may be cleared by passing ``None``; ``merchant`` by passing an
    empty string). A new ``amount`` carries its single split along with it;
    transactions with several splits need new ``splits`` alongside.

    Raises
    ------
    TransactionNotFoundError
        Unknown ``transaction_id``.
    SplitTotalMismatchError
        When the resulting splits would not add up to the resulting amount.
    FingerprintConflictError
        When the edit makes the transaction identical to another one.
    InvalidTransactionError
        When ``category_id`` is set on a transaction with several splits.
    """

    tx = get_transaction(session, transaction_id)
    fields = changes.model_fields_set
    prior_occurred_on = tx.occurred_on

    next_occurred_on: date = changes.occurred_on or tx.occurred_on
    next_posted_on = changes.posted_on if "posted_on" in fields else tx.posted_on
    next_amount: Decimal = changes.amount if changes.amount is not None else tx.amount
    next_description = changes.description if changes.description is not None else tx.description
    amount_changed = next_amount != tx.amount

    # Validation: nothing is written until every check has passed.
    if changes.splits is not None:
        if not changes.splits:
            raise InvalidTransactionError("At least one split is required")
        check_split_total(next_amount, changes.splits)
    elif amount_changed and len(tx.splits) > 1:
        current = sum((s.amount for s in tx.splits), Decimal("0.00"))
        raise SplitTotalMismatchError(next_amount, current)
    if changes.category_id is not None and changes.splits is None and len(tx.splits) > 1:
        raise InvalidTransactionError(
            "Cannot set a single category on a transaction with several splits"
        )

    merchant_changed = "merchant" in fields and changes.merchant is not None
    # Rows inserted without a recorded spelling fall back to their display text.
    prior_merchant_source = tx.merchant_raw if tx.merchant_raw is not None else tx.merchant
    next_merchant_source = _clean(changes.merchant) if merchant_changed else prior_merchant_source

    fingerprint_inputs_changed = (
        next_occurred_on != tx.occurred_on
        or next_posted_on != tx.posted_on
        or amount_changed
        or next_description != tx.description
        or fingerprint_merchant(next_merchant_source)
        != fingerprint_merchant(prior_merchant_source)
    )
    next_fingerprint = tx.fingerprint
    if fingerprint_inputs_changed:
        next_fingerprint = compute_fingerprint(
            occurred_on=next_occurred_on,
            posted_on=next_posted_on,
            amount=next_amount,
            merchant=fingerprint_merchant(next_merchant_source),
            description=next_description,
        )
        clash = session.execute(
            select(Transaction.id).where(
                Transaction.fingerprint == next_fingerprint, Transaction.id != tx.id
            )
        ).scalar_one_or_none()
        if clash is not None:
            raise FingerprintConflictError(tx.id, clash)

    # Writes.
    if merchant_changed:
        tx.merchant_id, tx.merchant = _merchant_fields(session, changes.merchant)
        tx.merchant_raw = next_merchant_source
    tx.occurred_on = next_occurred_on
    tx.posted_on = next_posted_on
    tx.amount = next_amount
    tx.description = next_description
    tx.fingerprint = next_fingerprint
    if changes.type is not None:
        tx.type = changes.type
    if "memo" in fields:
        tx.memo = _clean(changes.memo)
    if changes.is_pending is not None:
        tx.is_pending = changes.is_pending

    if changes.splits is not None:
        default_category = ensure_default_category(session, default_category_name)
        tx.splits.clear()
        session.flush()
        for s in changes.splits:
            tx.splits.append(
                TransactionSplit(
                    category_id=s.category_id or default_category.id,
                    amount=s.amount,
                    memo=_clean(s.memo),
                )
            )
        tx.category_id = tx.splits[0].category_id if len(tx.splits) == 1 else None
    else:
        if len(tx.splits) == 1:
            split = tx.splits[0]
            split.amount = next_amount
            if changes.category_id is not None:
                split.category_id = changes.category_id
        elif not tx.splits:
            tx.splits.append(
                TransactionSplit(
                    category_id=changes.category_id or tx.category_id, amount=next_amount
                )
            )
        if changes.category_id is not None:
            tx.category_id = changes.category_id

    link_transaction_to_budget(session, tx)
    session.flush()
    sync_months(session, [prior_occurred_on, tx.occurred_on])
    logger.info("Updated transaction %s", tx.id)
    return tx


# ---------------------------
# Delete
# ---------------------------


def delete_transaction(session: Session, transaction_id: str) -> None:
    """Hard-delete a transaction (and its splits) and re-sync its month."""

    tx = get_transaction(session, transaction_id)
    occurred_on = tx.occurred_on
    session.delete(tx)
    session.flush()
    sync_months(session, [occurred_on])
    logger.info("Deleted transaction %s", transaction_id)


__all__ = [
    "SPLIT_TOLERANCE",
    "check_split_total",
    "create_transaction",
    "delete_transaction",
    "get_transaction",
    "update_transaction",
]
