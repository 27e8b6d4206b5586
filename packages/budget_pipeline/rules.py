# ruff: noqa: I001
"""Rule-based categorization.

A rule matches one transaction field (description, merchant text, or the raw
source record) against a value using one of five match types. Active rules
are evaluated in creation order and the first match with a category wins.

Two entry points:
- ``resolve_rule_category``: pure evaluation used during import and manual
  entry.
- ``apply_rule_to_existing_transactions``: bulk re-application of one rule
  over stored EXPENSE transactions (``assign`` or ``clear``), followed by a
  budget spend sync for every month touched.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from db.models.budget import Rule, Transaction, TransactionSplit
from . import repository
from .budget_sync import month_start, sync_months
from .categories import ensure_default_category
from .config import DEFAULT_CATEGORY_NAME
from .logging_setup import get_logger
from .models import RuleApplyMode, RuleApplyResult

logger = get_logger("budget_pipeline.rules")

MATCH_FIELDS = ("DESCRIPTION", "MERCHANT", "RAW")
MATCH_TYPES = ("EXACT", "STARTS_WITH", "ENDS_WITH", "CONTAINS", "REGEX")


def raw_rule_text(raw_record: Mapping[str, Any] | None, memo: str | None = None) -> str:
    """Text a ``RAW`` rule matches: the source record as JSON, else the memo."""

    if raw_record:
        return json.dumps(dict(raw_record), ensure_ascii=False)
    return memo or ""


# ---------------------------
# Evaluation
# ---------------------------


def rule_field_value(
    rule: Rule,
    *,
    description: str | None = None,
    merchant: str | None = None,
    raw: str | None = None,
) -> str:
    if rule.match_field == "MERCHANT":
        return merchant or ""
    if rule.match_field == "RAW":
        return raw or ""
    return description or ""


def matches_rule(rule: Rule, value: str) -> bool:
    """Return True when ``value`` satisfies ``rule``.

    Every match type is case-insensitive. Literal types compare trimmed
    values; ``REGEX`` searches the untrimmed value. An invalid pattern is
    logged and treated as no match.
    """

    target = value.strip().lower()
    needle = (rule.match_value or "").strip().lower()

    match rule.match_type:
        case "EXACT":
            return target == needle
        case "STARTS_WITH":
            return target.startswith(needle)
        case "ENDS_WITH":
            return target.endswith(needle)
        case "REGEX":
            try:
                return re.search(rule.match_value, value, re.IGNORECASE) is not None
            except re.error as exc:
                logger.error("Invalid rule regex (rule %s): %s", rule.id, exc)
                return False
        case _:
            return needle in target


def resolve_rule_category(
    rules: Iterable[Rule],
    *,
    description: str | None = None,
    merchant: str | None = None,
    raw: str | None = None,
) -> str | None:
    """Category id of the first matching active rule, or ``None``.

    ``rules`` must already be in precedence order (see
    :func:`load_active_rules`).
    """

    for rule in rules:
        if not rule.is_active or not rule.category_id:
            continue
        candidate = rule_field_value(rule, description=description, merchant=merchant, raw=raw)
        if not candidate:
            continue
        if matches_rule(rule, candidate):
            return rule.category_id
    return None


def load_active_rules(session: Session) -> list[Rule]:
    return repository.load_active_rules(session)


# ---------------------------
# Rule management
# ---------------------------


def create_rule(
    session: Session,
    *,
    name: str,
    match_value: str,
    category_id: str,
    match_field: str = "DESCRIPTION",
    match_type: str = "CONTAINS",
    is_active: bool = True,
    apply_to_existing: bool = False,
) -> tuple[Rule, RuleApplyResult | None]:
    """Create a rule and optionally assign it over existing transactions."""

    name_n = name.strip()
    value_n = match_value.strip()
    if not name_n:
        raise ValueError("Name is required")
    if not value_n:
        raise ValueError("Match value is required")
    if not category_id:
        raise ValueError("Category is required")
    field = match_field.strip().upper()
    kind = match_type.strip().upper()
    if field not in MATCH_FIELDS:
        raise ValueError(f"Invalid match field: {match_field!r}")
    if kind not in MATCH_TYPES:
        raise ValueError(f"Invalid match type: {match_type!r}")
    if kind == "REGEX":
        try:
            re.compile(value_n)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression: {exc}") from None

    rule = Rule(
        name=name_n,
        match_field=field,
        match_type=kind,
        match_value=value_n,
        category_id=category_id,
        is_active=is_active,
    )
    session.add(rule)
    session.flush()

    result = None
    if is_active and apply_to_existing:
        result = apply_rule_to_existing_transactions(session, rule, "assign")
    return rule, result


# ---------------------------
# Bulk re-application
# ---------------------------


def _prefilter(rule: Rule):
    """Case-insensitive SQL predicate narrowing candidates for ``rule``.

    Over-fetches on purpose for REGEX, RAW and blank values; every candidate
    is re-evaluated with :func:`matches_rule`.
    """

    if rule.match_field == "RAW":
        return or_(Transaction.raw_record.is_not(None), Transaction.memo.is_not(None))

    column = Transaction.merchant if rule.match_field == "MERCHANT" else Transaction.description
    value = (rule.match_value or "").strip()
    if not value or rule.match_type == "REGEX":
        return column.is_not(None)

    match rule.match_type:
        case "EXACT":
            return func.lower(column) == value.lower()
        case "STARTS_WITH":
            return column.istartswith(value, autoescape=True)
        case "ENDS_WITH":
            return column.iendswith(value, autoescape=True)
        case _:
            return column.icontains(value, autoescape=True)


def _point_at_category(tx: Transaction, category_id: str) -> None:
    tx.category_id = category_id
    if len(tx.splits) == 1:
        split = tx.splits[0]
        split.category_id = category_id
        split.amount = tx.amount
    else:
        tx.splits.clear()
        tx.splits.append(
            TransactionSplit(category_id=category_id, amount=tx.amount, memo=None)
        )


def apply_rule_to_existing_transactions(
    session: Session,
    rule: Rule,
    mode: RuleApplyMode,
    *,
    default_category_name: str = DEFAULT_CATEGORY_NAME,
) -> RuleApplyResult:
    """Re-apply ``rule`` to stored EXPENSE transactions.

    Modes
    -----
    ``assign``
        Move every matching transaction (and its single split, at the full
        amount) onto the rule's category. Rows already there are left alone.
        A rule without a category makes this a no-op.
    ``clear``
        Move matching transactions currently on the rule's category back to
        the default category.

    Transactions with more than one split are never touched. Affected months
    are re-synced and ``rule.last_run_at`` is stamped. The caller commits.
    """

    if mode not in ("assign", "clear"):
        raise ValueError(f"Unknown apply mode: {mode!r}")
    if mode == "assign" and not rule.category_id:
        return RuleApplyResult(updated=0, affected_transaction_ids=())

    candidates = session.execute(
        select(Transaction)
        .where(Transaction.type == "EXPENSE", _prefilter(rule))
        .options(selectinload(Transaction.splits))
        .order_by(Transaction.occurred_on, Transaction.created_at)
    ).scalars().all()

    default_category_id = (
        ensure_default_category(session, default_category_name).id if mode == "clear" else None
    )

    months: set[date] = set()
    affected: list[str] = []
    for tx in candidates:
        value = rule_field_value(
            rule,
            description=tx.description,
            merchant=tx.merchant,
            raw=raw_rule_text(tx.raw_record, tx.memo),
        )
        if not value or not matches_rule(rule, value):
            continue
        if len(tx.splits) > 1:
            continue

        if mode == "assign":
            target = rule.category_id
            if (
                tx.category_id == target
                and len(tx.splits) == 1
                and tx.splits[0].category_id == target
            ):
                continue
        else:
            if tx.category_id != rule.category_id:
                continue
            target = default_category_id

        _point_at_category(tx, target)
        months.add(month_start(tx.occurred_on))
        affected.append(tx.id)

    session.flush()
    sync_months(session, months)
    rule.last_run_at = datetime.now(UTC)
    session.flush()

    logger.info(
        "Rule %r (%s): %d transaction(s) updated across %d month(s)",
        rule.name,
        mode,
        len(affected),
        len(months),
    )
    return RuleApplyResult(updated=len(affected), affected_transaction_ids=tuple(affected))


__all__ = [
    "MATCH_FIELDS",
    "MATCH_TYPES",
    "apply_rule_to_existing_transactions",
    "create_rule",
    "load_active_rules",
    "matches_rule",
    "raw_rule_text",
    "resolve_rule_category",
    "rule_field_value",
]
