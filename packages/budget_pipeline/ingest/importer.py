# ruff: noqa: I001
"""CSV import orchestration.

Flow for one file:

1. Parse the CSV and open an ``ImportBatch``.
2. Extract candidates; rows without a usable date/amount are counted as
   skipped.
3. Resolve one merchant identity per normalized key: existing alias, else an
   autocomplete suggestion (when a lookup is configured), else a direct
   resolution when ``auto_create_merchants`` is on. Keys left over are
   reported as pending.
4. Persist rows one at a time, each in its own database transaction:
   fingerprint duplicate check, rule category, optional reconciliation with
   a manually entered twin, insert of transaction + split, budget link.
   A failing row is rolled back and reported; the batch carries on.
5. Re-sync the budget of every month that received rows and stamp the batch
   complete.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.budget import ImportBatch, Transaction, TransactionSplit
from .. import repository
from ..budget_sync import link_transaction_to_budget, month_start, sync_months
from ..categories import ensure_default_category
from ..config import PipelineSettings
from ..errors import LookupCancelledError
from ..fingerprint import compute_fingerprint, fingerprint_merchant
from ..logging_setup import get_logger
from ..merchant_names import normalize_merchant_key
from ..merchant_resolver import resolve_merchant
from ..models import (
    CandidateTransaction,
    ImportSummary,
    MerchantResolution,
    PendingMerchant,
    RowError,
)
from ..rules import load_active_rules, raw_rule_text, resolve_rule_category
from ..yelp_client import (
    fetch_autocomplete,
    merchant_tokens,
    pick_autocomplete_candidate,
    token_similarity,
)
from .csv_rows import extract_candidate, read_csv_records

logger = get_logger("budget_pipeline.ingest.importer")

# Autocomplete hook: search text -> parsed response (``{"businesses": [...]}``).
type AutocompleteLookup = Callable[[str], Mapping[str, Any] | None]

MANUAL_MATCH_THRESHOLD = 0.6


@dataclass(slots=True)
class _MerchantGroup:
    canonical_candidate: str
    raw_names: list[str] = field(default_factory=list)
    count: int = 0

    def add(self, raw: str) -> None:
        self.count += 1
        if raw and raw not in self.raw_names:
            self.raw_names.append(raw)


# ---------------------------
# Merchant identities
# ---------------------------


def _resolve_merchant_groups(
    session: Session,
    groups: dict[str, _MerchantGroup],
    *,
    auto_create: bool,
    lookup: AutocompleteLookup | None,
) -> tuple[dict[str, MerchantResolution], list[PendingMerchant]]:
    resolved: dict[str, MerchantResolution] = {}
    for key, alias in repository.find_aliases_by_keys(session, groups.keys()).items():
        resolved[key] = MerchantResolution(
            merchant_id=alias.merchant_id,
            canonical_name=alias.merchant.canonical_name,
            normalized_key=key,
        )

    pending: list[PendingMerchant] = []
    for key, group in groups.items():
        if key in resolved:
            continue

        resolution = None
        if lookup is not None:
            try:
                response = lookup(group.canonical_candidate or key)
            except LookupCancelledError:
                logger.warning("Merchant autocomplete cancelled; skipping remaining lookups")
                lookup = None
                response = None
            choice = pick_autocomplete_candidate(
                key, group.canonical_candidate, group.raw_names, response
            )
            if choice is not None:
                resolution = resolve_merchant(
                    session,
                    choice.raw_name,
                    canonical_name=choice.canonical_name,
                    yelp_id=choice.yelp_id,
                )

        if resolution is None and auto_create and group.raw_names:
            resolution = resolve_merchant(
                session, group.raw_names[0], canonical_name=group.canonical_candidate
            )

        if resolution is None:
            pending.append(
                PendingMerchant(
                    normalized_key=key,
                    raw_name=group.raw_names[0] if group.raw_names else "",
                    suggested_name=group.canonical_candidate,
                    transaction_count=group.count,
                )
            )
            continue
        resolved[key] = resolution
        if resolution.normalized_key != key:
            resolved[resolution.normalized_key] = resolution
    return resolved, pending


# ---------------------------
# Manual reconciliation
# ---------------------------


def _merchant_similarity(import_key: str, import_tokens: set[str], source: str) -> float:
    other_key = normalize_merchant_key(source)
    score = 0.0
    if import_key and other_key:
        if import_key == other_key:
            return 1.0
        if import_key in other_key or other_key in import_key:
            score = 0.9
    return max(score, token_similarity(import_tokens, merchant_tokens(source)))


def find_manual_match(session: Session, cand: CandidateTransaction) -> Transaction | None:
    """Manually entered transaction that ``cand`` most likely duplicates.

    Candidates share the day, amount and type; the best merchant similarity
    at or above :data:`MANUAL_MATCH_THRESHOLD` wins.
    """

    source = cand.canonical_merchant or cand.merchant or cand.merchant_raw
    import_key = cand.merchant_key or normalize_merchant_key(source)
    import_tokens = merchant_tokens(source)

    best: Transaction | None = None
    best_score = 0.0
    for manual in repository.manual_transactions_on_day(
        session, occurred_on=cand.occurred_on, amount=cand.amount, tx_type=cand.type
    ):
        other = manual.merchant if (manual.merchant or "").strip() else (manual.description or "")
        score = _merchant_similarity(import_key, import_tokens, other)
        if score >= MANUAL_MATCH_THRESHOLD and (best is None or score > best_score):
            best, best_score = manual, score
    return best


# ---------------------------
# Rows
# ---------------------------


def _import_row(
    session: Session,
    cand: CandidateTransaction,
    *,
    index: int,
    batch_id: str,
    rules: list,
    default_category_id: str,
    resolution: MerchantResolution | None,
    reconcile: bool,
) -> Transaction | None:
    """Insert one candidate; ``None`` when its fingerprint already exists."""

    fingerprint = compute_fingerprint(
        occurred_on=cand.occurred_on,
        posted_on=cand.posted_on,
        amount=cand.amount,
        merchant=fingerprint_merchant(cand.merchant_raw),
        description=cand.description,
    )
    if repository.find_transaction_by_fingerprint(session, fingerprint) is not None:
        return None

    # Unresolved rows store the canonical spelling; its key is the pending key.
    if resolution is not None:
        display = resolution.canonical_name
    else:
        display = cand.canonical_merchant or cand.merchant or None
    rule_category = resolve_rule_category(
        rules,
        description=cand.description,
        merchant=display,
        raw=raw_rule_text(cand.raw_record),
    )

    manual = find_manual_match(session, cand) if reconcile else None
    memo = None
    category_id: str | None
    if manual is not None and manual.splits:
        splits = [
            TransactionSplit(category_id=s.category_id, amount=s.amount, memo=s.memo)
            for s in manual.splits
        ]
        memo = manual.memo
        category_id = manual.category_id or (splits[0].category_id if len(splits) == 1 else None)
    else:
        category_id = rule_category or default_category_id
        splits = [TransactionSplit(category_id=category_id, amount=cand.amount)]
        if manual is not None:
            memo = manual.memo
    if manual is not None:
        logger.info("Row %d replaces manual transaction %s", index + 1, manual.id)
        session.delete(manual)
        session.flush()

    tx = Transaction(
        occurred_on=cand.occurred_on,
        posted_on=cand.posted_on,
        amount=cand.amount,
        type=cand.type,
        origin="IMPORT",
        description=cand.description or None,
        merchant=display,
        merchant_raw=cand.merchant_raw or None,
        merchant_id=resolution.merchant_id if resolution is not None else None,
        memo=memo,
        raw_record=dict(cand.raw_record),
        category_id=category_id,
        import_batch_id=batch_id,
        external_id=f"import:{batch_id}:{index}",
        fingerprint=fingerprint,
        is_pending=False,
        splits=splits,
    )
    session.add(tx)
    session.flush()
    link_transaction_to_budget(session, tx)
    session.flush()
    return tx


# ---------------------------
# Entry points
# ---------------------------


def import_transactions_csv(
    session: Session,
    csv_text: str,
    *,
    file_name: str | None = None,
    source: str = "manual-upload",
    settings: PipelineSettings | None = None,
    lookup: AutocompleteLookup | None = None,
) -> ImportSummary:
    """Import a bank CSV export into the budget database.

    Parameters
    ----------
    session:
        Session used for the whole import. The importer commits as it goes
        (batch header, merchant identities, then one commit per row).
    csv_text:
        Decoded file contents with a header row.
    settings:
        Defaults to ``PipelineSettings()`` (no autocomplete, merchants
        auto-created, manual reconciliation on).
    lookup:
        Autocomplete hook; defaults to the Yelp client when
        ``settings.yelp_api_key`` is set.

    Raises
    ------
    csv.Error
        When the text has no header row. Nothing is written in that case.
    """

    settings = settings or PipelineSettings()
    if lookup is None and settings.yelp_api_key:
        lookup = partial(
            fetch_autocomplete, api_key=settings.yelp_api_key, api_url=settings.yelp_api_url
        )

    headers, records = read_csv_records(csv_text)

    batch = ImportBatch(source=source, file_name=file_name)
    session.add(batch)
    rules = load_active_rules(session)
    default_category_id = ensure_default_category(session, settings.default_category_name).id
    session.flush()
    batch_id = batch.id
    session.commit()
    logger.info("Import %s: %d record(s) from %s", batch_id, len(records), file_name or source)

    summary = ImportSummary(import_batch_id=batch_id)
    items: list[tuple[int, CandidateTransaction]] = []
    groups: dict[str, _MerchantGroup] = {}
    for index, record in enumerate(records):
        cand = extract_candidate(record, headers)
        if cand is None:
            summary.skipped += 1
            logger.debug("Row %d skipped: no usable date or amount", index + 1)
            continue
        items.append((index, cand))
        if cand.merchant_key:
            group = groups.get(cand.merchant_key)
            if group is None:
                group = groups[cand.merchant_key] = _MerchantGroup(cand.canonical_merchant)
            group.add(cand.merchant_raw)

    resolutions, summary.pending_merchants = _resolve_merchant_groups(
        session, groups, auto_create=settings.auto_create_merchants, lookup=lookup
    )
    session.commit()

    months = set()
    for index, cand in items:
        try:
            tx = _import_row(
                session,
                cand,
                index=index,
                batch_id=batch_id,
                rules=rules,
                default_category_id=default_category_id,
                resolution=resolutions.get(cand.merchant_key),
                reconcile=settings.reconcile_manual_entries,
            )
            session.commit()
        except (SQLAlchemyError, ValueError) as exc:
            session.rollback()
            summary.errors.append(RowError(row=index + 1, message=str(exc)))
            logger.warning("Row %d failed: %s", index + 1, exc)
            continue

        if tx is None:
            summary.duplicates += 1
            continue
        summary.imported += 1
        summary.created_transaction_ids.append(tx.id)
        months.add(month_start(cand.occurred_on))

    sync_months(session, months)
    batch = session.get(ImportBatch, batch_id)
    if batch is not None:
        batch.completed_at = datetime.now(UTC)
    session.commit()

    logger.info(
        "Import %s done: imported=%d duplicates=%d skipped=%d errors=%d pending_merchants=%d",
        batch_id,
        summary.imported,
        summary.duplicates,
        summary.skipped,
        len(summary.errors),
        len(summary.pending_merchants),
    )
    return summary


def import_csv_file(
    path: Path | str,
    *,
    database_url: str | None = None,
    source: str = "manual-upload",
    settings: PipelineSettings | None = None,
    lookup: AutocompleteLookup | None = None,
) -> ImportSummary:
    """Read ``path`` (UTF-8) and import it through a fresh session."""

    p = Path(path)
    text = p.read_text(encoding="utf-8")
    settings = settings or PipelineSettings()
    with session_scope(database_url=database_url or settings.database_url) as session:
        return import_transactions_csv(
            session,
            text,
            file_name=p.name,
            source=source,
            settings=settings,
            lookup=lookup,
        )


__all__ = [
    "AutocompleteLookup",
    "MANUAL_MATCH_THRESHOLD",
    "find_manual_match",
    "import_csv_file",
    "import_transactions_csv",
]
