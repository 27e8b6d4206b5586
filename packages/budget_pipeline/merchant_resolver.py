# ruff: noqa: I001
"""Merchant identity resolution.

Maps a raw statement spelling onto a stable ``Merchant`` via its normalized
key. Existing aliases win; otherwise a merchant is created (by canonical
name) together with an alias for the key. Both writes are unique-key upserts,
so two sessions resolving the same spelling at once end up sharing one
merchant and one alias.

Scope:
- ``resolve_merchant``: key -> alias -> merchant, creating when allowed.
- ``reassign_unresolved_transactions``: attach a resolution to transactions
  imported before their merchant was known.
- ``resolve_pending_merchant``: the manual "name this merchant" flow.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from db.models.budget import Transaction
from . import repository
from .logging_setup import get_logger
from .merchant_names import (
    canonicalize_merchant_name,
    normalize_merchant_key,
    sanitize_merchant_name,
)
from .models import MerchantResolution

logger = get_logger("budget_pipeline.merchant_resolver")


def _collapse(value: str | None) -> str:
    return " ".join((value or "").split())


def resolve_merchant(
    session: Session,
    raw_name: str | None,
    *,
    canonical_name: str | None = None,
    yelp_id: str | None = None,
    create_if_missing: bool = True,
) -> MerchantResolution | None:
    """Resolve ``raw_name`` to a merchant identity.

    Parameters
    ----------
    session:
        Open SQLAlchemy session; the caller commits.
    raw_name:
        Spelling as observed on the statement.
    canonical_name:
        Display name to use when a merchant has to be created. Defaults to
        the canonicalizer output for ``raw_name``.
    yelp_id:
        Optional external business id stored on the merchant and alias.
    create_if_missing:
        When False, unknown keys resolve to ``None`` instead of creating rows.

    Returns
    -------
    MerchantResolution | None
        ``None`` when no key can be derived, or when the key is unknown and
        creation is disabled or no canonical name can be derived.
    """

    raw = _collapse(raw_name)
    if not raw:
        return None
    key = normalize_merchant_key(raw)
    if not key:
        return None

    alias = repository.find_alias_by_key(session, key)
    if alias is not None:
        if alias.raw_name != raw:
            alias.raw_name = raw
            session.flush()
        return MerchantResolution(
            merchant_id=alias.merchant_id,
            canonical_name=alias.merchant.canonical_name,
            normalized_key=key,
        )

    if not create_if_missing:
        return None

    canonical = (canonical_name or "").strip() or canonicalize_merchant_name(raw)
    if not canonical:
        return None

    merchant = repository.upsert_merchant(session, canonical_name=canonical, yelp_id=yelp_id)
    repository.upsert_merchant_alias(
        session,
        merchant_id=merchant.id,
        normalized_key=key,
        raw_name=raw,
        yelp_id=yelp_id,
    )
    logger.debug("Created alias %r -> merchant %s (%s)", key, merchant.id, canonical)
    return MerchantResolution(
        merchant_id=merchant.id,
        canonical_name=merchant.canonical_name,
        normalized_key=key,
    )


def reassign_unresolved_transactions(
    session: Session,
    resolution: MerchantResolution,
    spellings: Iterable[str | None] = (),
) -> int:
    """Attach ``resolution`` to transactions that still have no merchant.

    A transaction qualifies when its merchant text or recorded statement
    spelling equals one of ``spellings``, or its merchant text normalizes to
    ``resolution.normalized_key``. Returns the number of transactions updated.
    """

    exact = {s for s in (_collapse(v) for v in spellings) if s}
    updated = 0
    if exact:
        result = session.execute(
            update(Transaction)
            .where(
                Transaction.merchant_id.is_(None),
                or_(
                    Transaction.merchant.in_(sorted(exact)),
                    Transaction.merchant_raw.in_(sorted(exact)),
                ),
            )
            .values(merchant_id=resolution.merchant_id, merchant=resolution.canonical_name)
            .execution_options(synchronize_session="fetch")
        )
        updated += result.rowcount or 0

    target = normalize_merchant_key(resolution.normalized_key)
    if target:
        rows = session.execute(
            select(Transaction.id, Transaction.merchant).where(
                Transaction.merchant_id.is_(None), Transaction.merchant.is_not(None)
            )
        ).all()
        ids = [tx_id for tx_id, merchant in rows if normalize_merchant_key(merchant) == target]
        if ids:
            result = session.execute(
                update(Transaction)
                .where(Transaction.id.in_(ids))
                .values(merchant_id=resolution.merchant_id, merchant=resolution.canonical_name)
                .execution_options(synchronize_session="fetch")
            )
            updated += result.rowcount or 0

    if updated:
        logger.info(
            "Reassigned %d unresolved transaction(s) to %s", updated, resolution.canonical_name
        )
    return updated


def resolve_pending_merchant(
    session: Session,
    *,
    normalized_key: str,
    canonical_name: str,
    raw_name: str | None = None,
    yelp_id: str | None = None,
) -> MerchantResolution:
    """Name a merchant that an import reported as pending.

    The canonical name and raw spelling are sanitized, the merchant is
    resolved (created when new) and every unresolved transaction carrying one
    of the spellings or the pending key is attached to it. The pending key
    also gets its own alias so later imports resolve it directly.

    Raises
    ------
    ValueError
        When no canonical name remains after sanitizing.
    """

    canonical = sanitize_merchant_name(canonical_name)
    if not canonical:
        raise ValueError("canonical_name is required")
    raw = sanitize_merchant_name(raw_name) if raw_name else ""

    resolution = resolve_merchant(
        session,
        (raw_name or "").strip() or canonical,
        canonical_name=canonical,
        yelp_id=yelp_id,
    )
    if resolution is None:
        raise ValueError(f"could not resolve merchant {canonical!r}")

    pending_key = normalize_merchant_key(normalized_key)
    if pending_key and pending_key != resolution.normalized_key:
        repository.upsert_merchant_alias(
            session,
            merchant_id=resolution.merchant_id,
            normalized_key=pending_key,
            raw_name=(raw_name or "").strip() or canonical,
            yelp_id=yelp_id,
        )

    reassign_unresolved_transactions(session, resolution, [canonical, raw, raw_name])
    if pending_key and pending_key != resolution.normalized_key:
        reassign_unresolved_transactions(
            session,
            MerchantResolution(
                merchant_id=resolution.merchant_id,
                canonical_name=resolution.canonical_name,
                normalized_key=pending_key,
            ),
        )
    return resolution


__all__ = [
    "reassign_unresolved_transactions",
    "resolve_merchant",
    "resolve_pending_merchant",
]
