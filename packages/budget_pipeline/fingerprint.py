"""Duplicate-detection fingerprints for transactions.

A fingerprint is a SHA-256 digest over a canonical JSON payload of the fields
that identify a bank row: occurrence date, posting date, amount, merchant
text and description. It backs the unique ``transactions.fingerprint``
column, the duplicate skip during CSV import, and the conflict check when a
transaction is edited.

The merchant part is derived from the spelling the row was entered or
imported with (``Transaction.merchant_raw``, see :func:`fingerprint_merchant`),
never from the resolved display name.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .merchant_names import sanitize_merchant_name

_CENT = Decimal("0.01")


def to_decimal_2(raw: Any) -> Decimal | None:
    """Quantize ``raw`` to two decimal places (half-up), or ``None``."""

    if raw is None:
        return None
    try:
        d = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def fingerprint_merchant(source: str | None) -> str:
    """Merchant text hashed for a row whose statement spelling is ``source``."""

    if not source:
        return ""
    return sanitize_merchant_name(source) or source.strip()


def _norm_text(v: str | None) -> str:
    if v is None:
        return ""
    return v.strip().lower()


def compute_fingerprint(
    *,
    occurred_on: date,
    amount: Decimal | str | int | float,
    posted_on: date | None = None,
    merchant: str | None = None,
    description: str | None = None,
) -> str:
    """Compute a stable SHA-256 fingerprint over canonical fields.

    Fields used: occurrence date and posting date (``YYYY-MM-DD``), absolute
    amount as a 2dp string, merchant and description (trimmed, lowercased).
    Amount formatting noise does not matter: ``Decimal("1200")``,
    ``"1200.00"`` and ``1200.0`` hash identically.
    """

    amt = to_decimal_2(amount)
    if amt is None:
        raise ValueError(f"invalid amount for fingerprint: {amount!r}")

    payload = {
        "occurred_on": occurred_on.isoformat(),
        "posted_on": posted_on.isoformat() if posted_on else None,
        "amount": f"{abs(amt):.2f}",
        "merchant": _norm_text(merchant),
        "description": _norm_text(description),
    }
    # Ensure deterministic JSON serialization
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


__all__ = ["compute_fingerprint", "fingerprint_merchant", "to_decimal_2"]
