"""Data models for ``budget_pipeline``.

Two families live here:

- Frozen dataclasses for values produced by the pipeline (extracted CSV
  candidates, merchant resolutions, import/rule summaries).
- Pydantic models validating caller-supplied payloads for manual transaction
  create/edit operations.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

type TransactionType = Literal["INCOME", "EXPENSE"]
type TransactionOrigin = Literal["MANUAL", "IMPORT", "ADJUSTMENT"]
type RuleMatchField = Literal["DESCRIPTION", "MERCHANT", "RAW"]
type RuleMatchType = Literal["EXACT", "STARTS_WITH", "ENDS_WITH", "CONTAINS", "REGEX"]
type RuleApplyMode = Literal["assign", "clear"]

# An opaque CSV record as produced by ``csv.DictReader``: header -> cell text.
type CsvRecord = Mapping[str, str | None]


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CandidateTransaction:
    """A CSV row mapped onto transaction fields, ready for persistence.

    ``amount`` is always positive; the sign of the source amount is carried by
    ``type``. ``merchant_raw`` keeps the statement spelling while
    ``merchant`` holds the sanitized display text (used for fingerprints).
    """

    occurred_on: date
    amount: Decimal
    type: TransactionType
    description: str
    merchant_raw: str
    merchant: str
    canonical_merchant: str
    merchant_key: str
    posted_on: date | None = None
    raw_record: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MerchantResolution:
    merchant_id: str
    canonical_name: str
    normalized_key: str


@dataclass(frozen=True, slots=True)
class PendingMerchant:
    """A merchant name seen during import that could not be resolved."""

    normalized_key: str
    raw_name: str
    suggested_name: str
    transaction_count: int


@dataclass(frozen=True, slots=True)
class RowError:
    row: int
    message: str


@dataclass(slots=True)
class ImportSummary:
    import_batch_id: str
    imported: int = 0
    duplicates: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)
    created_transaction_ids: list[str] = field(default_factory=list)
    pending_merchants: list[PendingMerchant] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "import_batch_id": self.import_batch_id,
            "imported": self.imported,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "errors": [{"row": e.row, "message": e.message} for e in self.errors],
            "created_transaction_ids": list(self.created_transaction_ids),
            "pending_merchants": [
                {
                    "normalized_key": p.normalized_key,
                    "raw_name": p.raw_name,
                    "suggested_name": p.suggested_name,
                    "transaction_count": p.transaction_count,
                }
                for p in self.pending_merchants
            ],
        }


@dataclass(frozen=True, slots=True)
class RuleApplyResult:
    updated: int
    affected_transaction_ids: tuple[str, ...]


# ---------------------------------------------------------------------------
# Manual create/edit payloads
# ---------------------------------------------------------------------------


def _money(v: Any) -> Decimal:
    try:
        d = Decimal(str(v).strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {v!r}") from exc
    if not d.is_finite():
        raise ValueError("amount must be a finite number")
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class SplitInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    category_id: str | None = None
    memo: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_2dp(cls, v: Any) -> Decimal:
        d = _money(v)
        if d <= 0:
            raise ValueError("split amount must be positive")
        return d


class NewTransaction(BaseModel):
    """Payload for a manually entered transaction."""

    model_config = ConfigDict(frozen=True)

    occurred_on: date
    amount: Decimal
    type: TransactionType = "EXPENSE"
    description: str
    posted_on: date | None = None
    merchant: str | None = None
    memo: str | None = None
    category_id: str | None = None
    is_pending: bool = False
    splits: tuple[SplitInput, ...] = ()

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_2dp(cls, v: Any) -> Decimal:
        d = _money(v)
        if d <= 0:
            raise ValueError("amount must be positive")
        return d

    @field_validator("description")
    @classmethod
    def _description_required(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("description is required")
        return s


class TransactionUpdate(BaseModel):
    """Partial edit of a transaction; ``None`` leaves a field unchanged.

    ``splits`` replaces every split when given. ``merchant`` set to an empty
    string clears the merchant.
    """

    model_config = ConfigDict(frozen=True)

    occurred_on: date | None = None
    posted_on: date | None = None
    amount: Decimal | None = None
    type: TransactionType | None = None
    description: str | None = None
    merchant: str | None = None
    memo: str | None = None
    category_id: str | None = None
    is_pending: bool | None = None
    splits: tuple[SplitInput, ...] | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_2dp(cls, v: Any) -> Decimal | None:
        if v is None:
            return None
        d = _money(v)
        if d <= 0:
            raise ValueError("amount must be positive")
        return d

    @field_validator("description")
    @classmethod
    def _description_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return None
        s = v.strip()
        if not s:
            raise ValueError("description cannot be blank")
        return s


__all__ = [
    "CandidateTransaction",
    "CsvRecord",
    "ImportSummary",
    "MerchantResolution",
    "NewTransaction",
    "PendingMerchant",
    "RowError",
    "RuleApplyMode",
    "RuleApplyResult",
    "RuleMatchField",
    "RuleMatchType",
    "SplitInput",
    "TransactionOrigin",
    "TransactionType",
    "TransactionUpdate",
]
