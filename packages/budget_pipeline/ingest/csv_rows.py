"""Map heterogeneous bank CSV exports onto candidate transactions.

Banks disagree on column names ("Transaction Date" vs "Posted Date", a single
signed "Amount" vs separate "Debit"/"Credit" columns, "Payee" vs "Name").
Header keys are normalized (lowercase, alphanumerics only) and then matched
against an explicit, ordered list of :class:`HeaderRule` entries; the first
rule whose column holds a usable value wins for its target field.

Rows without a usable date or with a zero/unparseable amount are rejected
(:func:`extract_candidate` returns ``None``) so the importer can count them as
skipped.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from io import StringIO

from ..fingerprint import to_decimal_2
from ..merchant_names import merchant_name_parts, sanitize_merchant_name
from ..models import CandidateTransaction, CsvRecord

# ---------------------------------------------------------------------------
# Header rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class HeaderRule:
    header: str  # normalized header key
    field: str


# Evaluated in order; earlier rules take precedence for the same field.
HEADER_RULES: tuple[HeaderRule, ...] = (
    HeaderRule("transactiondate", "occurred_on"),
    HeaderRule("date", "occurred_on"),
    HeaderRule("posteddate", "occurred_on"),
    HeaderRule("clearingdate", "occurred_on"),
    HeaderRule("posteddate", "posted_on"),
    HeaderRule("clearingdate", "posted_on"),
    HeaderRule("amount", "amount"),
    HeaderRule("debit", "debit"),
    HeaderRule("credit", "credit"),
    HeaderRule("description", "description"),
    HeaderRule("memo", "description"),
    HeaderRule("merchant", "merchant"),
    HeaderRule("payee", "merchant"),
    HeaderRule("name", "merchant"),
)

_HEADER_NOISE_RE = re.compile(r"[^a-z0-9]")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_DATE_RE = re.compile(r"^(\d{1,2})([/-])(\d{1,2})\2(\d{2,4})$")
_CURRENCY_SYMBOLS = "$€£¥"


def normalize_header(key: str) -> str:
    return _HEADER_NOISE_RE.sub("", key.lower())


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def parse_date(raw: str | None) -> date | None:
    """Parse ``YYYY-MM-DD``, ``MM/DD/YY(YY)`` or ``MM-DD-YY(YY)``.

    Two-digit years are read as 20xx. A trailing time component separated by
    whitespace is ignored. Returns ``None`` for anything else, including
    impossible calendar dates.
    """

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None
    first = s.split()[0]

    try:
        m = _ISO_DATE_RE.match(first)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = _US_DATE_RE.match(first)
        if m:
            year = int(m.group(4))
            if year < 100:
                year += 2000
            return date(year, int(m.group(1)), int(m.group(3)))
    except ValueError:
        return None
    return None


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse a statement amount into a signed ``Decimal`` (2dp), or ``None``.

    Tolerates currency symbols, thousands separators, leading ``+``/``-`` and
    parenthesized negatives in any combination, e.g. ``"-($1,234.56)"``.
    """

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None
    negative = False

    # Iteratively strip leading sign, currency symbol, and surrounding
    # parentheses until stable. This supports any ordering of these markers.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s and s[0] in _CURRENCY_SYMBOLS:
            s = s[1:].lstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    s = s.replace(",", "").strip()
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    q = to_decimal_2(d)
    if q is None:
        return None
    return -abs(q) if negative else q


# ---------------------------------------------------------------------------
# Row extraction
# ---------------------------------------------------------------------------


def _normalized_values(
    record: CsvRecord, headers: Sequence[str] | None
) -> dict[str, str]:
    values: dict[str, str] = {}
    for key in headers if headers is not None else record.keys():
        if key is None:
            continue
        cell = record.get(key)
        if cell is None:
            continue
        text = str(cell).strip()
        norm = normalize_header(key)
        # Two headers can normalize alike ("Date", "date"); keep the first value.
        if text and norm not in values:
            values[norm] = text
    return values


def _first_value(values: dict[str, str], field: str) -> str | None:
    for rule in HEADER_RULES:
        if rule.field == field and rule.header in values:
            return values[rule.header]
    return None


def _first_date(values: dict[str, str], field: str) -> date | None:
    for rule in HEADER_RULES:
        if rule.field != field:
            continue
        parsed = parse_date(values.get(rule.header))
        if parsed is not None:
            return parsed
    return None


def _signed_amount(values: dict[str, str]) -> Decimal | None:
    amount = parse_amount(_first_value(values, "amount"))
    if amount is not None:
        return amount
    debit = parse_amount(_first_value(values, "debit"))
    if debit is not None and debit != 0:
        return -abs(debit)
    credit = parse_amount(_first_value(values, "credit"))
    if credit is not None and credit != 0:
        return abs(credit)
    return None


def extract_candidate(
    record: CsvRecord, headers: Sequence[str] | None = None
) -> CandidateTransaction | None:
    """Map one CSV record onto a :class:`CandidateTransaction`.

    Parameters
    ----------
    record:
        Mapping of header -> raw cell text (as produced by ``csv.DictReader``).
    headers:
        Optional header order; defaults to the record's own key order.

    Returns
    -------
    CandidateTransaction | None
        ``None`` when the row has no parseable date or its amount is zero or
        unparseable.
    """

    values = _normalized_values(record, headers)

    occurred_on = _first_date(values, "occurred_on")
    if occurred_on is None:
        return None

    amount = _signed_amount(values)
    if amount is None or amount == 0:
        return None

    description = _first_value(values, "description") or ""
    merchant_raw = _first_value(values, "merchant") or description
    canonical, key = merchant_name_parts(merchant_raw)
    sanitized = sanitize_merchant_name(merchant_raw)

    return CandidateTransaction(
        occurred_on=occurred_on,
        posted_on=_first_date(values, "posted_on"),
        amount=abs(amount),
        type="EXPENSE" if amount < 0 else "INCOME",
        description=description,
        merchant_raw=merchant_raw,
        merchant=sanitized or merchant_raw,
        canonical_merchant=canonical or sanitized,
        merchant_key=key,
        raw_record={str(k): v for k, v in record.items() if k is not None},
    )


def read_csv_records(csv_text: str) -> tuple[list[str], list[dict[str, str]]]:
    """Parse CSV text with a required header row.

    Returns ``(headers, records)``. Cells and headers are stripped, a UTF-8
    byte-order mark is ignored, and rows whose cells are all blank are
    dropped.

    Raises
    ------
    csv.Error
        When the text has no header row.
    """

    text = csv_text.removeprefix("\ufeff")
    with StringIO(text) as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames
        if not fieldnames or not any(h and h.strip() for h in fieldnames):
            raise csv.Error("CSV appears to have no header row")
        headers = [h.strip() for h in fieldnames]
        records: list[dict[str, str]] = []
        for row in reader:
            cleaned = {k.strip(): (row.get(k) or "").strip() for k in fieldnames}
            if any(cleaned.values()):
                records.append(cleaned)
    return headers, records


def extract_candidates(
    records: Iterable[CsvRecord], headers: Sequence[str] | None = None
) -> list[tuple[int, CandidateTransaction | None]]:
    """Extract every record, keeping its zero-based position."""

    return [(i, extract_candidate(r, headers)) for i, r in enumerate(records)]


__all__ = [
    "HEADER_RULES",
    "HeaderRule",
    "extract_candidate",
    "extract_candidates",
    "normalize_header",
    "parse_amount",
    "parse_date",
    "read_csv_records",
]
