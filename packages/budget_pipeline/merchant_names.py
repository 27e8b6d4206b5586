"""Merchant name normalization.

Three pure helpers live here:

- :func:`canonicalize_merchant_name` turns bank-statement noise such as
  ``"AMZN Mktp US *12345"`` or ``"Starbucks Store #1234 Kansas City MO"`` into
  a presentable canonical name (``"Amazon"``, ``"Starbucks"``).
- :func:`normalize_merchant_key` derives the lossy lookup key used to match
  aliases (``"Target.com"`` and ``"TARGET.COM"`` both map to ``"target"``).
- :func:`sanitize_merchant_name` is a lighter clean-up that keeps most of the
  original wording; it is the merchant text transaction fingerprints hash.

All three are deterministic and perform no I/O. Canonicalization is
idempotent: feeding a canonical name back in returns it unchanged.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

_DOMAIN_SUFFIXES: tuple[str, ...] = (
    ".com",
    ".co",
    ".org",
    ".net",
    ".gov",
    ".io",
    ".me",
    ".us",
    ".biz",
    ".info",
)

_BUSINESS_SUFFIXES = frozenset(
    {
        "inc",
        "incorporated",
        "corp",
        "corporation",
        "company",
        "co",
        "llc",
        "llp",
        "plc",
        "pty",
        "limited",
        "ltd",
    }
)

_LOCATION_TOKENS = frozenset(
    {"usa", "us", "united", "states", "unitedstates", "canada", "ca"}
)

US_STATE_CODES = frozenset(
    {
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
        "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
        "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
        "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
        "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
        "DC",
    }
)  # fmt: skip


@dataclass(frozen=True, slots=True)
class MerchantOverride:
    """Well-known merchant whose statement spellings vary wildly.

    ``pattern`` is matched case-insensitively from the start of the cleaned
    candidate (unless it opts out of anchoring) and must also match
    ``canonical`` itself so canonicalization stays idempotent.
    """

    pattern: re.Pattern[str]
    canonical: str


def _override(pattern: str, canonical: str) -> MerchantOverride:
    return MerchantOverride(re.compile(pattern, re.IGNORECASE), canonical)


# Ordered; first match wins and replaces the whole name.
MERCHANT_OVERRIDES: tuple[MerchantOverride, ...] = (
    _override(r"^(?:AMAZON|AMZN|AMAZN)", "Amazon"),
    _override(r"^TARGET", "Target"),
    _override(r"^(?:WM\b|WAL[-\s]?MART|WMT\b)", "Walmart"),
    _override(r"^COSTCO", "Costco"),
    _override(r"^STARBUCKS", "Starbucks"),
    _override(r"^MC\s?DONALD", "McDonalds"),
    _override(r"^KROGER", "Kroger"),
    _override(r"WHOLE\s?FOODS", "Whole Foods"),
    _override(r"TRADER\s?JOE", "Trader Joe's"),
    _override(r"^(?:THE\s+)?HOME\s+DEPOT", "The Home Depot"),
    _override(r"^LOWE'?S", "Lowe's"),
    _override(r"BEST\s+BUY", "Best Buy"),
    _override(r"(?:APPLE\s+COM\b|^APPLE$)", "Apple"),
    _override(r"(?:OPENAI\s+CHATGPT\s+SUBSCR?|^CHATGPT\s+SUBSCRIPTION$)", "ChatGPT Subscription"),
    _override(r"^(?:GOOGLE\s+)?YOUTUBE\s?PREMIUM\b", "YouTube Premium"),
    _override(r"^CHICK[-\s]?FIL[-\s]?A", "Chick-fil-A"),
    _override(r"^PAPA\s+JOHN'?S", "Papa Johns"),
    _override(r"^FAZOLI'?S?", "Fazolis"),
    _override(r"^CASEY'?S\b", "Caseys"),
)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_NBSP_RE = re.compile(r"[\u00a0\u2007\u202f]")
_WS_RE = re.compile(r"\s+")
_URL_PREFIX_RE = re.compile(r"^(?:https?://)?(?:www\.)?", re.IGNORECASE)
_DASH_RE = re.compile(r"[\u2013\u2014]")
_PUNCT_RE = re.compile(r"[\"!,.;:?*~`^_+=<>|\\]")
_SLASH_RE = re.compile(r"/+")
_APOSTROPHE_RE = re.compile(r"'+")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9\s'-]")
_STORE_NUMBER_RE = re.compile(
    r"(?:\b(?:store|st|no|number)\s*)?#?(?<![A-Za-z0-9'-])\d{2,}$", re.IGNORECASE
)
_ORDINAL_RE = re.compile(r"^\d+(?:st|nd|rd|th)?$", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_DIGITS_RE = re.compile(r"^\d+$")
_ACRONYM_RE = re.compile(r"^[A-Z0-9&]+$")
_WORD_START_RE = re.compile(r"(^[a-z])|([-'][a-z])")
_NON_KEY_RE = re.compile(r"[^a-z0-9]+")
_TRAILING_SEPARATORS_RE = re.compile(r"[,\-#]+$")


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def _collapse(value: str) -> str:
    return _WS_RE.sub(" ", value).strip()


def _fold_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _strip_domain_suffix(value: str) -> str:
    lowered = value.lower()
    for suffix in _DOMAIN_SUFFIXES:
        if lowered.endswith(suffix):
            return value[: -len(suffix)]
    return value


def _normalize_separators(value: str) -> str:
    value = _DASH_RE.sub("-", value)
    value = _PUNCT_RE.sub(" ", value)
    value = _SLASH_RE.sub(" ", value)
    value = value.replace("&", " and ")
    value = value.replace("@", " at ")
    return _APOSTROPHE_RE.sub("'", value)


def _strip_store_numbers(value: str) -> str:
    working = value.strip()
    while _STORE_NUMBER_RE.search(working):
        stripped = _STORE_NUMBER_RE.sub("", working).strip()
        if not stripped:
            # A purely numeric name is all we have; keep it.
            break
        working = stripped
    return working


def _trim_business_suffixes(tokens: list[str], end: int) -> int:
    while end > 0:
        normalized = tokens[end - 1].replace(".", "").lower()
        if normalized in _BUSINESS_SUFFIXES or _ORDINAL_RE.match(normalized):
            end -= 1
            continue
        break
    return end


def _trim_location_tokens(tokens: list[str], end: int) -> int:
    while end > 0:
        alnum = _NON_ALNUM_RE.sub("", tokens[end - 1])
        if (
            not alnum
            or alnum.lower() in _LOCATION_TOKENS
            or alnum.upper() in US_STATE_CODES
            or _DIGITS_RE.match(alnum)
        ):
            end -= 1
            continue
        break
    return end


def _trim_tail(tokens: list[str]) -> list[str]:
    # Suffixes and locations interleave ("Acme Inc CA"), so trim until stable.
    end = len(tokens)
    while True:
        before = end
        end = _trim_business_suffixes(tokens, end)
        end = _trim_location_tokens(tokens, end)
        if end == before:
            return tokens[:end]


def _trim_noise(tokens: list[str]) -> list[str]:
    # Each pass can expose a tail the other one removes; repeat until stable.
    while True:
        stripped = _strip_store_numbers(" ".join(tokens)).split()
        trimmed = _trim_tail(stripped)
        if not trimmed:
            # Never let suffix/location trimming erase the whole name.
            return stripped or tokens
        if trimmed == tokens:
            return tokens
        tokens = trimmed


def _squash_tokens(tokens: list[str]) -> str:
    kept = [t for t in tokens if t and not _DIGITS_RE.match(t)]
    if not kept:
        return " ".join(tokens)
    return " ".join(kept)


def title_case_word(word: str) -> str:
    """Title-case ``word`` while leaving short acronyms (``"BP"``, ``"KFC"``)
    untouched."""

    if not word:
        return word
    if len(word) <= 3 and _ACRONYM_RE.match(word):
        return word
    return _WORD_START_RE.sub(lambda m: m.group(0).upper(), word.lower())


def match_override(candidate: str) -> str | None:
    """Return the canonical name of the first override matching ``candidate``."""

    for override in MERCHANT_OVERRIDES:
        if override.pattern.search(candidate):
            return override.canonical
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def canonicalize_merchant_name(raw: str | None) -> str:
    """Return a human-presentable canonical merchant name, or ``""``.

    Parameters
    ----------
    raw:
        Arbitrary merchant/payee text straight from a statement. ``None`` and
        blank strings yield ``""``.

    Returns
    -------
    str
        The canonical name. Names matching :data:`MERCHANT_OVERRIDES` come
        back exactly as listed there; everything else is title-cased.
    """

    if not raw:
        return ""
    candidate = _NBSP_RE.sub(" ", raw).strip()
    if not candidate:
        return ""

    candidate = _fold_accents(candidate)
    candidate = _URL_PREFIX_RE.sub("", candidate, count=1)
    candidate = _collapse(candidate)
    candidate = _strip_domain_suffix(candidate)
    candidate = _normalize_separators(candidate)
    candidate = _UNSAFE_CHARS_RE.sub(" ", candidate)
    tokens = _collapse(candidate).split()
    if not tokens:
        return ""

    trimmed = _trim_noise(tokens)

    consolidated = _squash_tokens(trimmed).strip()
    if not consolidated:
        return ""

    overridden = match_override(consolidated)
    if overridden is not None:
        return overridden

    return " ".join(title_case_word(word) for word in consolidated.split())


def normalize_merchant_key(raw: str | None) -> str:
    """Return the dedup key for ``raw``: canonicalized, lowercased, accent-free
    and reduced to ``[a-z0-9]``. Empty input yields ``""``."""

    if not raw:
        return ""
    base = canonicalize_merchant_name(raw) or raw
    return _NON_KEY_RE.sub("", _fold_accents(base.lower()))


def merchant_name_parts(raw: str | None) -> tuple[str, str]:
    """Return ``(canonical_name, normalized_key)`` for ``raw``."""

    return canonicalize_merchant_name(raw), normalize_merchant_key(raw)


def sanitize_merchant_name(raw: str | None) -> str:
    """Lightly clean a statement merchant string for display.

    Unlike :func:`canonicalize_merchant_name` this keeps the original words:
    it collapses whitespace, drops trailing location/state/reference-number
    tokens, strips dangling separators and title-cases ALL-CAPS text. Known
    merchants (see :data:`MERCHANT_OVERRIDES`) map to their canonical name.
    """

    if not raw:
        return ""
    collapsed = _collapse(_NBSP_RE.sub(" ", raw))
    if not collapsed:
        return ""

    overridden = match_override(collapsed)
    if overridden is not None:
        return overridden

    tokens = collapsed.split(" ")
    end = len(tokens)
    removed_location = False
    while end > 0:
        token = tokens[end - 1]
        alnum = _NON_ALNUM_RE.sub("", token)
        upper = alnum.upper()
        if (
            not alnum
            or upper in US_STATE_CODES
            or alnum.lower() in _LOCATION_TOKENS
            or any(ch.isdigit() for ch in alnum)
        ):
            end -= 1
            removed_location = True
            continue
        # City names usually sit right before the state code ("OMAHA NE").
        if removed_location and token == token.upper() and len(upper) > 3 and end > 2:
            end -= 1
            continue
        break

    candidate = " ".join(tokens[:end]).strip() or collapsed
    candidate = _TRAILING_SEPARATORS_RE.sub("", candidate).strip() or collapsed

    if candidate == candidate.upper() and any(ch.isalpha() for ch in candidate):
        candidate = " ".join(title_case_word(word) for word in candidate.split())

    overridden = match_override(candidate)
    if overridden is not None:
        return overridden
    return candidate


__all__ = [
    "MERCHANT_OVERRIDES",
    "MerchantOverride",
    "US_STATE_CODES",
    "canonicalize_merchant_name",
    "match_override",
    "merchant_name_parts",
    "normalize_merchant_key",
    "sanitize_merchant_name",
    "title_case_word",
]
