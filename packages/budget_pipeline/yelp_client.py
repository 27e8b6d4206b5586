"""Thin client for the Yelp Fusion autocomplete endpoint.

GET ``YELP_API_URL`` (default ``https://api.yelp.com/v3/autocomplete``) with a
bearer token. Used during import to suggest a canonical business name for a
merchant key that has no alias yet.

Lookups are best effort: a missing key, blank text, non-retryable HTTP
status, or exhausted retries yield ``None``. Rate limiting (429), server
errors (5xx) and network errors are retried with exponential backoff. A
``threading.Event`` passed as ``cancel`` interrupts backoff waits and aborts
the lookup with :class:`LookupCancelledError`.
"""

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_YELP_API_URL
from .errors import LookupCancelledError
from .logging_setup import get_logger
from .merchant_names import normalize_merchant_key, sanitize_merchant_name

logger = get_logger("budget_pipeline.yelp_client")

BASE_DELAY_SECONDS = 0.25
SIMILARITY_THRESHOLD = 0.5


def _retryable(status: int) -> bool:
    return status == 429 or status >= 500


def fetch_autocomplete(
    text: str,
    *,
    api_key: str | None,
    api_url: str = DEFAULT_YELP_API_URL,
    latitude: float | None = None,
    longitude: float | None = None,
    retries: int = 2,
    cancel: threading.Event | None = None,
    timeout: float = 10.0,
    base_delay: float = BASE_DELAY_SECONDS,
) -> dict[str, Any] | None:
    """Return the parsed autocomplete response for ``text`` or ``None``.

    Parameters
    ----------
    text:
        Search text, typically a canonical merchant name.
    api_key:
        Yelp API key; ``None``/empty disables the lookup.
    latitude, longitude:
        Optional location bias; sent only when both are given.
    retries:
        Extra attempts after the first one for retryable failures.
    cancel:
        Event that aborts the lookup (checked before each attempt and during
        backoff waits).

    Raises
    ------
    LookupCancelledError
        When ``cancel`` is set before the lookup completes.
    """

    if not text or not text.strip():
        return None
    if not api_key:
        return None

    params: dict[str, str] = {"text": text}
    if latitude is not None and longitude is not None:
        params["latitude"] = str(latitude)
        params["longitude"] = str(longitude)
    sep = "&" if urllib.parse.urlparse(api_url).query else "?"
    url = f"{api_url}{sep}{urllib.parse.urlencode(params)}"

    waiter = cancel if cancel is not None else threading.Event()
    attempts = max(0, retries) + 1
    for attempt in range(attempts):
        if cancel is not None and cancel.is_set():
            raise LookupCancelledError(f"autocomplete lookup for {text!r} cancelled")

        req = urllib.request.Request(url, method="GET")
        req.add_header("Authorization", f"Bearer {api_key}")
        req.add_header("Accept", "application/json")

        retry = False
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                body = resp.read()
            try:
                data = json.loads(body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning("Autocomplete returned a non-JSON body for %r", text)
                return None
            return data if isinstance(data, dict) else None
        except urllib.error.HTTPError as e:
            if not _retryable(e.code):
                logger.warning("Autocomplete failed for %r: HTTP %s", text, e.code)
                return None
            retry = True
            logger.info("Autocomplete HTTP %s for %r (attempt %d)", e.code, text, attempt + 1)
        except OSError as e:  # URLError, socket timeouts
            retry = True
            logger.info("Autocomplete network error for %r (attempt %d): %s", text, attempt + 1, e)

        if retry and attempt < attempts - 1:
            if waiter.wait(base_delay * 2**attempt):
                raise LookupCancelledError(f"autocomplete lookup for {text!r} cancelled")

    logger.warning("Autocomplete gave up on %r after %d attempt(s)", text, attempts)
    return None


# ---------------------------
# Candidate picking
# ---------------------------


@dataclass(frozen=True, slots=True)
class AutocompleteChoice:
    canonical_name: str
    raw_name: str
    yelp_id: str | None


def merchant_tokens(value: str) -> set[str]:
    """Lowercase alphanumeric tokens (longer than one character) of the
    sanitized name."""

    sanitized = sanitize_merchant_name(value).lower()
    out = set()
    for token in sanitized.split():
        t = "".join(ch for ch in token if ch.isascii() and ch.isalnum())
        if len(t) > 1:
            out.add(t)
    return out


def token_similarity(a: set[str], b: set[str]) -> float:
    """Jaccard similarity of two token sets (0 when either is empty)."""

    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def pick_autocomplete_candidate(
    normalized_key: str,
    canonical_candidate: str,
    raw_names: Iterable[str],
    response: Mapping[str, Any] | None,
) -> AutocompleteChoice | None:
    """Choose a business suggestion for ``normalized_key``.

    A suggestion whose own key equals ``normalized_key`` wins outright;
    otherwise the most similar suggestion (token Jaccard) is taken when it
    reaches :data:`SIMILARITY_THRESHOLD`.
    """

    businesses = (response or {}).get("businesses") or []
    if not businesses:
        return None

    target = merchant_tokens(canonical_candidate or normalized_key)
    raw_name = next(iter(raw_names), None) or canonical_candidate or normalized_key

    best: tuple[Mapping[str, Any], str, float, bool] | None = None
    for business in businesses:
        name = business.get("name") if isinstance(business, Mapping) else None
        if not name:
            continue
        canonical = sanitize_merchant_name(name)
        if not canonical:
            continue
        direct = normalize_merchant_key(name) == normalized_key
        similarity = token_similarity(target, merchant_tokens(canonical))
        if best is None or (direct and not best[3]) or (not best[3] and similarity > best[2]):
            best = (business, canonical, similarity, direct)
        if direct:
            break

    if best is None:
        return None
    business, canonical, similarity, direct = best
    if direct or similarity >= SIMILARITY_THRESHOLD:
        return AutocompleteChoice(
            canonical_name=canonical,
            raw_name=raw_name,
            yelp_id=business.get("id") or None,
        )
    return None


__all__ = [
    "AutocompleteChoice",
    "fetch_autocomplete",
    "merchant_tokens",
    "pick_autocomplete_candidate",
    "token_similarity",
]
