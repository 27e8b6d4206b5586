"""Stand-ins for the Yelp autocomplete endpoint used by tests.

``FakeUrlopen`` replaces ``urllib.request.urlopen`` and replays a scripted
sequence of outcomes (JSON payloads, raw bytes, HTTP status codes or
exceptions), recording every request it receives. ``StaticLookup`` is a
ready-made autocomplete hook for the importer.
"""

from __future__ import annotations

import io
import json
import urllib.error
from collections.abc import Mapping
from typing import Any


class _Response:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> _Response:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


class FakeUrlopen:
    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[Any] = []

    def __call__(self, req, timeout: float | None = None):
        self.requests.append(req)
        if not self.outcomes:
            raise AssertionError("unexpected autocomplete request")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, int):
            raise urllib.error.HTTPError(
                req.full_url, outcome, f"HTTP {outcome}", {}, io.BytesIO(b"")
            )
        if isinstance(outcome, bytes):
            return _Response(outcome)
        return _Response(json.dumps(outcome).encode("utf-8"))


def businesses(*names: str) -> dict[str, Any]:
    return {
        "businesses": [{"id": f"yelp-{i}", "name": name} for i, name in enumerate(names, 1)],
        "terms": [],
    }


class StaticLookup:
    """Autocomplete hook answering from a ``text -> response`` mapping."""

    def __init__(self, responses: Mapping[str, Mapping[str, Any]]) -> None:
        self.responses = dict(responses)
        self.calls: list[str] = []

    def __call__(self, text: str) -> Mapping[str, Any] | None:
        self.calls.append(text)
        return self.responses.get(text)
