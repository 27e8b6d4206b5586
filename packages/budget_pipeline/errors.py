"""Exception types raised by the pipeline's service functions.

Validation failures subclass :class:`ValueError` so callers that only care
about "bad input" can catch that; lookups subclass :class:`LookupError`.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors raised by ``budget_pipeline``."""


class TransactionNotFoundError(PipelineError, LookupError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"Transaction not found: {transaction_id}")
        self.transaction_id = transaction_id


class InvalidTransactionError(PipelineError, ValueError):
    """Payload failed validation before anything was written."""


class SplitTotalMismatchError(InvalidTransactionError):
    def __init__(self, expected, actual) -> None:
        super().__init__(
            f"Split amounts must add up to the transaction amount "
            f"(expected {expected}, got {actual})"
        )
        self.expected = expected
        self.actual = actual


class DuplicateTransactionError(InvalidTransactionError):
    """A new transaction has the same fingerprint as a stored one."""

    def __init__(self, existing_id: str) -> None:
        super().__init__("A transaction with the same details already exists")
        self.existing_id = existing_id


class FingerprintConflictError(InvalidTransactionError):
    """An edit would make a transaction indistinguishable from another one."""

    def __init__(self, transaction_id: str, conflicting_id: str) -> None:
        super().__init__("Another transaction already matches these details")
        self.transaction_id = transaction_id
        self.conflicting_id = conflicting_id


class LookupCancelledError(PipelineError):
    """A merchant autocomplete lookup was aborted through its cancel signal."""


__all__ = [
    "DuplicateTransactionError",
    "FingerprintConflictError",
    "InvalidTransactionError",
    "LookupCancelledError",
    "PipelineError",
    "SplitTotalMismatchError",
    "TransactionNotFoundError",
]
