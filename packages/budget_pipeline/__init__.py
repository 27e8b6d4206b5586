"""Public interface for the ``budget_pipeline`` package.

This module exposes the pipeline's service functions and public models/types
as the stable import surface. There is no runtime logic here, only symbol
re-exports.
"""

from .budget_sync import (
    link_transaction_to_budget,
    month_bounds,
    month_key,
    month_start,
    parse_month_key,
    sync_budget_spent_for_month,
)
from .config import PipelineSettings
from .errors import (
    DuplicateTransactionError,
    FingerprintConflictError,
    InvalidTransactionError,
    LookupCancelledError,
    PipelineError,
    SplitTotalMismatchError,
    TransactionNotFoundError,
)
from .fingerprint import compute_fingerprint
from .ingest.csv_rows import extract_candidate, read_csv_records
from .ingest.importer import import_csv_file, import_transactions_csv
from .merchant_names import (
    canonicalize_merchant_name,
    normalize_merchant_key,
    sanitize_merchant_name,
)
from .merchant_resolver import (
    reassign_unresolved_transactions,
    resolve_merchant,
    resolve_pending_merchant,
)
from .models import (
    CandidateTransaction,
    ImportSummary,
    MerchantResolution,
    NewTransaction,
    PendingMerchant,
    RowError,
    RuleApplyResult,
    SplitInput,
    TransactionUpdate,
)
from .rules import (
    apply_rule_to_existing_transactions,
    load_active_rules,
    matches_rule,
    resolve_rule_category,
    rule_field_value,
)
from .transactions import create_transaction, delete_transaction, update_transaction

__all__ = [
    # Merchant names
    "canonicalize_merchant_name",
    "normalize_merchant_key",
    "sanitize_merchant_name",
    # Services
    "apply_rule_to_existing_transactions",
    "compute_fingerprint",
    "create_transaction",
    "delete_transaction",
    "extract_candidate",
    "import_csv_file",
    "import_transactions_csv",
    "link_transaction_to_budget",
    "load_active_rules",
    "matches_rule",
    "month_bounds",
    "month_key",
    "month_start",
    "parse_month_key",
    "read_csv_records",
    "reassign_unresolved_transactions",
    "resolve_merchant",
    "resolve_pending_merchant",
    "resolve_rule_category",
    "rule_field_value",
    "sync_budget_spent_for_month",
    "update_transaction",
    # Models / types
    "CandidateTransaction",
    "ImportSummary",
    "MerchantResolution",
    "NewTransaction",
    "PendingMerchant",
    "PipelineSettings",
    "RowError",
    "RuleApplyResult",
    "SplitInput",
    "TransactionUpdate",
    # Errors
    "DuplicateTransactionError",
    "FingerprintConflictError",
    "InvalidTransactionError",
    "LookupCancelledError",
    "PipelineError",
    "SplitTotalMismatchError",
    "TransactionNotFoundError",
]
