"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the budgeting domain models used by ``budget_pipeline``.
"""

from .budget import (
    Base,
    Budget,
    BudgetAllocation,
    Category,
    ImportBatch,
    Merchant,
    MerchantAlias,
    Rule,
    Transaction,
    TransactionSplit,
)

__all__ = [
    "Base",
    "Budget",
    "BudgetAllocation",
    "Category",
    "ImportBatch",
    "Merchant",
    "MerchantAlias",
    "Rule",
    "Transaction",
    "TransactionSplit",
]
