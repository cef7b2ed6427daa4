"""
Data Models Package

All data flowing through the ledger must conform to these schemas.
"""

from shop_ledger.models.transaction import (
    AMOUNT_DECIMAL_PLACES,
    AMOUNT_MAX_DIGITS,
    SUGGESTED_CATEGORIES,
    TRANSACTION_FIELDS,
    DailyPoint,
    LedgerSummary,
    LedgerView,
    Transaction,
    TransactionType,
    UserIdentity,
    new_transaction_id,
)

__all__ = [
    "AMOUNT_DECIMAL_PLACES",
    "AMOUNT_MAX_DIGITS",
    "SUGGESTED_CATEGORIES",
    "TRANSACTION_FIELDS",
    "DailyPoint",
    "LedgerSummary",
    "LedgerView",
    "Transaction",
    "TransactionType",
    "UserIdentity",
    "new_transaction_id",
]
