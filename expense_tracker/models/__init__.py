"""
Data Models Package

Pydantic models for the documents a user keeps in the store,
plus the coercion rules applied to user input before it is written.
"""

from expense_tracker.models.records import (
    RESERVED_FIELDS,
    ApiKeyInfo,
    AuthenticatedUser,
    Budget,
    Collection,
    Expense,
    ExpenseCategory,
    ExpenseType,
    PaycheckData,
    RecordT,
    StoredRecord,
    coerce_amount,
    coerce_date,
    document_data,
    parse_records,
)

__all__ = [
    "RESERVED_FIELDS",
    "ApiKeyInfo",
    "AuthenticatedUser",
    "Budget",
    "Collection",
    "Expense",
    "ExpenseCategory",
    "ExpenseType",
    "PaycheckData",
    "RecordT",
    "StoredRecord",
    "coerce_amount",
    "coerce_date",
    "document_data",
    "parse_records",
]
