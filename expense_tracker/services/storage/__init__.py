"""
Storage Services Package

Provides the abstract document backend and its implementations.
Google Sheets is the hosted backend; the in-memory backend serves
tests and credential-less runs.
"""

from expense_tracker.services.storage.interface import (
    DocumentBackend,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)
from expense_tracker.services.storage.query import (
    FieldFilter,
    OrderBy,
    PageCursor,
    StoredDocument,
    run_query,
)
from expense_tracker.services.storage.values import Timestamp, sort_key, to_store_value
from expense_tracker.services.storage.memory import InMemoryDocumentBackend
from expense_tracker.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentBackend,
)

__all__ = [
    # Interface
    "DocumentBackend",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    # Query primitives
    "FieldFilter",
    "OrderBy",
    "PageCursor",
    "StoredDocument",
    "run_query",
    # Stored values
    "Timestamp",
    "sort_key",
    "to_store_value",
    # Implementations
    "InMemoryDocumentBackend",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentBackend",
]
