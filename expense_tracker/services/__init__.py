"""Services package."""

from expense_tracker.services.document_store import (
    DocumentStoreService,
    Page,
    StoreOperationFailed,
)
from expense_tracker.services.storage import (
    DocumentBackend,
    GoogleSheetsClient,
    GoogleSheetsDocumentBackend,
    InMemoryDocumentBackend,
    NotFoundError,
    PageCursor,
    StorageError,
    StoreConnectionError,
)
from expense_tracker.services.api_keys import ApiKeyService, ApiKeyVerifier

__all__ = [
    # Store service
    "DocumentStoreService",
    "Page",
    "StoreOperationFailed",
    # API keys
    "ApiKeyService",
    "ApiKeyVerifier",
    # Storage backends
    "DocumentBackend",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentBackend",
    "InMemoryDocumentBackend",
    "NotFoundError",
    "PageCursor",
    "StorageError",
    "StoreConnectionError",
]
