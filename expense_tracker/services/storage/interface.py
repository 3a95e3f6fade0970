"""
Abstract Document Backend

The data layer talks to its remote database through this interface.
It mirrors the handful of primitives a hosted document database offers:
add, merge-update, get, delete and a filtered/ordered query.

Keeping this seam narrow means:
1. The hosted backend (Google Sheets) can be swapped without touching
   the store service or the session
2. Tests run against an in-memory backend
3. Backend quirks (row indexes, JSON encoding) stay in one module

Backends store values in their native form (see `values.to_store_value`).
They do not stamp owners or timestamps; that is the store service's job.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Optional

from expense_tracker.services.storage.query import (
    FieldFilter,
    OrderBy,
    PageCursor,
    StoredDocument,
)


class DocumentBackend(ABC):
    """
    Abstract interface for a remote document database.

    Any backend (Google Sheets, in-memory, ...) must implement these methods.
    """

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """
        Insert a new document with a generated id.

        Args:
            collection: Collection name
            data: Field values

        Returns:
            The new document's id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Fields not present in `data` are left as they are.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        """
        Retrieve a document by id.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> None:
        """
        Delete a document by id.

        Deleting a document that doesn't exist is not an error.
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[PageCursor] = None,
    ) -> list[StoredDocument]:
        """
        Query a collection.

        Args:
            collection: Collection name
            filters: Conditions that must all hold
            order_by: Optional single-field ordering
            limit: Maximum number of results
            start_after: Resume after this cursor (requires order_by)

        Returns:
            Matching documents in query order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Document not found in storage."""
    pass


class StoreConnectionError(StorageError):
    """Could not connect to the storage backend."""
    pass
