"""
Document Store Service

A narrow, collection-agnostic wrapper over the document backend.
Every call names its collection; owner-scoped calls also name the
owner, and every owner-scoped read is filtered by `userId`.

GUARANTEES:
- `userId`, `createdAt` and `updatedAt` are stamped here, never taken
  from caller data
- Stored timestamps in `createdAt`, `updatedAt`, `date` and `lastUsed`
  come back as plain datetimes
- Any backend failure surfaces as StoreOperationFailed, once, with the
  original error attached. No retries.

There are no cross-call transactions. Concurrent writes to one
document race; the last write wins.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NoReturn, Optional, Union

from pydantic import BaseModel

from expense_tracker.logs import get_logger
from expense_tracker.models import RESERVED_FIELDS, document_data
from expense_tracker.services.storage import (
    DocumentBackend,
    FieldFilter,
    OrderBy,
    PageCursor,
    StorageError,
    StoredDocument,
    Timestamp,
)


# Fields decoded from the backend's native timestamp type on every read
TIMESTAMP_FIELDS = ("createdAt", "updatedAt", "date", "lastUsed")

OWNER_FIELD = "userId"


class StoreOperationFailed(StorageError):
    """A document store operation failed at the backend."""

    def __init__(self, operation: str, message: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(message)


@dataclass
class Page:
    """One page of an ordered, owner-scoped listing."""

    documents: list[dict[str, Any]] = field(default_factory=list)
    cursor: Optional[PageCursor] = None
    has_more: bool = False


def _collection_name(collection: Union[str, Enum]) -> str:
    return collection.value if isinstance(collection, Enum) else collection


class DocumentStoreService:
    """
    Stateless CRUD and query operations over a document backend.

    All operations are async and independent of each other.
    """

    def __init__(self, backend: DocumentBackend):
        self._backend = backend
        self._logger = get_logger(__name__)

    @property
    def backend(self) -> DocumentBackend:
        return self._backend

    @staticmethod
    def validate_owner_id(owner_id: Any) -> None:
        """
        Reject owner ids that would defeat per-user isolation.

        Raises:
            ValueError: If the owner id is missing or blank
        """
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise ValueError("Valid user ID is required")

    @staticmethod
    def decode_document(document: StoredDocument) -> dict[str, Any]:
        """Flatten a stored document to a dict and decode its timestamps."""
        decoded = {**document.data, "id": document.id}
        for name in TIMESTAMP_FIELDS:
            value = decoded.get(name)
            if isinstance(value, Timestamp):
                decoded[name] = value.to_datetime()
        return decoded

    def _fail(self, operation: str, message: str, error: Exception, **context: Any) -> NoReturn:
        self._logger.error(
            "store_operation_failed",
            operation=operation,
            error=str(error),
            **context,
        )
        raise StoreOperationFailed(operation, f"{message}: {error}", error) from error

    def _owner_filter(self, owner_id: str) -> FieldFilter:
        self.validate_owner_id(owner_id)
        return FieldFilter(OWNER_FIELD, "==", owner_id)

    async def save_or_update(
        self,
        collection: Union[str, Enum],
        owner_id: str,
        data: Union[Mapping[str, Any], BaseModel],
        existing_id: Optional[str] = None,
    ) -> str:
        """
        Create a document, or merge into an existing one.

        Args:
            collection: Collection name
            owner_id: Owning user's id
            data: Field values; identity and timestamp keys are ignored
            existing_id: Id of the document to update, if any

        Returns:
            The document id (`existing_id` when updating)

        Raises:
            StoreOperationFailed: On any failure, including a missing
                                  document when updating
        """
        name = _collection_name(collection)
        try:
            self.validate_owner_id(owner_id)
            now = datetime.now(timezone.utc)
            payload = {
                key: value
                for key, value in document_data(data).items()
                if key not in RESERVED_FIELDS
            }
            payload[OWNER_FIELD] = owner_id
            payload["updatedAt"] = now

            if existing_id:
                await self._backend.update(name, existing_id, payload)
                document_id = existing_id
            else:
                payload["createdAt"] = now
                document_id = await self._backend.add(name, payload)
        except Exception as e:
            self._fail(
                "save_or_update",
                "Failed to save data",
                e,
                collection=name,
                document_id=existing_id,
            )

        self._logger.debug("document_saved", collection=name, document_id=document_id)
        return document_id

    async def update_document(
        self,
        collection: Union[str, Enum],
        document_id: str,
        data: Union[Mapping[str, Any], BaseModel],
    ) -> None:
        """
        Merge fields into a document by id alone, keeping its owner.

        Used where the caller holds a document id but not its owner
        (usage counters, deactivation). Identity and timestamp keys in
        `data` are ignored; `updatedAt` is stamped.

        Raises:
            StoreOperationFailed: On any failure, including a missing document
        """
        name = _collection_name(collection)
        try:
            if not isinstance(document_id, str) or not document_id:
                raise ValueError("Valid document ID is required")
            payload = {
                key: value
                for key, value in document_data(data).items()
                if key not in RESERVED_FIELDS
            }
            payload["updatedAt"] = datetime.now(timezone.utc)
            await self._backend.update(name, document_id, payload)
        except Exception as e:
            self._fail(
                "update_document",
                "Failed to update document",
                e,
                collection=name,
                document_id=document_id,
            )

    async def get_all_for_owner(
        self,
        collection: Union[str, Enum],
        owner_id: str,
        order_field: Optional[str] = None,
        direction: str = "desc",
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Get every document a user owns in a collection.

        Args:
            collection: Collection name
            owner_id: Owning user's id
            order_field: Field to order by (documents lacking it are skipped)
            direction: 'asc' or 'desc'
            limit: Maximum number of documents

        Returns:
            Decoded documents
        """
        name = _collection_name(collection)
        try:
            documents = await self._backend.query(
                name,
                filters=[self._owner_filter(owner_id)],
                order_by=OrderBy(order_field, direction) if order_field else None,
                limit=limit,
            )
        except Exception as e:
            self._fail("get_all_for_owner", "Failed to fetch data", e, collection=name)
        return [self.decode_document(doc) for doc in documents]

    async def get_by_id(
        self,
        collection: Union[str, Enum],
        document_id: str,
    ) -> Optional[dict[str, Any]]:
        """
        Get a single document.

        Returns:
            The decoded document, or None if it doesn't exist
        """
        name = _collection_name(collection)
        try:
            document = await self._backend.get(name, document_id)
        except Exception as e:
            self._fail(
                "get_by_id",
                "Failed to fetch document",
                e,
                collection=name,
                document_id=document_id,
            )
        return self.decode_document(document) if document is not None else None

    async def delete(self, collection: Union[str, Enum], document_id: str) -> None:
        """Delete a document. Deleting an absent id is left to the backend."""
        name = _collection_name(collection)
        try:
            await self._backend.delete(name, document_id)
        except Exception as e:
            self._fail(
                "delete",
                "Failed to delete document",
                e,
                collection=name,
                document_id=document_id,
            )

    async def batch_delete(self, collection: Union[str, Enum], document_ids: list[str]) -> None:
        """
        Delete several documents concurrently.

        If any single delete fails the whole call fails. Deletes that
        already went through are not rolled back.
        """
        name = _collection_name(collection)
        try:
            await asyncio.gather(
                *(self.delete(name, document_id) for document_id in document_ids)
            )
        except Exception as e:
            self._fail(
                "batch_delete",
                "Failed to batch delete documents",
                e,
                collection=name,
                document_ids=list(document_ids),
            )

    async def get_paginated(
        self,
        collection: Union[str, Enum],
        owner_id: str,
        order_field: str,
        page_size: int,
        cursor: Optional[PageCursor] = None,
    ) -> Page:
        """
        Get one page of a user's documents, newest first.

        `has_more` is True whenever the page came back full, so a listing
        whose size is an exact multiple of `page_size` ends with one
        empty page.
        """
        name = _collection_name(collection)
        try:
            documents = await self._backend.query(
                name,
                filters=[self._owner_filter(owner_id)],
                order_by=OrderBy(order_field, "desc"),
                limit=page_size,
                start_after=cursor,
            )
        except Exception as e:
            self._fail("get_paginated", "Failed to fetch paginated data", e, collection=name)

        next_cursor = None
        if documents:
            last = documents[-1]
            next_cursor = PageCursor(
                document_id=last.id,
                order_field=order_field,
                order_value=last.data.get(order_field),
            )

        return Page(
            documents=[self.decode_document(doc) for doc in documents],
            cursor=next_cursor,
            has_more=len(documents) == page_size,
        )

    async def get_by_date_range(
        self,
        collection: Union[str, Enum],
        owner_id: str,
        start: Any,
        end: Any,
        date_field: str = "date",
    ) -> list[dict[str, Any]]:
        """Get a user's documents with `date_field` in [start, end], newest first."""
        name = _collection_name(collection)
        try:
            documents = await self._backend.query(
                name,
                filters=[
                    self._owner_filter(owner_id),
                    FieldFilter(date_field, ">=", start),
                    FieldFilter(date_field, "<=", end),
                ],
                order_by=OrderBy(date_field, "desc"),
            )
        except Exception as e:
            self._fail(
                "get_by_date_range",
                "Failed to fetch data by date range",
                e,
                collection=name,
            )
        return [self.decode_document(doc) for doc in documents]

    async def search(
        self,
        collection: Union[str, Enum],
        owner_id: str,
        field_name: str,
        value: Any,
    ) -> list[dict[str, Any]]:
        """Get a user's documents whose `field_name` equals `value`."""
        name = _collection_name(collection)
        try:
            documents = await self._backend.query(
                name,
                filters=[
                    self._owner_filter(owner_id),
                    FieldFilter(field_name, "==", value),
                ],
            )
        except Exception as e:
            self._fail(
                "search",
                "Failed to search documents",
                e,
                collection=name,
                field=field_name,
            )
        return [self.decode_document(doc) for doc in documents]
