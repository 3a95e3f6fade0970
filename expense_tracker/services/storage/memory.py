"""
In-Memory Document Backend

Process-local implementation of the document backend. Used by the test
suite and for running the application without spreadsheet credentials
(`STORAGE_BACKEND=memory`). Nothing survives a restart.
"""

import copy
from collections.abc import Sequence
from typing import Any, Optional
from uuid import uuid4

from expense_tracker.services.storage.interface import DocumentBackend, NotFoundError
from expense_tracker.services.storage.query import (
    FieldFilter,
    OrderBy,
    PageCursor,
    StoredDocument,
    run_query,
)
from expense_tracker.services.storage.values import to_store_value


class InMemoryDocumentBackend(DocumentBackend):
    """Documents kept in nested dicts: collection -> id -> fields."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def make_id() -> str:
        return uuid4().hex

    def count(self, collection: str) -> int:
        """Number of documents currently in a collection."""
        return len(self._collections.get(collection, {}))

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        document_id = self.make_id()
        self._collection(collection)[document_id] = to_store_value(data)
        return document_id

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        documents = self._collection(collection)
        if document_id not in documents:
            raise NotFoundError(f"No document to update: {collection}/{document_id}")
        documents[document_id].update(to_store_value(data))

    async def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        data = self._collection(collection).get(document_id)
        if data is None:
            return None
        return StoredDocument(id=document_id, data=copy.deepcopy(data))

    async def delete(self, collection: str, document_id: str) -> None:
        self._collection(collection).pop(document_id, None)

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[PageCursor] = None,
    ) -> list[StoredDocument]:
        documents = [
            StoredDocument(id=document_id, data=copy.deepcopy(data))
            for document_id, data in self._collection(collection).items()
        ]
        return run_query(documents, filters, order_by, limit, start_after)
