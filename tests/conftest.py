"""
Shared fixtures.

No test talks to a real spreadsheet. Store and session tests run on the
in-memory backend, wrapped to record calls or to fail on demand.
"""

import pytest

from expense_tracker.config import get_settings
from expense_tracker.models import AuthenticatedUser
from expense_tracker.services import (
    DocumentStoreService,
    InMemoryDocumentBackend,
    StorageError,
)


class RecordingBackend(InMemoryDocumentBackend):
    """In-memory backend that records (operation, collection) per call."""

    def __init__(self):
        super().__init__()
        self.calls: list[tuple[str, str]] = []

    async def add(self, collection, data):
        self.calls.append(("add", collection))
        return await super().add(collection, data)

    async def update(self, collection, document_id, data):
        self.calls.append(("update", collection))
        return await super().update(collection, document_id, data)

    async def get(self, collection, document_id):
        self.calls.append(("get", collection))
        return await super().get(collection, document_id)

    async def delete(self, collection, document_id):
        self.calls.append(("delete", collection))
        return await super().delete(collection, document_id)

    async def query(self, collection, filters=(), order_by=None, limit=None, start_after=None):
        self.calls.append(("query", collection))
        return await super().query(collection, filters, order_by, limit, start_after)


class FailingBackend(RecordingBackend):
    """Recording backend that fails selected operations."""

    def __init__(self):
        super().__init__()
        self.failing_operations: set[str] = set()
        self.failing_delete_ids: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.failing_operations:
            raise StorageError(f"backend unavailable during {operation}")

    async def add(self, collection, data):
        self._check("add")
        return await super().add(collection, data)

    async def update(self, collection, document_id, data):
        self._check("update")
        return await super().update(collection, document_id, data)

    async def delete(self, collection, document_id):
        self._check("delete")
        if document_id in self.failing_delete_ids:
            raise StorageError(f"permission denied for {document_id}")
        return await super().delete(collection, document_id)

    async def query(self, collection, filters=(), order_by=None, limit=None, start_after=None):
        self._check("query")
        return await super().query(collection, filters, order_by, limit, start_after)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; make every test read the environment anew."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def failing_backend() -> FailingBackend:
    return FailingBackend()


@pytest.fixture
def store(backend) -> DocumentStoreService:
    return DocumentStoreService(backend)


@pytest.fixture
def alice() -> AuthenticatedUser:
    return AuthenticatedUser(uid="alice", email="alice@example.com")


@pytest.fixture
def bob() -> AuthenticatedUser:
    return AuthenticatedUser(uid="bob", email="bob@example.com")
