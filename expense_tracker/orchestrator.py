"""
Application Wiring

Builds the document store for the configured backend and opens user
sessions on top of it. A UI calls `create_app_components()` once at
startup and `open_session()` when a user signs in.
"""

from typing import Optional

from expense_tracker.config import get_settings
from expense_tracker.logs import get_logger
from expense_tracker.models import AuthenticatedUser
from expense_tracker.services import (
    DocumentBackend,
    DocumentStoreService,
    GoogleSheetsClient,
    GoogleSheetsDocumentBackend,
    InMemoryDocumentBackend,
)
from expense_tracker.session import UserDataSession


def create_document_backend(
    backend_name: Optional[str] = None,
) -> tuple[DocumentBackend, Optional[GoogleSheetsClient]]:
    """
    Create the document backend named by `backend_name`
    (default: the `storage_backend` setting).

    Returns:
        (backend, sheets_client) - sheets_client is None for the memory backend
    """
    backend_name = backend_name or get_settings().app.storage_backend

    if backend_name == "memory":
        return InMemoryDocumentBackend(), None
    if backend_name == "google_sheets":
        sheets_client = GoogleSheetsClient()
        return GoogleSheetsDocumentBackend(sheets_client), sheets_client

    raise ValueError(f"Unsupported storage backend: {backend_name}")


def create_app_components(
    backend: Optional[DocumentBackend] = None,
) -> tuple[DocumentStoreService, Optional[GoogleSheetsClient]]:
    """
    Factory for the shared, stateless parts of the application.

    Args:
        backend: Backend to use. Built from settings when omitted.

    Returns:
        (store, sheets_client)
    """
    sheets_client = None
    if backend is None:
        backend, sheets_client = create_document_backend()

    get_logger(__name__).info(
        "app_components_created",
        backend=type(backend).__name__,
    )
    return DocumentStoreService(backend), sheets_client


async def open_session(
    store: DocumentStoreService,
    user: Optional[AuthenticatedUser] = None,
) -> UserDataSession:
    """Create a session and, when a user is given, load their data."""
    session = UserDataSession(store)
    await session.set_user(user)
    return session
