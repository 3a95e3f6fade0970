"""
Google Sheets Document Backend

The hosted store is a single spreadsheet. Each collection (paychecks,
expenses, budgets) lives in its own worksheet, one document per row.

Row layout:
    id | userId | createdAt | updatedAt | data_json

`data_json` holds the whole document and is the only column read back.
The other columns duplicate the owner and timestamps so the sheet stays
readable when opened directly. Timestamps inside `data_json` are tagged
(`{"__timestamp__": "<iso>"}`) so they decode back to `Timestamp`.

TRADEOFFS:
- Not suitable for high-volume data (fine for one household)
- No transactions; concurrent writers race, last write wins
- No server-side queries; every query reads the worksheet and filters
  in Python (see `query.run_query`)
"""

import json
from collections.abc import Sequence
from typing import Any, Optional
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.config import get_settings
from expense_tracker.logs import get_logger
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
from expense_tracker.services.storage.values import Timestamp, to_store_value


SHEET_COLUMNS = [
    "id",
    "userId",
    "createdAt",
    "updatedAt",
    "data_json",
]

_LAST_COLUMN = chr(ord("A") + len(SHEET_COLUMNS) - 1)
_TIMESTAMP_TAG = "__timestamp__"


def encode_data(data: dict[str, Any]) -> str:
    """Serialize stored field values to the `data_json` column."""
    def tag(value: Any) -> Any:
        if isinstance(value, Timestamp):
            return {_TIMESTAMP_TAG: value.isoformat()}
        if isinstance(value, dict):
            return {key: tag(item) for key, item in value.items()}
        if isinstance(value, list):
            return [tag(item) for item in value]
        return value

    return json.dumps(tag(data))


def decode_data(text: str) -> dict[str, Any]:
    """Parse the `data_json` column back into stored field values."""
    def untag(obj: dict) -> Any:
        if len(obj) == 1 and _TIMESTAMP_TAG in obj:
            return Timestamp.fromisoformat(obj[_TIMESTAMP_TAG])
        return obj

    return json.loads(text, object_hook=untag) if text else {}


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and hands out one worksheet per collection,
    creating it (with headers) on first use.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        if collection not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(collection)
            except gspread.WorksheetNotFound:
                sheet = spreadsheet.add_worksheet(
                    title=collection,
                    rows=self._settings.initial_rows,
                    cols=len(SHEET_COLUMNS),
                )
                sheet.append_row(SHEET_COLUMNS)
            self._worksheets[collection] = sheet
        return self._worksheets[collection]


class GoogleSheetsDocumentBackend(DocumentBackend):
    """
    Google Sheets implementation of the document backend.

    gspread is synchronous; calls are made inline, so operations on one
    backend instance never interleave mid-request. Row indexes therefore
    stay valid between the lookup and the write of a single operation.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._logger = get_logger(__name__)

    @staticmethod
    def _document_to_row(document_id: str, data: dict[str, Any]) -> list:
        """Convert a document to a spreadsheet row."""
        def iso(value: Any) -> str:
            return value.isoformat() if isinstance(value, Timestamp) else ""

        return [
            document_id,
            str(data.get("userId", "")),
            iso(data.get("createdAt")),
            iso(data.get("updatedAt")),
            encode_data(data),
        ]

    @staticmethod
    def _row_to_document(row: list) -> StoredDocument:
        """Convert a spreadsheet row to a document."""
        data_json = row[4] if len(row) > 4 else ""
        return StoredDocument(id=row[0], data=decode_data(data_json))

    def _find_row(self, sheet: gspread.Worksheet, document_id: str) -> Optional[tuple[int, list]]:
        """Locate a document's row. Returns (1-based row index, row) or None."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == document_id:
                return idx, row
        return None

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        document_id = uuid4().hex
        try:
            sheet = self._client.get_collection_sheet(collection)
            row = self._document_to_row(document_id, to_store_value(data))
            sheet.append_row(row, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to append to {collection}: {e}") from e
        return document_id

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        try:
            sheet = self._client.get_collection_sheet(collection)
            found = self._find_row(sheet, document_id)
            if found is None:
                raise NotFoundError(f"No document to update: {collection}/{document_id}")

            idx, row = found
            merged = self._row_to_document(row).data
            merged.update(to_store_value(data))
            sheet.update(
                range_name=f"A{idx}:{_LAST_COLUMN}{idx}",
                values=[self._document_to_row(document_id, merged)],
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection}/{document_id}: {e}") from e

    async def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        try:
            sheet = self._client.get_collection_sheet(collection)
            found = self._find_row(sheet, document_id)
            if found is None:
                return None
            return self._row_to_document(found[1])
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection}/{document_id}: {e}") from e

    async def delete(self, collection: str, document_id: str) -> None:
        try:
            sheet = self._client.get_collection_sheet(collection)
            found = self._find_row(sheet, document_id)
            if found is not None:
                sheet.delete_rows(found[0])
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection}/{document_id}: {e}") from e

    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[PageCursor] = None,
    ) -> list[StoredDocument]:
        try:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection}: {e}") from e

        documents = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                documents.append(self._row_to_document(row))
            except (json.JSONDecodeError, ValueError) as e:
                self._logger.warning(
                    "malformed_row_skipped",
                    collection=collection,
                    document_id=row[0],
                    error=str(e),
                )

        return run_query(documents, filters, order_by, limit, start_after)
