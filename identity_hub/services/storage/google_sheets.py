"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. Users can look at their identity graph directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (commands are committed one at a time anyway)
- Limited query capabilities (we filter in Python)

Each collection is one worksheet with three columns:
key | updated_at | document_json
"""

import json
from datetime import datetime
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from identity_hub.config import get_settings
from identity_hub.services.storage.interface import (
    ConnectionError,
    KeyedStore,
    StorageError,
)

COLLECTION_COLUMNS = ["key", "updated_at", "document_json"]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for the connection.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets
        self._worksheets: dict[str, gspread.Worksheet] = {}

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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet holding a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        title = f"{self._settings.worksheet_prefix}{collection}"
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(COLLECTION_COLUMNS),
            )
            sheet.append_row(COLLECTION_COLUMNS)
        self._worksheets[collection] = sheet
        return sheet


class GoogleSheetsStore(KeyedStore):
    """
    KeyedStore backed by one worksheet per collection.

    Documents are JSON-serialized into the third column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_document(row: list) -> Optional[dict]:
        if len(row) < 3 or not row[2]:
            return None
        return json.loads(row[2])

    def _find_row(self, sheet: gspread.Worksheet, key: str) -> Optional[int]:
        """1-based row index of a key, skipping the header."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == key:
                return idx
        return None

    async def get(self, collection: str, key: str) -> Optional[dict]:
        try:
            sheet = self._client.get_collection_sheet(collection)
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == key:
                    return self._row_to_document(row)
            return None
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {collection}/{key}: {e}")

    async def put(self, collection: str, key: str, document: dict) -> None:
        try:
            sheet = self._client.get_collection_sheet(collection)
            row = [key, datetime.utcnow().isoformat(), json.dumps(document)]
            idx = self._find_row(sheet, key)
            if idx is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(
                    values=[row],
                    range_name=f"A{idx}:C{idx}",
                    value_input_option="RAW",
                )
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {collection}/{key}: {e}")

    async def list(self, collection: str) -> list[dict]:
        try:
            sheet = self._client.get_collection_sheet(collection)
            documents = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:  # Skip empty rows
                    continue
                try:
                    document = self._row_to_document(row)
                except json.JSONDecodeError:
                    continue  # Skip malformed rows
                if document is not None:
                    documents.append(document)
            return documents
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {collection}: {e}")

    async def delete(self, collection: str, key: str) -> bool:
        try:
            sheet = self._client.get_collection_sheet(collection)
            idx = self._find_row(sheet, key)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection}/{key}: {e}")
