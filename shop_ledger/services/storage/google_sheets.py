"""
Google Sheets Remote Table

DESIGN DECISION: Google Sheets is used as the shared remote table because:
1. The shop owner can look at the books directly in Sheets
2. No database server to run
3. Several devices (and several shops) can share one spreadsheet
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a small shop)
- No transactions across calls (each append is one API call)
- Limited query capabilities (we filter in Python)

Each table is one worksheet whose first row holds the column names.
"""

import asyncio
from typing import Any, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from shop_ledger.config import get_settings
from shop_ledger.models.transaction import TRANSACTION_FIELDS
from shop_ledger.services.storage.interface import (
    ConnectionError,
    PersistenceError,
)
from shop_ledger.services.storage.remote import RemoteTable, TRANSACTIONS_TABLE


# Column layout per table
TABLE_COLUMNS = {
    TRANSACTIONS_TABLE: list(TRANSACTION_FIELDS),
}


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and retries the connection handshake.
    Data calls are not retried.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
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
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        if table not in TABLE_COLUMNS:
            raise PersistenceError(f"Unknown table: {table}")

        title = (
            self._settings.transactions_sheet_name
            if table == TRANSACTIONS_TABLE
            else table
        )
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(TABLE_COLUMNS[table]),
            )
            sheet.append_row(TABLE_COLUMNS[table])
        return sheet


def _matches(row: dict[str, Any], filters: dict[str, str]) -> bool:
    return all(row.get(key) == value for key, value in filters.items())


class GoogleSheetsTable(RemoteTable):
    """
    RemoteTable on top of Google Sheets.

    gspread is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_rows(self, table: str) -> tuple[gspread.Worksheet, list[dict[str, Any]]]:
        sheet = self._client.get_worksheet(table)
        values = sheet.get_all_values()
        if not values:
            return sheet, []
        header, body = values[0], values[1:]
        rows = []
        for raw in body:
            # Handle short rows gracefully
            padded = list(raw) + [""] * (len(header) - len(raw))
            rows.append(dict(zip(header, padded)))
        return sheet, rows

    def _select_sync(self, table: str, filters: dict[str, str]) -> list[dict[str, Any]]:
        _, rows = self._read_rows(table)
        return [row for row in rows if row.get("id") and _matches(row, filters)]

    def _insert_sync(self, table: str, rows: list[dict[str, Any]]) -> None:
        columns = TABLE_COLUMNS[table]
        sheet = self._client.get_worksheet(table)
        values = [
            ["" if row.get(col) is None else str(row.get(col)) for col in columns]
            for row in rows
        ]
        # One API call: the batch lands completely or not at all
        sheet.append_rows(values, value_input_option="RAW")

    def _delete_sync(self, table: str, filters: dict[str, str]) -> int:
        sheet, rows = self._read_rows(table)
        # Sheet rows are 1-based and row 1 is the header
        targets = [
            idx for idx, row in enumerate(rows, start=2) if _matches(row, filters)
        ]
        # Bottom-up so earlier indices stay valid
        for idx in reversed(targets):
            sheet.delete_rows(idx)
        return len(targets)

    async def select(
        self,
        table: str,
        filters: dict[str, str],
    ) -> list[dict[str, Any]]:
        try:
            return await asyncio.to_thread(self._select_sync, table, filters)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read {table}: {e}")

    async def insert(
        self,
        table: str,
        rows: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        try:
            await asyncio.to_thread(self._insert_sync, table, rows)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save to {table}: {e}")
        return rows

    async def delete_where(
        self,
        table: str,
        filters: dict[str, str],
    ) -> int:
        try:
            return await asyncio.to_thread(self._delete_sync, table, filters)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to delete from {table}: {e}")
