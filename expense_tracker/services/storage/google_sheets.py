"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted table store because:
1. Household members can view their data directly in Sheets
2. No database setup required
3. Built-in backup and sharing (Google's infrastructure)
4. Easy to export/migrate later

Each logical table is a worksheet whose first row holds the column names.
New columns are appended to the header the first time a row carries them.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for household use)
- No transactions (settlement compensates instead)
- Limited query capabilities (we filter in Python)
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_tracker.config import get_settings
from expense_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_tracker.services.storage.interface import (
    UNIQUE_KEYS,
    AuditStorageInterface,
    BackendInterface,
    ConnectionError,
    DuplicateError,
    StorageError,
    normalize_row,
    row_matches,
    sort_rows,
)


# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
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

    def get_worksheet(self, title: str, header: Optional[list[str]] = None) -> gspread.Worksheet:
        """Get or create a worksheet, seeding the header row on creation."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=max(len(header or []), 26),
            )
            if header:
                sheet.append_row(header)
        self._worksheets[title] = sheet
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS)


def _encode_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _decode_cell(value: Any) -> Any:
    if value == "":
        return None
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


class GoogleSheetsBackend(BackendInterface):
    """
    Google Sheets implementation of the table store.

    One worksheet per logical table, one row per record.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read(self, table: str) -> tuple[gspread.Worksheet, list[str], list[dict[str, Any]]]:
        sheet = self._client.get_worksheet(table, ["id"])
        header = sheet.row_values(1)
        records = sheet.get_all_records(numericise_ignore=["all"])
        rows = [{k: _decode_cell(v) for k, v in record.items()} for record in records]
        return sheet, header, rows

    def _ensure_header(self, sheet: gspread.Worksheet, header: list[str], row: dict) -> list[str]:
        missing = [key for key in row if key not in header]
        if missing:
            header = header + missing
            sheet.update(range_name="A1", values=[header])
        return header

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        stored = normalize_row(row)
        stored.setdefault("id", str(uuid4()))

        try:
            sheet, header, rows = self._read(table)
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {e}")

        columns = UNIQUE_KEYS.get(table)
        if columns:
            key = tuple(_encode_cell(stored.get(c)) for c in columns)
            for existing in rows:
                if tuple(_encode_cell(existing.get(c)) for c in columns) == key:
                    raise DuplicateError(f"Duplicate key in {table}: {key}")

        try:
            header = self._ensure_header(sheet, header, stored)
            sheet.append_row(
                [_encode_cell(stored.get(col)) for col in header],
                value_input_option="RAW",
            )
            return stored
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def update(
        self,
        table: str,
        patch: dict[str, Any],
        match: dict[str, Any],
    ) -> int:
        patch = normalize_row(patch)
        try:
            sheet, header, rows = self._read(table)
            header = self._ensure_header(sheet, header, patch)

            count = 0
            # Row 1 is the header
            for idx, row in enumerate(rows, start=2):
                if row_matches(row, match):
                    row.update(patch)
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[[_encode_cell(row.get(col)) for col in header]],
                        value_input_option="RAW",
                    )
                    count += 1
            return count
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table}: {e}")

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        try:
            _, _, rows = self._read(table)
        except Exception as e:
            raise StorageError(f"Failed to select from {table}: {e}")

        rows = sort_rows([r for r in rows if r.get("id") and row_matches(r, filters)], order_by)
        return rows[:limit] if limit is not None else rows

    async def delete(self, table: str, match: dict[str, Any]) -> int:
        try:
            sheet, _, rows = self._read(table)
            indexes = [idx for idx, row in enumerate(rows, start=2) if row_matches(row, match)]
            # Delete bottom-up so earlier indexes stay valid
            for idx in reversed(indexes):
                sheet.delete_rows(idx)
            return len(indexes)
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _load_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                # Hand-edited rows that no longer parse are left out
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._load_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._load_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp, reverse=True)[:limit]
