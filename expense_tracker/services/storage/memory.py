"""
In-Memory Storage Implementation

Used by the test suite and as the offline fallback when Google Sheets
is not configured. Behaves like the remote table store: rows are
JSON-compatible dicts, unique keys are enforced, and every read returns
copies so callers cannot mutate stored state by accident.
"""

import copy
from typing import Any, Optional
from uuid import UUID, uuid4

from expense_tracker.models.audit import AuditEvent
from expense_tracker.services.storage.interface import (
    UNIQUE_KEYS,
    AuditStorageInterface,
    BackendInterface,
    DuplicateError,
    normalize_row,
    row_matches,
    sort_rows,
)


class InMemoryBackend(BackendInterface):
    """Dict-of-lists table store."""

    def __init__(self, unique_keys: Optional[dict[str, tuple[str, ...]]] = None):
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._unique_keys = UNIQUE_KEYS if unique_keys is None else unique_keys

    def _rows(self, table: str) -> list[dict[str, Any]]:
        return self._tables.setdefault(table, [])

    def _check_unique(self, table: str, row: dict[str, Any], ignore: Optional[dict] = None) -> None:
        columns = self._unique_keys.get(table)
        if not columns:
            return
        key = tuple(row.get(c) for c in columns)
        for existing in self._rows(table):
            if existing is ignore:
                continue
            if tuple(existing.get(c) for c in columns) == key:
                raise DuplicateError(
                    f"Duplicate key in {table}: "
                    + ", ".join(f"{c}={v}" for c, v in zip(columns, key))
                )

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        stored = normalize_row(row)
        stored.setdefault("id", str(uuid4()))
        self._check_unique(table, stored)
        self._rows(table).append(stored)
        return copy.deepcopy(stored)

    async def update(
        self,
        table: str,
        patch: dict[str, Any],
        match: dict[str, Any],
    ) -> int:
        patch = normalize_row(patch)
        count = 0
        for row in self._rows(table):
            if row_matches(row, match):
                self._check_unique(table, {**row, **patch}, ignore=row)
                row.update(patch)
                count += 1
        return count

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        rows = [copy.deepcopy(r) for r in self._rows(table) if row_matches(r, filters)]
        rows = sort_rows(rows, order_by)
        return rows[:limit] if limit is not None else rows

    async def delete(self, table: str, match: dict[str, Any]) -> int:
        rows = self._rows(table)
        keep = [r for r in rows if not row_matches(r, match)]
        removed = len(rows) - len(keep)
        self._tables[table] = keep
        return removed


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(reversed(self._events), key=lambda e: e.timestamp, reverse=True)[:limit]
