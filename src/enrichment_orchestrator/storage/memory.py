"""In-memory record store for tests and local previews."""

from __future__ import annotations

import copy
import threading
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from enrichment_orchestrator.storage.base import ensure_known_table


class InMemoryRecordStore:
    """Simple in-memory implementation of ``RecordStore``."""

    def __init__(self) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self.write_count = 0

    def migrate(self) -> None:
        return None

    def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ensure_known_table(table)
        with self._lock:
            rows = [
                copy.deepcopy(row)
                for row in self._tables.get(table, [])
                if _matches(row, filters or {})
            ]
        if order_by:
            rows.sort(
                key=lambda row: (row.get(order_by) is None, row.get(order_by) or ""),
                reverse=descending,
            )
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        ensure_known_table(table)
        record = copy.deepcopy(dict(row))
        record.setdefault("id", str(uuid4()))
        record.setdefault("created_at", datetime.now(UTC).isoformat())
        with self._lock:
            self._tables.setdefault(table, []).append(record)
            self.write_count += 1
        return copy.deepcopy(record)

    def update(
        self, table: str, record_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        ensure_known_table(table)
        with self._lock:
            for row in self._tables.get(table, []):
                if row.get("id") == record_id:
                    row.update(copy.deepcopy(dict(changes)))
                    self.write_count += 1
                    return copy.deepcopy(row)
        return None

    def delete(self, table: str, record_ids: Sequence[str]) -> int:
        ensure_known_table(table)
        targets = set(record_ids)
        if not targets:
            return 0
        with self._lock:
            rows = self._tables.get(table, [])
            kept = [row for row in rows if row.get("id") not in targets]
            deleted = len(rows) - len(kept)
            self._tables[table] = kept
            if deleted:
                self.write_count += 1
        return deleted

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables.get(table, []))


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for column, expected in filters.items():
        actual = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True
