"""Storage interface for entity tables."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

KNOWN_TABLES = frozenset(
    {
        "chefs",
        "restaurants",
        "shows",
        "chef_shows",
        "pending_discoveries",
        "search_cache",
        "data_changes",
        "duplicate_reviews",
    }
)


class RecordStore(Protocol):
    """Filtered select, insert, update-by-id and delete-by-id over named tables.

    Filter values that are lists, tuples or sets match any member; ``None``
    matches a missing or null column.
    """

    def migrate(self) -> None: ...

    def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]: ...

    def update(
        self, table: str, record_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any] | None: ...

    def delete(self, table: str, record_ids: Sequence[str]) -> int: ...


def ensure_known_table(table: str) -> str:
    if table not in KNOWN_TABLES:
        raise ValueError(f"Unknown table: {table}")
    return table
