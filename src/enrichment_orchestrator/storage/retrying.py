"""Record store wrapper that retries transient persistence failures."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from enrichment_orchestrator.shared.retry import (
    DEFAULT_POLICY,
    RetryPolicy,
    is_transient_persistence_error,
    with_retry,
)
from enrichment_orchestrator.storage.base import RecordStore

T = TypeVar("T")


class RetryingRecordStore:
    """Delegates to ``inner``, retrying each call on connection-level errors.

    Uniqueness violations and other permanent errors propagate on the first
    attempt.
    """

    def __init__(
        self,
        inner: RecordStore,
        *,
        policy: RetryPolicy = DEFAULT_POLICY,
        classify: Callable[[BaseException], bool] = is_transient_persistence_error,
    ) -> None:
        self.inner = inner
        self.policy = policy
        self.classify = classify

    def migrate(self) -> None:
        self._call(self.inner.migrate, "store.migrate")

    def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return self._call(
            lambda: self.inner.select(
                table, filters=filters, order_by=order_by, descending=descending, limit=limit
            ),
            f"store.select {table}",
        )

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        return self._call(lambda: self.inner.insert(table, row), f"store.insert {table}")

    def update(
        self, table: str, record_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        return self._call(
            lambda: self.inner.update(table, record_id, changes), f"store.update {table}"
        )

    def delete(self, table: str, record_ids: Sequence[str]) -> int:
        return self._call(lambda: self.inner.delete(table, record_ids), f"store.delete {table}")

    def _call(self, operation: Callable[[], T], label: str) -> T:
        return with_retry(operation, self.classify, policy=self.policy, label=label)
