"""Append-only change log for the primary tables."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.models import AuditEntry

logger = logging.getLogger(__name__)

AUDIT_TABLE = "data_changes"
MAX_BATCH_SIZE = 500
_CHANGE_TYPES = frozenset({"insert", "update", "delete"})


class AuditWriteResult(BaseModel):
    success: bool
    written: int = 0
    errors: list[str] = []


def validate_entry(entry: AuditEntry | dict[str, Any]) -> list[str]:
    """Return the reasons an entry would be rejected; empty when valid."""
    data = entry.model_dump() if isinstance(entry, AuditEntry) else dict(entry)
    errors: list[str] = []
    if not str(data.get("table_name") or "").strip():
        errors.append("table_name is required")
    if data.get("change_type") not in _CHANGE_TYPES:
        errors.append(
            "change_type must be one of insert, update, delete "
            f"(got {data.get('change_type')!r})"
        )
    if not str(data.get("source") or "").strip():
        errors.append("source is required")
    confidence = data.get("confidence")
    if confidence is not None and not (
        isinstance(confidence, (int, float)) and 0.0 <= float(confidence) <= 1.0
    ):
        errors.append("confidence must be between 0 and 1")
    return errors


class AuditLog:
    """Writes ``data_changes`` rows. Malformed entries never reach the store."""

    def __init__(self, store: RecordStore, *, max_batch_size: int = MAX_BATCH_SIZE) -> None:
        self.store = store
        self.max_batch_size = max_batch_size

    def log_change(self, entry: AuditEntry | dict[str, Any]) -> AuditWriteResult:
        return self.log_batch([entry])

    def log_batch(self, entries: Iterable[AuditEntry | dict[str, Any]]) -> AuditWriteResult:
        batch = list(entries)
        if not batch:
            return AuditWriteResult(success=True)
        if len(batch) > self.max_batch_size:
            return AuditWriteResult(
                success=False,
                errors=[f"Batch size {len(batch)} exceeds maximum of {self.max_batch_size}"],
            )

        errors: list[str] = []
        for index, entry in enumerate(batch):
            errors.extend(f"entry {index}: {reason}" for reason in validate_entry(entry))
        if errors:
            logger.warning("audit_rejected entries=%d errors=%d", len(batch), len(errors))
            return AuditWriteResult(success=False, errors=errors)

        for entry in batch:
            record = entry if isinstance(entry, AuditEntry) else AuditEntry.model_validate(entry)
            self.store.insert(AUDIT_TABLE, record.model_dump(mode="json", exclude={"created_at"}))
        return AuditWriteResult(success=True, written=len(batch))

    def recent_changes(
        self,
        *,
        table_name: str | None = None,
        source: str | None = None,
        limit: int = 100,
        since: datetime | None = None,
    ) -> list[AuditEntry]:
        filters: dict[str, Any] = {}
        if table_name:
            filters["table_name"] = table_name
        if source:
            filters["source"] = source
        rows = self.store.select(
            AUDIT_TABLE, filters=filters, order_by="created_at", descending=True
        )
        entries = [AuditEntry.model_validate(row) for row in rows]
        if since is not None:
            entries = [
                entry for entry in entries if entry.created_at is None or entry.created_at >= since
            ]
        return entries[: max(0, min(limit, self.max_batch_size))]
