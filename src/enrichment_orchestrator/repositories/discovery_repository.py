"""Pending discoveries awaiting review."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any, get_args

from pydantic import BaseModel, Field

from enrichment_orchestrator.dedup.identity import DiscoveryIdentityChecker
from enrichment_orchestrator.storage.audit import AuditLog
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.models import (
    DiscoveryPayload,
    DiscoveryStatus,
    DiscoveryType,
    PendingDiscovery,
)

logger = logging.getLogger(__name__)

DISCOVERY_TABLE = "pending_discoveries"


class DiscoveryInput(BaseModel):
    payload: DiscoveryPayload
    source_chef_id: str | None = None
    source_chef_name: str | None = None
    status: DiscoveryStatus = "pending"
    notes: str | None = None
    error_message: str | None = None


class DiscoveryInsertResult(BaseModel):
    success: bool
    id: str | None = None
    is_duplicate: bool = False
    error: str | None = None


class DiscoveryBatchResult(BaseModel):
    inserted: int = 0
    duplicates: int = 0
    errors: list[str] = Field(default_factory=list)


class PendingDiscoveryRepository:
    def __init__(
        self,
        store: RecordStore,
        *,
        identity: DiscoveryIdentityChecker | None = None,
        audit: AuditLog | None = None,
        source: str = "llm_enricher",
    ) -> None:
        self.store = store
        self.identity = identity or DiscoveryIdentityChecker(store)
        self.audit = audit
        self.source = source

    def insert(self, discovery: DiscoveryInput | dict[str, Any]) -> DiscoveryInsertResult:
        item = (
            discovery
            if isinstance(discovery, DiscoveryInput)
            else DiscoveryInput.model_validate(discovery)
        )
        kind = item.payload.kind
        match = self.identity.check_identity(kind, item.payload)
        if match is not None:
            self._audit_suppressed(item, match.table, match.record_id)
            return DiscoveryInsertResult(
                success=False,
                is_duplicate=True,
                error=f"Duplicate of existing {kind}: {match.record_id}",
            )

        row = self.store.insert(
            DISCOVERY_TABLE,
            {
                "discovery_type": kind,
                "source_chef_id": item.source_chef_id,
                "source_chef_name": item.source_chef_name,
                "payload": item.payload.model_dump(mode="json"),
                "status": item.status,
                "notes": item.notes,
                "error_message": item.error_message,
            },
        )
        return DiscoveryInsertResult(success=True, id=row["id"])

    def insert_batch(
        self, discoveries: Iterable[DiscoveryInput | dict[str, Any]]
    ) -> DiscoveryBatchResult:
        result = DiscoveryBatchResult()
        for discovery in discoveries:
            outcome = self.insert(discovery)
            if outcome.success:
                result.inserted += 1
            elif outcome.is_duplicate:
                result.duplicates += 1
            elif outcome.error:
                result.errors.append(outcome.error)
        return result

    def find_by_status(self, status: DiscoveryStatus) -> list[PendingDiscovery]:
        return self._find({"status": status})

    def find_by_type(self, discovery_type: DiscoveryType) -> list[PendingDiscovery]:
        return self._find({"discovery_type": discovery_type})

    def find_pending(self) -> list[PendingDiscovery]:
        return self.find_by_status("pending")

    def find_by_id(self, discovery_id: str) -> PendingDiscovery | None:
        rows = self.store.select(DISCOVERY_TABLE, filters={"id": discovery_id}, limit=1)
        return _to_discovery(rows[0]) if rows else None

    def update_status(
        self,
        discovery_id: str,
        status: DiscoveryStatus,
        *,
        reviewed_by: str | None = None,
        error_message: str | None = None,
    ) -> PendingDiscovery | None:
        changes: dict[str, Any] = {"status": status}
        if status in ("approved", "rejected", "merged"):
            changes["reviewed_at"] = datetime.now(UTC).isoformat()
            changes["reviewed_by"] = reviewed_by
        if error_message is not None:
            changes["error_message"] = error_message
        row = self.store.update(DISCOVERY_TABLE, discovery_id, changes)
        return _to_discovery(row) if row else None

    def approve(self, discovery_id: str, reviewed_by: str | None = None) -> PendingDiscovery | None:
        return self.update_status(discovery_id, "approved", reviewed_by=reviewed_by)

    def reject(self, discovery_id: str, reviewed_by: str | None = None) -> PendingDiscovery | None:
        return self.update_status(discovery_id, "rejected", reviewed_by=reviewed_by)

    def mark_merged(
        self, discovery_id: str, reviewed_by: str | None = None
    ) -> PendingDiscovery | None:
        return self.update_status(discovery_id, "merged", reviewed_by=reviewed_by)

    def mark_needs_review(
        self, discovery_id: str, error_message: str | None = None
    ) -> PendingDiscovery | None:
        return self.update_status(discovery_id, "needs_review", error_message=error_message)

    def get_stats(self) -> dict[str, int]:
        stats = {status: 0 for status in get_args(DiscoveryStatus)}
        for row in self.store.select(DISCOVERY_TABLE):
            status = row.get("status")
            if status in stats:
                stats[status] += 1
        return stats

    def delete_old_rejected(self, days_old: int = 30, *, now: datetime | None = None) -> int:
        cutoff = (now or datetime.now(UTC)) - timedelta(days=days_old)
        stale = [
            item.id
            for item in self.find_by_status("rejected")
            if (item.reviewed_at or item.created_at) is not None
            and (item.reviewed_at or item.created_at) < cutoff
        ]
        deleted = self.store.delete(DISCOVERY_TABLE, stale)
        logger.info("discoveries_purged status=rejected days_old=%d deleted=%d", days_old, deleted)
        return deleted

    def _find(self, filters: dict[str, Any]) -> list[PendingDiscovery]:
        rows = self.store.select(
            DISCOVERY_TABLE, filters=filters, order_by="created_at", descending=True
        )
        return [_to_discovery(row) for row in rows]

    def _audit_suppressed(self, item: DiscoveryInput, table: str, record_id: str) -> None:
        if self.audit is None:
            return
        self.audit.log_change(
            {
                "table_name": DISCOVERY_TABLE,
                "record_id": record_id,
                "change_type": "insert",
                "new_data": {
                    "duplicate_prevented": True,
                    "matched_table": table,
                    "attempted": item.payload.model_dump(mode="json"),
                },
                "source": f"{self.source}_duplicate_prevention",
                "confidence": 1.0,
            }
        )


def _to_discovery(row: dict[str, Any]) -> PendingDiscovery:
    return PendingDiscovery.model_validate(row)
