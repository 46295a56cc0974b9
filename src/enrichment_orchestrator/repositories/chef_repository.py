"""Chef persistence."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from enrichment_orchestrator.shared.names import identity_key, slugify
from enrichment_orchestrator.storage.audit import AuditLog
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.models import Chef

CHEF_TABLE = "chefs"


class ChefRepository:
    def __init__(
        self,
        store: RecordStore,
        *,
        audit: AuditLog | None = None,
        source: str = "llm_enricher",
    ) -> None:
        self.store = store
        self.audit = audit
        self.source = source

    def create(self, name: str, **fields: Any) -> Chef:
        clean = " ".join(name.split())
        if not clean:
            raise ValueError("Chef name is required")
        existing = self.find_by_name(clean)
        if existing is not None:
            return existing
        row = self.store.insert(CHEF_TABLE, {"name": clean, "slug": slugify(clean), **fields})
        self._audit("insert", row["id"], None, row)
        return Chef.model_validate(row)

    def get(self, chef_id: str) -> Chef | None:
        rows = self.store.select(CHEF_TABLE, filters={"id": chef_id}, limit=1)
        return Chef.model_validate(rows[0]) if rows else None

    def find_by_name(self, name: str) -> Chef | None:
        wanted = identity_key(name)
        for row in self.store.select(CHEF_TABLE):
            if identity_key(str(row.get("name") or "")) == wanted:
                return Chef.model_validate(row)
        return None

    def update_bio(
        self,
        chef_id: str,
        *,
        mini_bio: str | None,
        james_beard_status: str | None = None,
        notable_awards: list[str] | None = None,
    ) -> Chef:
        changes: dict[str, Any] = {"mini_bio": mini_bio, "james_beard_status": james_beard_status}
        if notable_awards is not None:
            changes["notable_awards"] = list(notable_awards)
        return self._update(chef_id, changes)

    def update_narrative(self, chef_id: str, narrative: str) -> Chef:
        return self._update(chef_id, {"narrative": narrative})

    def set_enrichment_timestamp(self, chef_id: str, *, at: datetime | None = None) -> Chef:
        stamp = (at or datetime.now(UTC)).isoformat()
        return self._update(chef_id, {"last_enriched_at": stamp}, audited=False)

    def _update(self, chef_id: str, changes: dict[str, Any], *, audited: bool = True) -> Chef:
        before = self.store.select(CHEF_TABLE, filters={"id": chef_id}, limit=1)
        row = self.store.update(CHEF_TABLE, chef_id, changes)
        if row is None:
            raise KeyError(f"Chef {chef_id} does not exist")
        if audited:
            old = {key: before[0].get(key) for key in changes} if before else None
            self._audit("update", chef_id, old, changes)
        return Chef.model_validate(row)

    def _audit(
        self,
        change_type: str,
        record_id: str,
        old_data: dict[str, Any] | None,
        new_data: dict[str, Any] | None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.log_change(
            {
                "table_name": CHEF_TABLE,
                "record_id": record_id,
                "change_type": change_type,
                "old_data": old_data,
                "new_data": new_data,
                "source": self.source,
            }
        )
