"""Identity check for discovery inserts.

A discovery is a duplicate when its normalized key matches a primary-table
row or a live (pending or approved) discovery of the same kind.
"""

from __future__ import annotations

from pydantic import BaseModel

from enrichment_orchestrator.shared.names import identity_key, normalize_city, resolve_show_alias
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.models import (
    ChefDiscovery,
    RestaurantDiscovery,
    ShowDiscovery,
)

LIVE_DISCOVERY_STATUSES = ("pending", "approved")

_PRIMARY_TABLES = {"show": "shows", "chef": "chefs", "restaurant": "restaurants"}


class IdentityMatch(BaseModel):
    table: str
    record_id: str
    name: str


def discovery_key(payload: ShowDiscovery | ChefDiscovery | RestaurantDiscovery) -> str:
    return _payload_key(payload.kind, payload.model_dump())


class DiscoveryIdentityChecker:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def check_identity(
        self,
        kind: str,
        payload: ShowDiscovery | ChefDiscovery | RestaurantDiscovery,
    ) -> IdentityMatch | None:
        table = _PRIMARY_TABLES.get(kind)
        if table is None:
            raise ValueError(f"Unknown discovery kind: {kind}")
        if payload.kind != kind:
            raise ValueError(f"Payload kind '{payload.kind}' does not match '{kind}'")

        for row in self.store.select(table):
            if self._row_matches(payload, row):
                return IdentityMatch(
                    table=table, record_id=str(row["id"]), name=str(row.get("name", ""))
                )

        wanted = discovery_key(payload)
        live = self.store.select(
            "pending_discoveries",
            filters={"discovery_type": kind, "status": list(LIVE_DISCOVERY_STATUSES)},
        )
        for row in live:
            existing = row.get("payload") or {}
            if _payload_key(kind, existing) == wanted:
                return IdentityMatch(
                    table="pending_discoveries",
                    record_id=str(row["id"]),
                    name=str(existing.get("name", "")),
                )
        return None

    @staticmethod
    def _row_matches(
        payload: ShowDiscovery | ChefDiscovery | RestaurantDiscovery, row: dict
    ) -> bool:
        name = str(row.get("name") or "")
        if isinstance(payload, ShowDiscovery):
            return resolve_show_alias(name) == resolve_show_alias(payload.name)
        if identity_key(name) != identity_key(payload.name):
            return False
        if isinstance(payload, RestaurantDiscovery) and payload.city and row.get("city"):
            return normalize_city(row.get("city")) == normalize_city(payload.city)
        return True


def _payload_key(kind: str, payload: dict) -> str:
    name = str(payload.get("name") or "")
    if kind == "show":
        return resolve_show_alias(name)
    if kind == "restaurant":
        return f"{identity_key(name)}|{normalize_city(payload.get('city'))}"
    return identity_key(name)
