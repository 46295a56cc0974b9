"""Restaurant persistence behind an exact-then-fuzzy duplicate gate."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from enrichment_orchestrator.dedup.resolver import (
    MERGE_THRESHOLD,
    REVIEW_THRESHOLD,
    AdjudicationContext,
    CandidateEntity,
    DuplicateResolver,
    DuplicateSearch,
)
from enrichment_orchestrator.errors import PersistenceConflict
from enrichment_orchestrator.repositories.review_queue import DuplicateReviewQueue
from enrichment_orchestrator.shared.names import identity_key, normalize_city, slugify
from enrichment_orchestrator.shared.result_parser import strip_citations
from enrichment_orchestrator.shared.token_tracker import TokenUsage
from enrichment_orchestrator.storage.audit import MAX_BATCH_SIZE, AuditLog
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.models import (
    DiscoveredRestaurant,
    Restaurant,
    RestaurantStatus,
)

logger = logging.getLogger(__name__)

RESTAURANT_TABLE = "restaurants"
FUZZY_SCAN_LIMIT = 50
_EPOCH = datetime.min.replace(tzinfo=UTC)


class RestaurantSaveResult(BaseModel):
    success: bool
    restaurant_id: str | None = None
    is_new: bool = False
    is_duplicate: bool = False
    flagged_for_review: bool = False
    confidence: float | None = None
    error: str | None = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str | None = None


def sanitize_restaurant_name(name: str) -> str:
    return " ".join((strip_citations(name) or "").split())


def _attempted(clean_name: str, restaurant: DiscoveredRestaurant) -> dict[str, Any]:
    return restaurant.model_dump(mode="json") | {"name": clean_name}


class RestaurantRepository:
    def __init__(
        self,
        store: RecordStore,
        *,
        resolver: DuplicateResolver | None = None,
        audit: AuditLog | None = None,
        review_queue: DuplicateReviewQueue | None = None,
        source: str = "llm_enricher",
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.audit = audit
        self.review_queue = review_queue
        self.source = source

    def create_restaurant(
        self, chef_id: str, restaurant: DiscoveredRestaurant
    ) -> RestaurantSaveResult:
        """Insert ``restaurant`` unless the duplicate gate matches an existing row.

        A failed insert is reported on the result rather than raised, so the
        caller can retry it.
        """
        clean_name = sanitize_restaurant_name(restaurant.name)
        if not clean_name:
            return RestaurantSaveResult(success=False, error="Restaurant name is required")

        search = DuplicateSearch()
        try:
            search = self._dedup_gate(clean_name, restaurant)
            self._raise_on_merge(clean_name, restaurant, search)
        except PersistenceConflict as conflict:
            self._audit_suppressed(conflict)
            logger.info(
                "restaurant_duplicate_suppressed name=%s existing_id=%s confidence=%.2f",
                clean_name,
                conflict.existing_id,
                conflict.confidence,
            )
            return RestaurantSaveResult(
                success=True,
                restaurant_id=conflict.existing_id,
                is_duplicate=True,
                confidence=conflict.confidence,
                usage=search.usage,
                model=search.model,
            )

        try:
            row = self.store.insert(
                RESTAURANT_TABLE,
                {
                    "name": clean_name,
                    "slug": slugify(clean_name, restaurant.city),
                    "chef_id": chef_id,
                    "chef_role": restaurant.role or "owner",
                    "address": restaurant.address,
                    "city": restaurant.city,
                    "state": restaurant.state,
                    "country": restaurant.country or "US",
                    "cuisine_tags": list(restaurant.cuisine or []),
                    "price_tier": restaurant.price_range,
                    "status": restaurant.status,
                    "website_url": restaurant.website,
                    "year_opened": restaurant.opened,
                    "michelin_stars": restaurant.michelin_stars or 0,
                    "awards": list(restaurant.awards or []),
                },
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("restaurant_insert_failed name=%s error=%s", clean_name, exc)
            return RestaurantSaveResult(
                success=False, error=str(exc), usage=search.usage, model=search.model
            )
        self._audit("insert", row["id"], None, row)

        review_pair = search.match
        flagged = False
        if review_pair is not None and self.review_queue is not None:
            self.review_queue.flag(
                table_name=RESTAURANT_TABLE,
                record_id=row["id"],
                candidate_id=str(review_pair.entity_b.id),
                confidence=review_pair.adjudicated_confidence or 0.0,
                reasoning=review_pair.reasoning,
            )
            flagged = True

        return RestaurantSaveResult(
            success=True,
            restaurant_id=row["id"],
            is_new=True,
            flagged_for_review=flagged,
            confidence=review_pair.adjudicated_confidence if review_pair else None,
            usage=search.usage,
            model=search.model,
        )

    def _dedup_gate(self, clean_name: str, restaurant: DiscoveredRestaurant) -> DuplicateSearch:
        """Raise ``PersistenceConflict`` for an exact match; otherwise run the fuzzy search.

        Cities are compared normalized, so "Chicago" and "chicago " share a gate.
        """
        attempted = _attempted(clean_name, restaurant)
        city = normalize_city(restaurant.city)
        same_city = [
            row
            for row in self.store.select(RESTAURANT_TABLE, order_by="name")
            if normalize_city(row.get("city")) == city
        ]
        wanted = identity_key(clean_name)
        for row in same_city:
            if identity_key(str(row.get("name") or "")) == wanted:
                raise PersistenceConflict(
                    f"Restaurant '{clean_name}' already exists",
                    table=RESTAURANT_TABLE,
                    existing_id=str(row["id"]),
                    confidence=1.0,
                    attempted=attempted | {"matched_name": row.get("name")},
                )

        if self.resolver is None or not city:
            return DuplicateSearch()

        candidates = [
            CandidateEntity(
                id=str(row["id"]),
                name=str(row.get("name") or ""),
                city=row.get("city"),
                state=row.get("state"),
                address=row.get("address"),
            )
            for row in same_city[:FUZZY_SCAN_LIMIT]
        ]
        return self.resolver.search(
            CandidateEntity(
                name=clean_name,
                city=restaurant.city,
                state=restaurant.state,
                address=restaurant.address,
            ),
            candidates,
            threshold=REVIEW_THRESHOLD,
            context=AdjudicationContext(city=restaurant.city, state=restaurant.state),
        )

    @staticmethod
    def _raise_on_merge(
        clean_name: str, restaurant: DiscoveredRestaurant, search: DuplicateSearch
    ) -> None:
        pair = search.match
        if pair is None or (pair.adjudicated_confidence or 0.0) < MERGE_THRESHOLD:
            return
        raise PersistenceConflict(
            f"Restaurant '{clean_name}' duplicates '{pair.entity_b.name}'",
            table=RESTAURANT_TABLE,
            existing_id=str(pair.entity_b.id),
            confidence=pair.adjudicated_confidence or 0.0,
            attempted=_attempted(clean_name, restaurant)
            | {"matched_name": pair.entity_b.name, "reasoning": pair.reasoning},
        )

    def get(self, restaurant_id: str) -> Restaurant | None:
        rows = self.store.select(RESTAURANT_TABLE, filters={"id": restaurant_id}, limit=1)
        return Restaurant.model_validate(rows[0]) if rows else None

    def find_by_ids(self, restaurant_ids: Sequence[str]) -> list[Restaurant]:
        if not restaurant_ids:
            return []
        rows = self.store.select(RESTAURANT_TABLE, filters={"id": list(restaurant_ids)})
        return [Restaurant.model_validate(row) for row in rows]

    def find_by_chef(self, chef_id: str) -> list[Restaurant]:
        rows = self.store.select(RESTAURANT_TABLE, filters={"chef_id": chef_id}, order_by="name")
        return [Restaurant.model_validate(row) for row in rows]

    def find_for_verification(
        self,
        *,
        statuses: Sequence[RestaurantStatus] | None = None,
        city: str | None = None,
        state: str | None = None,
        chef_id: str | None = None,
        verified_before: datetime | None = None,
        limit: int | None = None,
    ) -> list[Restaurant]:
        filters: dict[str, Any] = {}
        if statuses:
            filters["status"] = list(statuses)
        if city:
            filters["city"] = city
        if state:
            filters["state"] = state
        if chef_id:
            filters["chef_id"] = chef_id
        rows = self.store.select(RESTAURANT_TABLE, filters=filters, order_by="name")
        restaurants = [Restaurant.model_validate(row) for row in rows]
        # Never-verified first, then oldest verification.
        restaurants.sort(
            key=lambda item: (item.last_verified_at is not None, item.last_verified_at or _EPOCH)
        )
        if verified_before is not None:
            restaurants = [
                item
                for item in restaurants
                if item.last_verified_at is None or item.last_verified_at < verified_before
            ]
        return restaurants[:limit] if limit is not None else restaurants

    def update_status(
        self,
        restaurant_id: str,
        status: RestaurantStatus,
        confidence: float,
        reason: str,
    ) -> Restaurant | None:
        before = self.get(restaurant_id)
        if before is None:
            return None
        changes = {
            "status": status,
            "status_confidence": confidence,
            "last_verified_at": datetime.now(UTC).isoformat(),
            "verification_source": f"llm_confidence_{confidence:.2f}: {reason}",
        }
        row = self.store.update(RESTAURANT_TABLE, restaurant_id, changes)
        if row is None:
            return None
        self._audit(
            "update",
            restaurant_id,
            {"status": before.status},
            {"status": status},
            confidence=confidence,
        )
        return Restaurant.model_validate(row)

    def delete_by_ids(self, restaurant_ids: Sequence[str]) -> int:
        ids = [restaurant_id for restaurant_id in dict.fromkeys(restaurant_ids) if restaurant_id]
        if not ids:
            return 0
        existing = self.store.select(RESTAURANT_TABLE, filters={"id": ids})
        deleted = self.store.delete(RESTAURANT_TABLE, [row["id"] for row in existing])
        if self.audit is not None and existing:
            for start in range(0, len(existing), MAX_BATCH_SIZE):
                chunk = existing[start : start + MAX_BATCH_SIZE]
                self.audit.log_batch(
                    {
                        "table_name": RESTAURANT_TABLE,
                        "record_id": row["id"],
                        "change_type": "delete",
                        "old_data": row,
                        "source": self.source,
                    }
                    for row in chunk
                )
        return deleted

    def delete_stale(self, chef_id: str, keep_ids: Sequence[str]) -> int:
        """Delete the chef's restaurants that were not rediscovered."""
        keep = set(keep_ids)
        stale = [
            restaurant.id for restaurant in self.find_by_chef(chef_id) if restaurant.id not in keep
        ]
        return self.delete_by_ids(stale)

    def _audit_suppressed(self, conflict: PersistenceConflict) -> None:
        if self.audit is None:
            return
        self.audit.log_change(
            {
                "table_name": conflict.table,
                "record_id": conflict.existing_id,
                "change_type": "update",
                "new_data": {"duplicate_prevented": True, **conflict.attempted},
                "source": f"{self.source}_duplicate_prevention",
                "confidence": conflict.confidence,
            }
        )

    def _audit(
        self,
        change_type: str,
        record_id: str,
        old_data: dict[str, Any] | None,
        new_data: dict[str, Any] | None,
        *,
        confidence: float | None = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.log_change(
            {
                "table_name": RESTAURANT_TABLE,
                "record_id": record_id,
                "change_type": change_type,
                "old_data": old_data,
                "new_data": new_data,
                "source": self.source,
                "confidence": confidence,
            }
        )
