"""TTL cache for expensive search-backed lookups.

Rows are append-only. A read picks the most recent unexpired row for the
query hash; expired rows are left in place and simply never returned.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from enrichment_orchestrator.cache.models import (
    CachedResult,
    CacheEntry,
    CacheKind,
    CacheStats,
    CacheTag,
)
from enrichment_orchestrator.config.settings import default_cache_ttl_days
from enrichment_orchestrator.shared.names import collapse_whitespace
from enrichment_orchestrator.storage.base import RecordStore

logger = logging.getLogger(__name__)

CACHE_TABLE = "search_cache"


def normalize_query(query: str) -> str:
    return collapse_whitespace(query.lower())


def hash_query(query: str) -> str:
    return hashlib.sha256(normalize_query(query).encode("utf-8")).hexdigest()


class ResultCache:
    def __init__(
        self,
        store: RecordStore,
        *,
        ttl_days: Mapping[str, int] | None = None,
        clock: Callable[[], datetime] | None = None,
        persist: bool = True,
    ) -> None:
        self.store = store
        self.ttl_days = dict(default_cache_ttl_days())
        if ttl_days:
            self.ttl_days.update(ttl_days)
        self.persist = persist
        self._clock = clock or (lambda: datetime.now(UTC))

    def read_only(self) -> ResultCache:
        """A view over the same rows whose ``put`` stores nothing."""
        return ResultCache(self.store, ttl_days=self.ttl_days, clock=self._clock, persist=False)

    def ttl_for(self, kind: str) -> timedelta:
        days = self.ttl_days.get(kind)
        if days is None:
            raise ValueError(f"Unknown cache kind: {kind}")
        return timedelta(days=days)

    def get(self, query: str, *, now: datetime | None = None) -> CachedResult | None:
        current = now or self._clock()
        query_hash = hash_query(query)
        rows = self.store.select(CACHE_TABLE, filters={"query_hash": query_hash})

        best: CacheEntry | None = None
        for row in rows:
            entry = CacheEntry.model_validate(row)
            if entry.expires_at <= current:
                continue
            if best is None or entry.fetched_at >= best.fetched_at:
                best = entry
        if best is None:
            logger.debug("cache_miss hash=%s", query_hash[:12])
            return None

        logger.debug("cache_hit hash=%s kind=%s", query_hash[:12], best.kind)
        return CachedResult(query=best.query, results=best.results, cached_at=best.fetched_at)

    def put(
        self, query: str, results: Any, tag: CacheTag, *, now: datetime | None = None
    ) -> CacheEntry:
        fetched_at = now or self._clock()
        entry = CacheEntry(
            query_hash=hash_query(query),
            kind=tag.kind,
            entity_type=tag.entity_type or tag.kind,
            entity_id=tag.entity_id,
            entity_name=tag.entity_name,
            query=query,
            results=results,
            fetched_at=fetched_at,
            expires_at=fetched_at + self.ttl_for(tag.kind),
        )
        if not self.persist:
            logger.debug("cache_put_skipped hash=%s kind=%s", entry.query_hash[:12], tag.kind)
            return entry
        stored = self.store.insert(CACHE_TABLE, entry.model_dump(mode="json", exclude={"id"}))
        return entry.model_copy(update={"id": stored.get("id")})

    def invalidate(
        self, entity_type: str, entity_id: str, *, kind: CacheKind | None = None
    ) -> int:
        """Delete an entity's cached rows, optionally only those of one ``kind``."""
        filters: dict[str, Any] = {"entity_type": entity_type, "entity_id": entity_id}
        if kind is not None:
            filters["kind"] = kind
        rows = self.store.select(CACHE_TABLE, filters=filters)
        if not rows:
            return 0
        deleted = self.store.delete(CACHE_TABLE, [row["id"] for row in rows])
        logger.info(
            "cache_invalidate entity_type=%s entity_id=%s kind=%s deleted=%d",
            entity_type,
            entity_id,
            kind or "all",
            deleted,
        )
        return deleted

    def stats(self, *, now: datetime | None = None) -> CacheStats:
        current = now or self._clock()
        stats = CacheStats()
        for row in self.store.select(CACHE_TABLE):
            entry = CacheEntry.model_validate(row)
            stats.total_entries += 1
            if entry.expires_at <= current:
                stats.expired_entries += 1
            by_type = stats.by_entity_type
            by_type[entry.entity_type] = by_type.get(entry.entity_type, 0) + 1
        return stats
