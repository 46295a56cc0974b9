"""Cache records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

CacheKind = Literal["biography", "shows", "venues", "operating_status", "adjudication"]


class CacheTag(BaseModel):
    """What a cached query was about; drives TTL and invalidation."""

    kind: CacheKind
    entity_type: str | None = None
    entity_id: str | None = None
    entity_name: str | None = None


class CacheEntry(BaseModel):
    id: str | None = None
    query_hash: str
    kind: CacheKind
    entity_type: str
    entity_id: str | None = None
    entity_name: str | None = None
    query: str
    results: Any = None
    fetched_at: datetime
    expires_at: datetime


class CachedResult(BaseModel):
    query: str
    results: Any = None
    from_cache: bool = True
    cached_at: datetime


class CacheStats(BaseModel):
    total_entries: int = 0
    expired_entries: int = 0
    by_entity_type: dict[str, int] = Field(default_factory=dict)
