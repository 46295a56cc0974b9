"""Search result cache."""

from enrichment_orchestrator.cache.models import CachedResult, CacheEntry, CacheStats, CacheTag
from enrichment_orchestrator.cache.result_cache import ResultCache, hash_query, normalize_query

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheTag",
    "CachedResult",
    "ResultCache",
    "hash_query",
    "normalize_query",
]
