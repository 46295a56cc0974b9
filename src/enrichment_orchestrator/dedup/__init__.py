"""Duplicate detection: lexical prefilter, arbiter, and discovery identity."""

from enrichment_orchestrator.dedup.identity import DiscoveryIdentityChecker, IdentityMatch
from enrichment_orchestrator.dedup.lexical import PREFILTER_THRESHOLD, lexical_similarity
from enrichment_orchestrator.dedup.resolver import (
    MERGE_THRESHOLD,
    REVIEW_THRESHOLD,
    AdjudicationContext,
    CandidateEntity,
    DuplicateCandidatePair,
    DuplicateResolver,
    Verdict,
    build_pair,
)

__all__ = [
    "MERGE_THRESHOLD",
    "PREFILTER_THRESHOLD",
    "REVIEW_THRESHOLD",
    "AdjudicationContext",
    "CandidateEntity",
    "DiscoveryIdentityChecker",
    "DuplicateCandidatePair",
    "DuplicateResolver",
    "IdentityMatch",
    "Verdict",
    "build_pair",
    "lexical_similarity",
]
