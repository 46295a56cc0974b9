"""Leaf utilities: retry, token accounting, parsing, and name normalization."""

from enrichment_orchestrator.shared.retry import (
    RetryPolicy,
    is_transient_error,
    is_transient_persistence_error,
    is_write_conflict,
    retryable,
    with_retry,
    with_retry_result,
)
from enrichment_orchestrator.shared.token_tracker import TokenTracker, TokenUsage, cost_for_usage

__all__ = [
    "RetryPolicy",
    "TokenTracker",
    "TokenUsage",
    "cost_for_usage",
    "is_transient_error",
    "is_transient_persistence_error",
    "is_write_conflict",
    "retryable",
    "with_retry",
    "with_retry_result",
]
