"""Shared result shape for enrichment services."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from enrichment_orchestrator.gateway.base import GenerationResult
from enrichment_orchestrator.shared.token_tracker import TokenUsage


class ServiceResult(BaseModel):
    """Outcome of one service call.

    ``usage`` reports what the call consumed even when parsing failed, so step
    cost stays accurate.
    """

    success: bool
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str | None = None
    from_cache: bool = False
    error: str | None = None


def usage_fields(generation: GenerationResult | None) -> dict[str, Any]:
    """Result fields describing what ``generation`` consumed."""
    if generation is None:
        return {}
    return {
        "usage": generation.usage,
        "model": generation.model,
        "from_cache": generation.from_cache,
    }
