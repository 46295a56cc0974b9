"""External call gateway and backends."""

from enrichment_orchestrator.gateway.base import (
    GenerationBackend,
    GenerationOptions,
    GenerationResult,
)
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.gateway.openai_responses import OpenAIResponsesBackend

__all__ = [
    "CallGateway",
    "GenerationBackend",
    "GenerationOptions",
    "GenerationResult",
    "OpenAIResponsesBackend",
]
