"""Backend interface for generative calls with web search."""

from __future__ import annotations

from typing import Literal, Protocol

from pydantic import BaseModel, Field

from enrichment_orchestrator.shared.token_tracker import TokenUsage

SearchContextSize = Literal["low", "medium", "high"]


class GenerationOptions(BaseModel):
    max_tokens: int = Field(default=8000, ge=1)
    max_steps: int = Field(default=10, ge=1)
    search_context_size: SearchContextSize = "medium"
    use_web_search: bool = True


class GenerationResult(BaseModel):
    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: str = "stop"
    model: str
    from_cache: bool = False


class GenerationBackend(Protocol):
    model: str

    def generate(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> GenerationResult: ...
