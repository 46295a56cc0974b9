"""Single entry point for external generative calls.

Composes backend, retry schedule, result cache and usage tracker so that
services never talk to a backend directly.
"""

from __future__ import annotations

import logging

from enrichment_orchestrator.cache.models import CacheTag
from enrichment_orchestrator.cache.result_cache import ResultCache
from enrichment_orchestrator.gateway.base import (
    GenerationBackend,
    GenerationOptions,
    GenerationResult,
)
from enrichment_orchestrator.shared.retry import DEFAULT_POLICY, RetryPolicy, with_retry
from enrichment_orchestrator.shared.token_tracker import TokenTracker, TokenUsage

logger = logging.getLogger(__name__)


class CallGateway:
    def __init__(
        self,
        backend: GenerationBackend,
        *,
        tracker: TokenTracker,
        cache: ResultCache | None = None,
        retry_policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        self.backend = backend
        self.tracker = tracker
        self.cache = cache
        self.retry_policy = retry_policy

    @property
    def model(self) -> str:
        return self.backend.model

    def with_cache(self, cache: ResultCache | None) -> CallGateway:
        """Same backend, tracker and retry policy over a different cache."""
        return CallGateway(
            self.backend, tracker=self.tracker, cache=cache, retry_policy=self.retry_policy
        )

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions | None = None,
        *,
        cache_as: CacheTag | None = None,
        label: str = "",
    ) -> GenerationResult:
        """Run one generation.

        With ``cache_as`` set, a fresh cached answer for the same prompt is
        returned with zero usage and ``from_cache=True``; otherwise the
        backend is called under the retry policy, usage is tracked, and a
        non-empty answer is written back to the cache.
        """
        resolved = options or GenerationOptions()
        cache_query: str | None = None
        if cache_as is not None and self.cache is not None:
            cache_query = f"{cache_as.kind}\n{system_prompt}\n{user_prompt}"
            cached = self.cache.get(cache_query)
            if cached is not None and isinstance(cached.results, dict):
                logger.debug("gateway_cache_hit label=%s kind=%s", label, cache_as.kind)
                return GenerationResult(
                    text=str(cached.results.get("text") or ""),
                    usage=TokenUsage(),
                    finish_reason="cached",
                    model=str(cached.results.get("model") or self.backend.model),
                    from_cache=True,
                )

        result = with_retry(
            lambda: self.backend.generate(system_prompt, user_prompt, resolved),
            policy=self.retry_policy,
            label=label or "generate",
        )
        self.tracker.track_usage(result.usage, model=result.model)
        logger.info(
            "gateway_call label=%s model=%s tokens=%d finish=%s",
            label or "generate",
            result.model,
            result.usage.total,
            result.finish_reason,
        )

        if cache_query is not None and self.cache is not None and result.text.strip():
            self.cache.put(cache_query, {"text": result.text, "model": result.model}, cache_as)
        return result
