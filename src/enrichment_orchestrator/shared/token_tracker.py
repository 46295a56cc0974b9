"""Token usage accumulator shared by the services of one logical batch."""

from __future__ import annotations

import threading
from collections.abc import Mapping

from pydantic import BaseModel

from enrichment_orchestrator.config.settings import ModelRate


class TokenUsage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt=self.prompt + other.prompt,
            completion=self.completion + other.completion,
            total=self.total + other.total,
        )


def cost_for_usage(usage: TokenUsage, rate: ModelRate) -> float:
    prompt_cost = usage.prompt / 1_000_000 * rate.prompt
    completion_cost = usage.completion / 1_000_000 * rate.completion
    return prompt_cost + completion_cost


def rate_for_model(rate_table: Mapping[str, ModelRate], model: str) -> ModelRate:
    rate = rate_table.get(model)
    if rate is None:
        raise KeyError(f"No rate configured for model '{model}'")
    return rate


class TokenTracker:
    """Thread-safe usage accumulator.

    One instance is created per batch and handed to every service taking part
    in it. Call ``reset()`` before reusing an instance for an unrelated batch.
    """

    def __init__(self, *, model: str | None = None) -> None:
        self.model = model
        self._lock = threading.Lock()
        self._total = TokenUsage()
        self._by_model: dict[str, TokenUsage] = {}
        self._calls = 0

    def track_usage(self, usage: TokenUsage, *, model: str | None = None) -> None:
        key = model or self.model or "unknown"
        with self._lock:
            self._total = self._total + usage
            self._by_model[key] = self._by_model.get(key, TokenUsage()) + usage
            self._calls += 1

    def get_total_usage(self) -> TokenUsage:
        with self._lock:
            return self._total.model_copy()

    def usage_by_model(self) -> dict[str, TokenUsage]:
        with self._lock:
            return {model: usage.model_copy() for model, usage in self._by_model.items()}

    @property
    def call_count(self) -> int:
        with self._lock:
            return self._calls

    def estimate_cost(self, rate_table: Mapping[str, ModelRate], model: str | None = None) -> float:
        """Price accumulated usage.

        With ``model`` given, all usage is priced at that model's rate;
        otherwise each model's share is priced at its own rate.
        """
        if model is not None:
            return cost_for_usage(self.get_total_usage(), rate_for_model(rate_table, model))
        return sum(
            cost_for_usage(usage, rate_for_model(rate_table, name))
            for name, usage in self.usage_by_model().items()
        )

    def reset(self) -> None:
        with self._lock:
            self._total = TokenUsage()
            self._by_model = {}
            self._calls = 0
