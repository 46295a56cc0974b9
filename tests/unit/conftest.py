from __future__ import annotations

import json
import threading
from collections.abc import Callable
from typing import Any

import pytest

from enrichment_orchestrator.config.settings import Settings
from enrichment_orchestrator.errors import ExternalCallError
from enrichment_orchestrator.gateway.base import GenerationOptions, GenerationResult
from enrichment_orchestrator.shared.token_tracker import TokenUsage
from enrichment_orchestrator.storage.memory import InMemoryRecordStore
from enrichment_orchestrator.workflows.deps import WorkflowDependencies, build_dependencies

# User-prompt markers of each service call.
BIO = "Research chef"
SHOWS = "Find every TV cooking show"
RESTAURANTS = "Find ONLY current restaurants"
STATUS = "Is the restaurant"
NARRATIVE = "Chef facts:"
ADJUDICATE = "Compare these two restaurants"

Reply = str | Exception | Callable[[str], "str | Exception"]


class ScriptedBackend:
    """Test backend answering each prompt by the first matching marker."""

    def __init__(
        self,
        *,
        model: str = "gpt-5-mini",
        usage: TokenUsage | None = None,
    ) -> None:
        self.model = model
        self.usage = usage or TokenUsage(prompt=100, completion=50, total=150)
        self.calls: list[str] = []
        self._rules: list[tuple[str, Reply]] = []
        self._lock = threading.Lock()

    def on(self, marker: str, reply: Reply) -> ScriptedBackend:
        self._rules.append((marker, reply))
        return self

    def on_json(self, marker: str, payload: Any) -> ScriptedBackend:
        return self.on(marker, json.dumps(payload))

    def count(self, marker: str) -> int:
        with self._lock:
            return sum(1 for prompt in self.calls if marker in prompt)

    def generate(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> GenerationResult:
        with self._lock:
            self.calls.append(user_prompt)
        for marker, reply in self._rules:
            if marker not in user_prompt:
                continue
            text = reply(user_prompt) if callable(reply) else reply
            if isinstance(text, Exception):
                raise text
            return GenerationResult(text=text, usage=self.usage, model=self.model)
        raise ExternalCallError(f"no scripted reply for prompt: {user_prompt[:60]}")


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(retry_max_attempts=1, retry_base_delay_ms=0, sweep_concurrency=4)


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def deps(
    store: InMemoryRecordStore, backend: ScriptedBackend, settings: Settings
) -> WorkflowDependencies:
    return build_dependencies(store=store, backend=backend, settings=settings)
