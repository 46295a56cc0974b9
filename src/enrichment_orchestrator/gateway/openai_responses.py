"""OpenAI Responses API backend with the web search tool enabled."""

from __future__ import annotations

import json
from typing import Any
from urllib import error, request

from enrichment_orchestrator.errors import ExternalCallError, TransientExternalError
from enrichment_orchestrator.gateway.base import GenerationOptions, GenerationResult
from enrichment_orchestrator.shared.token_tracker import TokenUsage

_TRANSIENT_STATUS = frozenset({408, 409, 429, 500, 502, 503, 504})


class OpenAIResponsesBackend:
    """Single-attempt HTTP client; retries belong to ``CallGateway``."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 120.0,
    ) -> None:
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is missing")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s

    def generate(
        self, system_prompt: str, user_prompt: str, options: GenerationOptions
    ) -> GenerationResult:
        body = build_request_body(
            model=self.model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            options=options,
        )
        response_json = self._request_once(body)
        return parse_response(response_json, model=self.model)

    def _request_once(self, request_body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url.rstrip('/')}/responses"
        req = request.Request(
            url=url,
            data=json.dumps(request_body).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                raw = response.read().decode("utf-8")
        except error.HTTPError as exc:
            message = exc.read().decode("utf-8", errors="replace")
            text = f"LLM request failed with status {exc.code}: {message[:400]}"
            if exc.code in _TRANSIENT_STATUS:
                raise TransientExternalError(text, status_code=exc.code) from exc
            raise ExternalCallError(text) from exc
        except error.URLError as exc:
            raise TransientExternalError(f"LLM request network error: {exc.reason}") from exc
        except TimeoutError as exc:
            raise TransientExternalError(
                f"LLM request timed out after {self.timeout_s:.0f}s"
            ) from exc

        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ExternalCallError("LLM returned non-JSON response") from exc


def build_request_body(
    *, model: str, system_prompt: str, user_prompt: str, options: GenerationOptions
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": model,
        "instructions": system_prompt,
        "input": user_prompt,
        "max_output_tokens": options.max_tokens,
    }
    if options.use_web_search:
        body["tools"] = [
            {
                "type": "web_search_preview",
                "search_context_size": options.search_context_size,
            }
        ]
        body["max_tool_calls"] = options.max_steps
    return body


def parse_response(response_json: dict[str, Any], *, model: str) -> GenerationResult:
    parts: list[str] = []
    for item in response_json.get("output", []) or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for content in item.get("content", []) or []:
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                parts.append(content["text"])
    text = "".join(parts) or str(response_json.get("output_text") or "")

    usage_json = response_json.get("usage") or {}
    prompt_tokens = int(usage_json.get("input_tokens") or 0)
    completion_tokens = int(usage_json.get("output_tokens") or 0)
    usage = TokenUsage(
        prompt=prompt_tokens,
        completion=completion_tokens,
        total=int(usage_json.get("total_tokens") or prompt_tokens + completion_tokens),
    )

    finish_reason = str(response_json.get("status") or "completed")
    incomplete = response_json.get("incomplete_details")
    if isinstance(incomplete, dict) and incomplete.get("reason"):
        finish_reason = str(incomplete["reason"])

    return GenerationResult(
        text=text.strip(),
        usage=usage,
        finish_reason=finish_reason,
        model=model,
    )
