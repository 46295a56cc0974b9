"""Parse structured JSON out of free-form model text."""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from enrichment_orchestrator.errors import ExternalCallError

TModel = TypeVar("TModel", bound=BaseModel)

_CITATION_LINK = re.compile(r"\s*\(\[.*?\]\(.*?\)\)")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def strip_citations(value: str | None) -> str | None:
    """Remove web-search citation links that models append to values."""
    if not value:
        return None
    cleaned = _CITATION_LINK.sub("", value)
    cleaned = _MARKDOWN_LINK.sub(r"\1", cleaned)
    return cleaned.strip() or None


def strip_code_fences(raw_text: str) -> str:
    content = raw_text.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]
    return content.strip()


def extract_json_from_text(text: str, *, expect_array: bool = False) -> str:
    content = strip_code_fences(text)
    pattern = _JSON_ARRAY if expect_array else _JSON_OBJECT
    match = pattern.search(content)
    if match:
        return match.group(0)
    return content


def parse_json_payload(text: str, *, expect_array: bool = False) -> Any:
    if not text or not text.strip():
        raise ExternalCallError("Model returned an empty response")
    try:
        return json.loads(extract_json_from_text(text, expect_array=expect_array))
    except json.JSONDecodeError as exc:
        raise ExternalCallError(f"Invalid JSON in model response: {exc}") from exc


def parse_and_validate(text: str, model: type[TModel]) -> TModel:
    payload = parse_json_payload(text)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ExternalCallError(f"Validation failed: {_summarize_errors(exc)}") from exc


def parse_list_and_validate(
    text: str, item_model: type[TModel], *, key: str | None = None
) -> list[TModel]:
    """Validate a JSON array, an object wrapping it under ``key``, or one bare item."""
    payload = parse_json_payload(text, expect_array=key is None)
    if isinstance(payload, dict):
        payload = (payload.get(key) or []) if key and key in payload else [payload]
    try:
        return TypeAdapter(list[item_model]).validate_python(payload)
    except PydanticValidationError as exc:
        raise ExternalCallError(f"Validation failed: {_summarize_errors(exc)}") from exc


def _summarize_errors(exc: PydanticValidationError) -> str:
    parts = []
    for item in exc.errors()[:5]:
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return ", ".join(parts)
