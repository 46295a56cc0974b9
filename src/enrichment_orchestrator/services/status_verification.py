"""Operating-status verification for a single restaurant."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, field_validator

from enrichment_orchestrator.cache.models import CacheTag
from enrichment_orchestrator.gateway.base import GenerationOptions, GenerationResult
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.services.base import ServiceResult, usage_fields
from enrichment_orchestrator.shared.result_parser import parse_and_validate
from enrichment_orchestrator.storage.models import RestaurantStatus

logger = logging.getLogger(__name__)

STATUS_SYSTEM_PROMPT = """You are a restaurant industry analyst verifying whether restaurants are currently open.

Search for current information about the restaurant to determine whether it is still operating.

Guidelines:
- Look for recent reviews, social media activity, or news articles.
- A restaurant is "closed" if there is clear evidence it shut down.
- A restaurant is "open" if there is recent activity (within 6 months).
- Mark as "unknown" if you cannot find conclusive information.
- Confidence: 0.9+ for clear evidence, 0.7-0.9 for likely, below 0.7 for uncertain.

Respond with ONLY a JSON object, starting immediately with {:
{"status": "open" or "closed" or "unknown", "confidence": 0.0 to 1.0, "reason": "Brief explanation"}"""


class StatusVerdict(BaseModel):
    status: RestaurantStatus
    confidence: float
    reason: str

    @field_validator("status", mode="before")
    @classmethod
    def _lower_status(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("confidence")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return max(0.0, min(value, 1.0))


class StatusVerificationResult(ServiceResult):
    restaurant_id: str
    restaurant_name: str
    status: RestaurantStatus = "unknown"
    confidence: float = 0.0
    reason: str = ""


class StatusVerificationService:
    def __init__(self, gateway: CallGateway) -> None:
        self.gateway = gateway

    def verify_status(
        self,
        restaurant_id: str,
        restaurant_name: str,
        *,
        chef_name: str | None = None,
        city: str | None = None,
        state: str | None = None,
    ) -> StatusVerificationResult:
        location = ", ".join(part for part in (city, state) if part) or "unknown location"
        prompt = f'Is the restaurant "{restaurant_name}" in {location} currently open?'
        if chef_name:
            prompt += f" It is associated with chef {chef_name}."
        prompt += " Check for recent reviews, closures, or news."

        generation: GenerationResult | None = None
        try:
            generation = self.gateway.generate(
                STATUS_SYSTEM_PROMPT,
                prompt,
                GenerationOptions(max_tokens=4000, search_context_size="low"),
                cache_as=CacheTag(
                    kind="operating_status",
                    entity_type="restaurant",
                    entity_id=restaurant_id,
                    entity_name=restaurant_name,
                ),
                label=f"status:{restaurant_name}",
            )
            verdict = parse_and_validate(generation.text, StatusVerdict)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "status_verification_failed restaurant=%s error=%s", restaurant_name, exc
            )
            return StatusVerificationResult(
                success=False,
                restaurant_id=restaurant_id,
                restaurant_name=restaurant_name,
                reason=f"Error: {exc}",
                error=str(exc),
                **usage_fields(generation),
            )

        return StatusVerificationResult(
            success=True,
            restaurant_id=restaurant_id,
            restaurant_name=restaurant_name,
            status=verdict.status,
            confidence=verdict.confidence,
            reason=verdict.reason,
            **usage_fields(generation),
        )
