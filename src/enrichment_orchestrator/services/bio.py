"""Chef biography, awards, and narrative generation."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from enrichment_orchestrator.cache.models import CacheTag
from enrichment_orchestrator.gateway.base import GenerationOptions, GenerationResult
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.services.base import ServiceResult, usage_fields
from enrichment_orchestrator.shared.result_parser import parse_and_validate, strip_citations

logger = logging.getLogger(__name__)

BIO_SYSTEM_PROMPT = """You are a culinary industry expert. Search the web for biographical information about this chef.

Find:
1. A brief bio (2-3 sentences about their career and culinary style)
2. James Beard Award status if any (winner, nominated, semifinalist)
3. Notable culinary awards (Michelin Guide recognition, World's 50 Best, AAA Five Diamond, etc.)

Focus ONLY on biographical info and awards. Do NOT search for restaurants or TV shows.
Be conservative: if unsure about a detail, omit it.

Respond with ONLY valid JSON, without citation markers:
{
  "mini_bio": "2-3 sentence bio",
  "james_beard_status": null or "winner" or "nominated" or "semifinalist",
  "notable_awards": ["Award Name (Year)"] or null
}"""

NARRATIVE_SYSTEM_PROMPT = """You write short editorial profiles of chefs for a restaurant guide.

Using ONLY the facts provided, write 2 paragraphs (120-180 words) describing the chef's
career, television appearances and current restaurants. Do not invent facts.

Respond with ONLY valid JSON: {"narrative": "..."}"""

_JAMES_BEARD_STATUSES = frozenset({"winner", "nominated", "semifinalist"})


class ChefBio(BaseModel):
    mini_bio: str = Field(validation_alias=AliasChoices("mini_bio", "miniBio"))
    james_beard_status: str | None = Field(
        default=None, validation_alias=AliasChoices("james_beard_status", "jamesBeardStatus")
    )
    notable_awards: list[str] | None = Field(
        default=None, validation_alias=AliasChoices("notable_awards", "notableAwards")
    )

    @field_validator("mini_bio")
    @classmethod
    def _clean_bio(cls, value: str) -> str:
        return strip_citations(value) or value

    @field_validator("james_beard_status", mode="before")
    @classmethod
    def _clean_status(cls, value: Any) -> str | None:
        if value is None:
            return None
        cleaned = (strip_citations(str(value)) or "").lower()
        return cleaned if cleaned in _JAMES_BEARD_STATUSES else None


class _NarrativePayload(BaseModel):
    narrative: str


class ChefBioResult(ServiceResult):
    chef_id: str
    chef_name: str
    bio: ChefBio | None = None


class NarrativeResult(ServiceResult):
    chef_id: str
    narrative: str | None = None


class ChefBioService:
    def __init__(self, gateway: CallGateway) -> None:
        self.gateway = gateway

    def enrich_bio(
        self,
        chef_id: str,
        chef_name: str,
        show_name: str | None = None,
        *,
        season: str | None = None,
        result: str | None = None,
    ) -> ChefBioResult:
        prompt = f"Research chef {chef_name}"
        if show_name:
            prompt += f" who appeared on {show_name}"
        if season:
            prompt += f" ({season})"
        if result:
            prompt += f" as {result}"
        prompt += (
            ".\n\nFind their professional bio (2-3 sentences), James Beard Award status, "
            "and notable culinary awards."
        )

        generation: GenerationResult | None = None
        try:
            generation = self.gateway.generate(
                BIO_SYSTEM_PROMPT,
                prompt,
                GenerationOptions(max_tokens=4000, search_context_size="low"),
                cache_as=CacheTag(
                    kind="biography", entity_type="chef", entity_id=chef_id, entity_name=chef_name
                ),
                label=f"bio:{chef_name}",
            )
            bio = parse_and_validate(generation.text, ChefBio)
        except Exception as exc:  # noqa: BLE001
            logger.warning("bio_enrichment_failed chef=%s error=%s", chef_name, exc)
            return ChefBioResult(
                success=False,
                chef_id=chef_id,
                chef_name=chef_name,
                error=str(exc),
                **usage_fields(generation),
            )
        return ChefBioResult(
            success=True,
            chef_id=chef_id,
            chef_name=chef_name,
            bio=bio,
            **usage_fields(generation),
        )

    def generate_narrative(self, chef_id: str, context: dict[str, Any]) -> NarrativeResult:
        prompt = "Chef facts:\n" + json.dumps(context, ensure_ascii=True, default=str)
        generation: GenerationResult | None = None
        try:
            generation = self.gateway.generate(
                NARRATIVE_SYSTEM_PROMPT,
                prompt,
                GenerationOptions(max_tokens=3000, use_web_search=False),
                label=f"narrative:{chef_id}",
            )
            payload = parse_and_validate(generation.text, _NarrativePayload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("narrative_failed chef_id=%s error=%s", chef_id, exc)
            return NarrativeResult(
                success=False, chef_id=chef_id, error=str(exc), **usage_fields(generation)
            )
        return NarrativeResult(
            success=True,
            chef_id=chef_id,
            narrative=payload.narrative.strip(),
            **usage_fields(generation),
        )
