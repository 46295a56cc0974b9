"""TV show appearance discovery."""

from __future__ import annotations

import logging

from pydantic import Field

from enrichment_orchestrator.cache.models import CacheTag
from enrichment_orchestrator.gateway.base import GenerationOptions, GenerationResult
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.services.base import ServiceResult, usage_fields
from enrichment_orchestrator.shared.result_parser import parse_list_and_validate
from enrichment_orchestrator.storage.models import ShowAppearance

logger = logging.getLogger(__name__)

SHOW_DISCOVERY_SYSTEM_PROMPT = """You are a TV cooking show expert with access to web search.

Use the web search tool to research the chef's TV appearances before answering:
1. Search for the chef's Wikipedia page, IMDb profile, or official website.
2. Search for their name together with specific show names (Top Chef, Tournament of Champions, etc.).
3. Search for news articles about their TV career.

Return ONLY a valid JSON array, starting immediately with [. Each item:
{"show_name": "Top Chef", "season": "Season 12" or null, "result": "winner" | "finalist" | "contestant" | "judge" | null}"""


class ShowDiscoveryResult(ServiceResult):
    chef_id: str
    chef_name: str
    shows: list[ShowAppearance] = Field(default_factory=list)


class ShowDiscoveryService:
    def __init__(self, gateway: CallGateway) -> None:
        self.gateway = gateway

    def find_all_shows(self, chef_id: str, chef_name: str) -> ShowDiscoveryResult:
        prompt = (
            f'Find every TV cooking show appearance by chef "{chef_name}", '
            "including competitions, judging roles and hosted shows, with season and result."
        )
        generation: GenerationResult | None = None
        try:
            generation = self.gateway.generate(
                SHOW_DISCOVERY_SYSTEM_PROMPT,
                prompt,
                GenerationOptions(max_tokens=8000, search_context_size="medium"),
                cache_as=CacheTag(
                    kind="shows", entity_type="chef", entity_id=chef_id, entity_name=chef_name
                ),
                label=f"shows:{chef_name}",
            )
            shows = parse_list_and_validate(generation.text, ShowAppearance)
        except Exception as exc:  # noqa: BLE001
            logger.warning("show_discovery_failed chef=%s error=%s", chef_name, exc)
            return ShowDiscoveryResult(
                success=False,
                chef_id=chef_id,
                chef_name=chef_name,
                error=str(exc),
                **usage_fields(generation),
            )

        logger.info("show_discovery chef=%s shows=%d", chef_name, len(shows))
        return ShowDiscoveryResult(
            success=True,
            chef_id=chef_id,
            chef_name=chef_name,
            shows=shows,
            **usage_fields(generation),
        )
