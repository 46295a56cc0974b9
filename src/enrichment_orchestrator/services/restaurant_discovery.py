"""Discovery of the restaurants a chef currently works at."""

from __future__ import annotations

import logging

from pydantic import Field

from enrichment_orchestrator.cache.models import CacheTag
from enrichment_orchestrator.gateway.base import GenerationOptions, GenerationResult
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.services.base import ServiceResult, usage_fields
from enrichment_orchestrator.shared.result_parser import parse_list_and_validate
from enrichment_orchestrator.storage.models import DiscoveredRestaurant

logger = logging.getLogger(__name__)

RESTAURANT_SYSTEM_PROMPT = """You are a culinary industry expert finding CURRENT restaurants where TV chefs actively work.

Guidelines:
- Only include restaurants where the chef CURRENTLY has a significant role (owner, partner, executive chef).
- Do not include past restaurants, positions the chef has left, or closed restaurants.
- Be conservative: if unsure about current status, omit it.
- Cuisine tags should be specific ("Japanese", "New American", "Southern").
- Price range: $ (<$15/entree), $$ ($15-30), $$$ ($30-60), $$$$ ($60+).

Respond with ONLY a JSON object, starting immediately with {:
{
  "restaurants": [
    {
      "name": "Restaurant Name",
      "address": "123 Main St" or null,
      "city": "City",
      "state": "ST" or null,
      "country": "US",
      "cuisine": ["Cuisine Type"] or null,
      "price_range": "$$" or null,
      "status": "open" or "closed" or "unknown",
      "website": "https://..." or null,
      "role": "owner" or "executive_chef" or "partner" or "consultant" or null,
      "opened": 2020 or null,
      "michelin_stars": 0-3 or null,
      "awards": ["Award Name (Year)"] or null
    }
  ]
}"""


class RestaurantDiscoveryResult(ServiceResult):
    chef_id: str
    chef_name: str
    restaurants: list[DiscoveredRestaurant] = Field(default_factory=list)


class RestaurantDiscoveryService:
    def __init__(self, gateway: CallGateway, *, max_restaurants: int = 10) -> None:
        self.gateway = gateway
        self.max_restaurants = max_restaurants

    def find_restaurants(
        self,
        chef_id: str,
        chef_name: str,
        show_name: str | None = None,
        *,
        season: str | None = None,
        result: str | None = None,
    ) -> RestaurantDiscoveryResult:
        context = ""
        if show_name:
            context = f" ({show_name} {season})" if season else f" ({show_name})"
        if result:
            context += f", {result}"
        prompt = (
            f"Find ONLY current restaurants where chef {chef_name}{context} currently works "
            "as owner, partner, executive chef or culinary director.\n\n"
            "Only include restaurants where the chef is actively working now and the "
            "restaurant is currently open."
        )

        generation: GenerationResult | None = None
        try:
            generation = self.gateway.generate(
                RESTAURANT_SYSTEM_PROMPT,
                prompt,
                GenerationOptions(max_tokens=6000, max_steps=20, search_context_size="medium"),
                cache_as=CacheTag(
                    kind="venues", entity_type="chef", entity_id=chef_id, entity_name=chef_name
                ),
                label=f"restaurants:{chef_name}",
            )
            restaurants = parse_list_and_validate(
                generation.text, DiscoveredRestaurant, key="restaurants"
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("restaurant_discovery_failed chef=%s error=%s", chef_name, exc)
            return RestaurantDiscoveryResult(
                success=False,
                chef_id=chef_id,
                chef_name=chef_name,
                error=str(exc),
                **usage_fields(generation),
            )

        return RestaurantDiscoveryResult(
            success=True,
            chef_id=chef_id,
            chef_name=chef_name,
            restaurants=restaurants[: self.max_restaurants],
            **usage_fields(generation),
        )
