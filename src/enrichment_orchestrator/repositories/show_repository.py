"""Show lookup and chef-show links."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import BaseModel, Field

from enrichment_orchestrator.shared.names import identity_key, resolve_show_alias, slugify
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.models import ChefShow, Show, ShowAppearance

logger = logging.getLogger(__name__)

SHOW_TABLE = "shows"
CHEF_SHOW_TABLE = "chef_shows"

# Keyed by ``identity_key`` of the show name as models tend to phrase it.
SHOW_SLUGS: dict[str, str] = {
    "top chef": "top-chef",
    "top chef masters": "top-chef-masters",
    "top chef just desserts": "top-chef-just-desserts",
    "top chef junior": "top-chef-junior",
    "top chef duels": "top-chef-duels",
    "top chef amateurs": "top-chef-amateurs",
    "top chef family style": "top-chef-family-style",
    "top chef estrellas": "top-chef-estrellas",
    "top chef vip": "top-chef-vip",
    "top chef canada": "top-chef-canada",
    "iron chef": "iron-chef",
    "iron chef america": "iron-chef-america",
    "tournament of champions": "tournament-of-champions",
    "guys tournament of champions": "tournament-of-champions",
    "chopped": "chopped",
    "chopped champions": "chopped-champions",
    "chopped sweets": "chopped-sweets",
    "beat bobby flay": "beat-bobby-flay",
    "hells kitchen": "hells-kitchen",
    "masterchef": "masterchef",
    "masterchef us": "masterchef",
    "next level chef": "next-level-chef",
    "guys grocery games": "guys-grocery-games",
    "cutthroat kitchen": "cutthroat-kitchen",
    "worst cooks in america": "worst-cooks-in-america",
}


class ChefShowSaveResult(BaseModel):
    saved: int = 0
    skipped: int = 0
    unknown_shows: list[str] = Field(default_factory=list)


class ShowRepository:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def create(self, name: str, *, network: str | None = None) -> Show:
        existing = self.find_show(name)
        if existing is not None:
            return existing
        slug = SHOW_SLUGS.get(identity_key(name)) or slugify(name)
        row = self.store.insert(
            SHOW_TABLE, {"name": name.strip(), "slug": slug, "network": network}
        )
        return Show.model_validate(row)

    def find_show(self, name: str) -> Show | None:
        slug = SHOW_SLUGS.get(identity_key(name))
        if slug:
            rows = self.store.select(SHOW_TABLE, filters={"slug": slug}, limit=1)
            if rows:
                return Show.model_validate(rows[0])

        wanted = resolve_show_alias(name)
        for row in self.store.select(SHOW_TABLE):
            if resolve_show_alias(str(row.get("name") or "")) == wanted:
                return Show.model_validate(row)
        return None

    def find_chef_shows(self, chef_id: str) -> list[ChefShow]:
        rows = self.store.select(CHEF_SHOW_TABLE, filters={"chef_id": chef_id})
        return [ChefShow.model_validate(row) for row in rows]

    def save_chef_shows(
        self, chef_id: str, appearances: Iterable[ShowAppearance]
    ) -> ChefShowSaveResult:
        """Link the chef to every known show; unknown shows are reported, not created."""
        result = ChefShowSaveResult()
        for appearance in appearances:
            show = self.find_show(appearance.show_name)
            if show is None:
                logger.info("show_unknown chef_id=%s show=%s", chef_id, appearance.show_name)
                result.skipped += 1
                result.unknown_shows.append(appearance.show_name)
                continue

            season = appearance.season or None
            existing = self.store.select(
                CHEF_SHOW_TABLE,
                filters={"chef_id": chef_id, "show_id": show.id, "season": season},
                limit=1,
            )
            if existing:
                result.skipped += 1
                continue

            self.store.insert(
                CHEF_SHOW_TABLE,
                {
                    "chef_id": chef_id,
                    "show_id": show.id,
                    "season": season,
                    "result": appearance.result or "contestant",
                    "is_primary": False,
                },
            )
            result.saved += 1
        return result
