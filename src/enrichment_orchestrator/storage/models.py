"""Storage models shared by repositories, workflows, and the API."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator

RestaurantStatus = Literal["open", "closed", "unknown"]
DiscoveryType = Literal["show", "chef", "restaurant"]
DiscoveryStatus = Literal["pending", "approved", "rejected", "needs_review", "merged"]
ChangeType = Literal["insert", "update", "delete"]


class Chef(BaseModel):
    """Persisted chef record."""

    id: str
    name: str
    slug: str
    mini_bio: str | None = None
    james_beard_status: str | None = None
    notable_awards: list[str] = Field(default_factory=list)
    narrative: str | None = None
    last_enriched_at: datetime | None = None
    created_at: datetime | None = None


class Restaurant(BaseModel):
    """Persisted restaurant record, linked to the chef it was discovered through."""

    id: str
    name: str
    slug: str
    chef_id: str
    chef_role: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    address: str | None = None
    cuisine_tags: list[str] = Field(default_factory=list)
    price_tier: str | None = None
    website_url: str | None = None
    year_opened: int | None = None
    michelin_stars: int = 0
    awards: list[str] = Field(default_factory=list)
    status: RestaurantStatus = "unknown"
    status_confidence: float | None = None
    verification_source: str | None = None
    last_verified_at: datetime | None = None
    created_at: datetime | None = None


class Show(BaseModel):
    id: str
    name: str
    slug: str
    network: str | None = None


class ChefShow(BaseModel):
    id: str
    chef_id: str
    show_id: str
    season: str | None = None
    result: str | None = None
    is_primary: bool = False


class ShowDiscovery(BaseModel):
    kind: Literal["show"] = "show"
    name: str
    network: str | None = None
    season: str | None = None


class ChefDiscovery(BaseModel):
    kind: Literal["chef"] = "chef"
    name: str
    show_name: str | None = None


class RestaurantDiscovery(BaseModel):
    kind: Literal["restaurant"] = "restaurant"
    name: str
    city: str | None = None
    state: str | None = None
    address: str | None = None


DiscoveryPayload = Annotated[
    ShowDiscovery | ChefDiscovery | RestaurantDiscovery,
    Field(discriminator="kind"),
]


class PendingDiscovery(BaseModel):
    """A discovered fact awaiting human review before it reaches primary tables."""

    id: str
    discovery_type: DiscoveryType
    source_chef_id: str | None = None
    source_chef_name: str | None = None
    payload: DiscoveryPayload
    status: DiscoveryStatus = "pending"
    notes: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None


class AuditEntry(BaseModel):
    table_name: str
    record_id: str | None = None
    change_type: ChangeType
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    source: str
    confidence: float | None = None
    created_at: datetime | None = None


class DuplicateReview(BaseModel):
    """Possible duplicate flagged for a human decision."""

    id: str
    table_name: str
    record_id: str
    candidate_id: str
    confidence: float
    reasoning: str | None = None
    status: Literal["open", "resolved"] = "open"
    created_at: datetime | None = None


class ShowAppearance(BaseModel):
    """One TV appearance as reported by show discovery."""

    show_name: str = Field(validation_alias=AliasChoices("show_name", "showName"))
    season: str | None = None
    result: Literal["winner", "finalist", "contestant", "judge"] | None = None

    @field_validator("season", mode="before")
    @classmethod
    def _season_as_text(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("result", mode="before")
    @classmethod
    def _known_result(cls, value: Any) -> str | None:
        # Unknown or decorated labels ("Winner [1]") degrade to the closest known value or None.
        if value is None:
            return None
        lowered = str(value).lower()
        for known in ("winner", "finalist", "contestant", "judge"):
            if known in lowered:
                return known
        return None


class DiscoveredRestaurant(BaseModel):
    """Restaurant draft produced by discovery, before the dedup gate."""

    name: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    cuisine: list[str] | None = None
    price_range: str | None = Field(
        default=None, validation_alias=AliasChoices("price_range", "priceRange")
    )
    status: RestaurantStatus = "unknown"
    website: str | None = None
    role: str | None = None
    opened: int | None = None
    michelin_stars: int | None = Field(
        default=None, ge=0, le=3, validation_alias=AliasChoices("michelin_stars", "michelinStars")
    )
    awards: list[str] | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status_or_unknown(cls, value: Any) -> str:
        lowered = str(value or "").strip().lower()
        return lowered if lowered in ("open", "closed") else "unknown"
