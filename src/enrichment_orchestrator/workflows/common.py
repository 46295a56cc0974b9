"""Step helpers shared by the chef and restaurant workflows."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from enrichment_orchestrator.errors import StepFatalError, StepSkipped, StepSoftError
from enrichment_orchestrator.repositories.discovery_repository import DiscoveryInput
from enrichment_orchestrator.services.base import ServiceResult
from enrichment_orchestrator.services.status_verification import StatusVerificationResult
from enrichment_orchestrator.shared.retry import is_write_conflict, with_retry_result
from enrichment_orchestrator.shared.token_tracker import TokenUsage
from enrichment_orchestrator.storage.models import (
    DiscoveredRestaurant,
    Restaurant,
    ShowAppearance,
    ShowDiscovery,
)
from enrichment_orchestrator.workflows.base import RunContext, StepOutcome
from enrichment_orchestrator.workflows.deps import WorkflowDependencies
from enrichment_orchestrator.workflows.pool import run_bounded

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_uuid(value: str | None) -> bool:
    return bool(value) and UUID_PATTERN.match(value.strip()) is not None


def service_outcome(result: ServiceResult, **metadata: Any) -> StepOutcome:
    return StepOutcome(
        usage=result.usage,
        model=result.model,
        metadata=metadata | {"from_cache": result.from_cache},
    )


def ensure_success(
    step_name: str, result: ServiceResult, *, fatal: bool, code: str | None = None
) -> None:
    """Raise the step error for a failed service call, carrying its usage."""
    if result.success:
        return
    error_cls = StepFatalError if fatal else StepSoftError
    raise error_cls(
        step_name,
        result.error or "service call failed",
        code=code,
        usage=result.usage,
        model=result.model,
    )


@dataclass
class ShowSaveSummary:
    saved: int = 0
    skipped: int = 0
    queued: int = 0


def save_discovered_shows(
    deps: WorkflowDependencies,
    chef_id: str,
    chef_name: str,
    shows: Iterable[ShowAppearance],
) -> ShowSaveSummary:
    """Link known shows to the chef and queue unknown ones for review."""
    result = deps.shows.save_chef_shows(chef_id, shows)
    summary = ShowSaveSummary(saved=result.saved, skipped=result.skipped)
    if result.unknown_shows:
        batch = deps.discoveries.insert_batch(
            DiscoveryInput(
                payload=ShowDiscovery(name=name),
                source_chef_id=chef_id,
                source_chef_name=chef_name,
            )
            for name in dict.fromkeys(result.unknown_shows)
        )
        summary.queued = batch.inserted
    return summary


@dataclass
class RestaurantSaveSummary:
    kept_ids: list[str] = field(default_factory=list)
    new_ids: list[str] = field(default_factory=list)
    duplicates: int = 0
    flagged: int = 0
    failures: list[str] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str | None = None


def save_discovered_restaurants(
    deps: WorkflowDependencies,
    ctx: RunContext,
    chef_id: str,
    restaurants: Iterable[DiscoveredRestaurant],
    *,
    step_name: str,
) -> RestaurantSaveSummary:
    """Persist discovered restaurants through the dedup gate.

    New rows are tracked on ``ctx`` so a failed run can remove them. A row
    that cannot be saved is recorded as a non-fatal error. Saving stops once
    the run has ended, and a row created while its rollback was already
    running is deleted straight away.
    """
    summary = RestaurantSaveSummary()
    for restaurant in restaurants:
        if not restaurant.name or not restaurant.city:
            continue
        if ctx.ledger.closed:
            raise StepFatalError(step_name, "Run ended while saving restaurants", code="run_closed")
        saved = with_retry_result(
            partial(deps.restaurants.create_restaurant, chef_id, restaurant),
            is_write_conflict,
            policy=deps.retry_policy,
            label="create_restaurant",
        )
        summary.usage = summary.usage + saved.usage
        summary.model = summary.model or saved.model
        if not saved.success or saved.restaurant_id is None:
            message = f"{restaurant.name}: {saved.error or 'save failed'}"
            summary.failures.append(message)
            ctx.add_error("restaurant_save_failed", message, step=step_name)
            continue
        if saved.is_new and not ctx.track_created("restaurants", saved.restaurant_id):
            deps.restaurants.delete_by_ids([saved.restaurant_id])
            logger.warning(
                "late_restaurant_removed run_id=%s restaurant_id=%s",
                ctx.run_id,
                saved.restaurant_id,
            )
            raise StepFatalError(step_name, "Run ended while saving restaurants", code="run_closed")
        summary.kept_ids.append(saved.restaurant_id)
        if saved.is_new:
            summary.new_ids.append(saved.restaurant_id)
        if saved.is_duplicate:
            summary.duplicates += 1
        if saved.flagged_for_review:
            summary.flagged += 1
    return summary


def restaurant_outcome(
    result: ServiceResult, saved: RestaurantSaveSummary | None, **metadata: Any
) -> StepOutcome:
    """Step outcome for discovery plus whatever duplicate checks spent while saving."""
    outcome = service_outcome(result, **metadata)
    if saved is not None:
        outcome.usage = outcome.usage + saved.usage
        outcome.model = outcome.model or saved.model
        outcome.metadata["adjudication_tokens"] = saved.usage.total
    return outcome


def narrative_context(deps: WorkflowDependencies, chef_id: str) -> dict[str, Any] | None:
    """Facts about a chef for narrative generation, or None if the chef is gone."""
    chef = deps.chefs.get(chef_id)
    if chef is None:
        return None

    shows = []
    for link in deps.shows.find_chef_shows(chef_id):
        rows = deps.store.select("shows", filters={"id": link.show_id}, limit=1)
        shows.append(
            {
                "show_name": rows[0].get("name") if rows else "",
                "season": link.season,
                "result": link.result,
                "is_primary": link.is_primary,
            }
        )

    restaurants = [
        {
            "name": item.name,
            "city": item.city,
            "state": item.state,
            "cuisine_tags": item.cuisine_tags,
            "status": item.status,
        }
        for item in deps.restaurants.find_by_chef(chef_id)
    ]
    cities = list(
        dict.fromkeys(
            f"{item['city']}, {item['state']}" if item["state"] else str(item["city"])
            for item in restaurants
        )
    )
    return {
        "name": chef.name,
        "mini_bio": chef.mini_bio,
        "james_beard_status": chef.james_beard_status,
        "shows": shows,
        "restaurants": restaurants,
        "restaurant_count": len(restaurants),
        "cities": cities,
    }


def generate_narrative(
    deps: WorkflowDependencies, ctx: RunContext, chef_id: str, *, step_name: str
) -> StepOutcome:
    context = narrative_context(deps, chef_id)
    if context is None:
        raise StepSkipped("No context data available")
    result = deps.bio.generate_narrative(chef_id, context)
    ensure_success(step_name, result, fatal=False, code="narrative_failed")
    if result.narrative and not ctx.dry_run:
        deps.chefs.update_narrative(chef_id, result.narrative)
        ctx.output["narrative_created"] = True
    return service_outcome(result, narrative_created=bool(ctx.output.get("narrative_created")))


@dataclass
class StatusUpdate:
    restaurant_id: str
    restaurant_name: str
    old_status: str
    new_status: str
    confidence: float


@dataclass
class StatusBatchSummary:
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str | None = None
    processed: int = 0
    updated: list[StatusUpdate] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0


def verify_statuses(
    deps: WorkflowDependencies,
    restaurants: Sequence[Restaurant],
    *,
    dry_run: bool,
    min_confidence: float = 0.7,
    chef_names: Mapping[str, str] | None = None,
    only_changed: bool = True,
    concurrency: int | None = None,
) -> StatusBatchSummary:
    """Verify operating status for ``restaurants`` through the bounded pool.

    A verdict is applied when it is confident, not ``unknown`` and, with
    ``only_changed``, different from the stored status.
    """
    names = chef_names or {}

    def verify(restaurant: Restaurant) -> StatusVerificationResult:
        return deps.status.verify_status(
            restaurant.id,
            restaurant.name,
            chef_name=names.get(restaurant.chef_id or ""),
            city=restaurant.city,
            state=restaurant.state,
        )

    summary = StatusBatchSummary()
    outcomes = run_bounded(
        restaurants,
        verify,
        concurrency=max(1, min(concurrency or deps.sweep_concurrency, len(restaurants) or 1)),
    )
    for outcome in outcomes:
        summary.processed += 1
        restaurant = outcome.item
        result = outcome.value
        if result is None:
            logger.warning(
                "status_verification_error restaurant_id=%s error=%s", restaurant.id, outcome.error
            )
            summary.failed += 1
            continue
        summary.usage = summary.usage + result.usage
        summary.model = summary.model or result.model
        if not result.success:
            summary.failed += 1
            continue
        if result.confidence < min_confidence or result.status == "unknown":
            summary.skipped += 1
            continue
        if only_changed and result.status == restaurant.status:
            summary.skipped += 1
            continue
        if not dry_run and deps.restaurants.update_status(
            restaurant.id, result.status, result.confidence, result.reason
        ) is None:
            summary.failed += 1
            continue
        summary.updated.append(
            StatusUpdate(
                restaurant_id=restaurant.id,
                restaurant_name=restaurant.name,
                old_status=restaurant.status,
                new_status=result.status,
                confidence=result.confidence,
            )
        )
    return summary
