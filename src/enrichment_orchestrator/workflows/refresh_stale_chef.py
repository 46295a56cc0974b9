"""Scoped re-enrichment of an existing chef. Every step is optional."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import BaseModel, Field

from enrichment_orchestrator.cache.models import CacheKind
from enrichment_orchestrator.storage.models import Restaurant
from enrichment_orchestrator.workflows.base import (
    BaseWorkflow,
    RunContext,
    StepOutcome,
    WorkflowConfig,
    WorkflowStep,
)
from enrichment_orchestrator.workflows.common import (
    ensure_success,
    generate_narrative,
    is_uuid,
    restaurant_outcome,
    save_discovered_restaurants,
    save_discovered_shows,
    service_outcome,
    verify_statuses,
)
from enrichment_orchestrator.workflows.models import CostEstimate, WorkflowInput

logger = logging.getLogger(__name__)

STATUS_MIN_CONFIDENCE = 0.7


class RefreshScope(BaseModel):
    bio: bool = False
    shows: bool = False
    restaurants: bool = False
    restaurant_status: bool = False
    narrative: bool = False


class RefreshStaleChefInput(WorkflowInput):
    chef_id: str
    chef_name: str
    scope: RefreshScope = Field(default_factory=RefreshScope)


class RefreshStaleChefWorkflow(BaseWorkflow[RefreshStaleChefInput]):
    config = WorkflowConfig(
        name="refresh-stale-chef",
        description="Re-run selected enrichment steps for an existing chef",
        max_cost_usd=10.0,
        timeout_s=900.0,
    )
    input_model = RefreshStaleChefInput

    def _validate(self, payload: RefreshStaleChefInput) -> list[str]:
        errors: list[str] = []
        if not is_uuid(payload.chef_id):
            errors.append("Invalid chef ID (must be UUID)")
        if not payload.chef_name.strip():
            errors.append("Chef name is required")
        if not any(payload.scope.model_dump().values()):
            errors.append("At least one scope flag must be enabled")
        return errors

    def _estimate(self, payload: RefreshStaleChefInput) -> CostEstimate:
        scope = payload.scope
        estimated = maximum = 0
        if scope.bio:
            estimated, maximum = estimated + 2000, maximum + 4000
        if scope.shows:
            estimated, maximum = estimated + 1500, maximum + 3000
        if scope.restaurants:
            estimated, maximum = estimated + 2500, maximum + 5000
        if scope.restaurant_status:
            count = len(self._open_restaurants(payload.chef_id)) if self.deps is not None else 0
            estimated, maximum = estimated + count * 500, maximum + count * 1000
        if scope.narrative:
            estimated, maximum = estimated + 3000, maximum + 6000
        return self.blended_estimate(estimated, maximum)

    def build_steps(
        self, payload: RefreshStaleChefInput, ctx: RunContext
    ) -> Iterable[WorkflowStep]:
        ctx.output.update(
            chef_id=payload.chef_id,
            chef_name=payload.chef_name,
            bio_updated=False,
            shows_updated=0,
            restaurants_updated=0,
            restaurants_deleted=0,
            statuses_verified=0,
            narrative_created=False,
        )
        scope = payload.scope
        steps: list[WorkflowStep] = []
        if scope.bio:
            steps.append(WorkflowStep("Enrich chef bio", lambda c: self._bio(payload, c)))
        if scope.shows:
            steps.append(WorkflowStep("Discover TV shows", lambda c: self._shows(payload, c)))
        if scope.restaurants:
            steps.append(
                WorkflowStep("Discover restaurants", lambda c: self._restaurants(payload, c))
            )
        if scope.restaurant_status:
            steps.append(
                WorkflowStep("Verify restaurant statuses", lambda c: self._statuses(payload, c))
            )
        if scope.narrative:
            steps.append(
                WorkflowStep(
                    "Generate chef narrative",
                    lambda c: generate_narrative(
                        c.deps, c, payload.chef_id, step_name="Generate chef narrative"
                    ),
                    enabled=not ctx.dry_run,
                    skip_reason="dry run",
                )
            )
        return steps

    def _open_restaurants(self, chef_id: str) -> list[Restaurant]:
        return self.dependencies.restaurants.find_for_verification(
            statuses=["open"], chef_id=chef_id
        )

    def _bio(self, payload: RefreshStaleChefInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        _forget_cached(ctx, payload.chef_id, "biography")
        result = deps.bio.enrich_bio(payload.chef_id, payload.chef_name)
        ensure_success("Enrich chef bio", result, fatal=False, code="bio_enrichment_failed")
        if result.bio is not None and not ctx.dry_run:
            deps.chefs.update_bio(
                payload.chef_id,
                mini_bio=result.bio.mini_bio,
                james_beard_status=result.bio.james_beard_status,
                notable_awards=result.bio.notable_awards,
            )
            ctx.output["bio_updated"] = True
        return service_outcome(result, bio_updated=ctx.output["bio_updated"])

    def _shows(self, payload: RefreshStaleChefInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        _forget_cached(ctx, payload.chef_id, "shows")
        result = deps.show_discovery.find_all_shows(payload.chef_id, payload.chef_name)
        ensure_success("Discover TV shows", result, fatal=False, code="show_discovery_failed")
        if result.shows and not ctx.dry_run:
            saved = save_discovered_shows(deps, payload.chef_id, payload.chef_name, result.shows)
            ctx.output["shows_updated"] = saved.saved
        return service_outcome(result, shows_saved=ctx.output["shows_updated"])

    def _restaurants(self, payload: RefreshStaleChefInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        _forget_cached(ctx, payload.chef_id, "venues")
        result = deps.restaurant_discovery.find_restaurants(payload.chef_id, payload.chef_name)
        ensure_success(
            "Discover restaurants", result, fatal=False, code="restaurant_discovery_failed"
        )
        saved = None
        if result.restaurants and not ctx.dry_run:
            saved = save_discovered_restaurants(
                deps, ctx, payload.chef_id, result.restaurants, step_name="Discover restaurants"
            )
            ctx.output["restaurants_updated"] = len(saved.new_ids)
            # An empty rediscovery never wipes the chef's restaurants.
            if saved.kept_ids:
                try:
                    ctx.output["restaurants_deleted"] = deps.restaurants.delete_stale(
                        payload.chef_id, saved.kept_ids
                    )
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "stale_cleanup_failed chef_id=%s error=%s", payload.chef_id, exc
                    )
                    ctx.add_error("stale_cleanup_failed", str(exc), step="Discover restaurants")
        return restaurant_outcome(
            result,
            saved,
            restaurants_added=ctx.output["restaurants_updated"],
            restaurants_deleted=ctx.output["restaurants_deleted"],
        )

    def _statuses(self, payload: RefreshStaleChefInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        restaurants = self._open_restaurants(payload.chef_id)
        summary = verify_statuses(
            deps,
            restaurants,
            dry_run=ctx.dry_run,
            min_confidence=STATUS_MIN_CONFIDENCE,
            chef_names={payload.chef_id: payload.chef_name},
            only_changed=False,
        )
        ctx.output["statuses_verified"] = len(summary.updated)
        return StepOutcome(
            usage=summary.usage,
            model=summary.model,
            metadata={
                "restaurants_checked": summary.processed,
                "statuses_verified": len(summary.updated),
                "failed": summary.failed,
            },
        )


def _forget_cached(ctx: RunContext, chef_id: str, kind: CacheKind) -> None:
    # A refresh must reach the backend; dry runs keep reading the cache.
    if not ctx.dry_run:
        ctx.deps.cache.invalidate("chef", chef_id, kind=kind)
