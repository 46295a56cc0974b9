"""Full enrichment of a chef added by hand.

Every step feeding a later one is fatal. Restaurants created before a fatal
failure are deleted again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from enrichment_orchestrator.errors import StepFatalError
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
)
from enrichment_orchestrator.workflows.models import CostEstimate, WorkflowInput

logger = logging.getLogger(__name__)


class ManualChefAdditionInput(WorkflowInput):
    chef_id: str
    chef_name: str
    initial_show_name: str
    initial_show_season: str | None = None
    initial_show_result: str | None = None
    skip_narrative: bool = False


class ManualChefAdditionWorkflow(BaseWorkflow[ManualChefAdditionInput]):
    config = WorkflowConfig(
        name="manual-chef-addition",
        description="Bio, shows, restaurants and narrative for a newly added chef",
        max_cost_usd=15.0,
        timeout_s=1200.0,
        allow_rollback=True,
    )
    input_model = ManualChefAdditionInput

    def _validate(self, payload: ManualChefAdditionInput) -> list[str]:
        errors: list[str] = []
        if not is_uuid(payload.chef_id):
            errors.append("Invalid chef ID (must be UUID)")
        if not payload.chef_name.strip():
            errors.append("Chef name is required")
        if not payload.initial_show_name.strip():
            errors.append("Initial show name is required")
        return errors

    def _estimate(self, payload: ManualChefAdditionInput) -> CostEstimate:
        estimated, maximum = 2000 + 1500 + 2500, 4000 + 3000 + 5000
        if not payload.skip_narrative:
            estimated += 2000
            maximum += 4000
        return self.blended_estimate(estimated, maximum)

    def build_steps(
        self, payload: ManualChefAdditionInput, ctx: RunContext
    ) -> Iterable[WorkflowStep]:
        ctx.output.update(
            chef_id=payload.chef_id,
            chef_name=payload.chef_name,
            bio_created=False,
            total_shows=0,
            total_restaurants=0,
            narrative_created=False,
        )
        narrative_skip = "skip_narrative requested" if payload.skip_narrative else "dry run"
        return [
            WorkflowStep(
                "Verify chef exists in database", lambda c: self._verify_chef(payload), fatal=True
            ),
            WorkflowStep("Enrich chef bio and awards", lambda c: self._bio(payload, c), fatal=True),
            WorkflowStep(
                "Discover all TV show appearances", lambda c: self._shows(payload, c), fatal=True
            ),
            WorkflowStep(
                "Discover restaurants", lambda c: self._restaurants(payload, c), fatal=True
            ),
            WorkflowStep(
                "Generate chef narrative",
                lambda c: generate_narrative(
                    c.deps, c, payload.chef_id, step_name="Generate chef narrative"
                ),
                enabled=not (payload.skip_narrative or ctx.dry_run),
                skip_reason=narrative_skip,
            ),
            WorkflowStep(
                "Update enrichment timestamp",
                lambda c: self._timestamp(payload),
                enabled=not ctx.dry_run,
                skip_reason="dry run",
            ),
        ]

    def rollback(self, ctx: RunContext) -> None:
        created = list(ctx.created_ids.get("restaurants", []))
        if not created:
            return
        deleted = self.dependencies.restaurants.delete_by_ids(created)
        ctx.created_ids["restaurants"] = []
        logger.info(
            "workflow_rollback workflow=%s run_id=%s restaurants_deleted=%d",
            self.name,
            ctx.run_id,
            deleted,
        )

    def _verify_chef(self, payload: ManualChefAdditionInput) -> StepOutcome:
        if self.dependencies.chefs.get(payload.chef_id) is None:
            raise StepFatalError(
                "Verify chef exists in database",
                "Chef not found in database",
                code="chef_not_found",
            )
        return StepOutcome(metadata={"chef_found": True})

    def _bio(self, payload: ManualChefAdditionInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        result = deps.bio.enrich_bio(
            payload.chef_id,
            payload.chef_name,
            payload.initial_show_name,
            season=payload.initial_show_season,
            result=payload.initial_show_result,
        )
        ensure_success(
            "Enrich chef bio and awards", result, fatal=True, code="bio_enrichment_failed"
        )
        if result.bio is not None and not ctx.dry_run:
            deps.chefs.update_bio(
                payload.chef_id,
                mini_bio=result.bio.mini_bio,
                james_beard_status=result.bio.james_beard_status,
                notable_awards=result.bio.notable_awards,
            )
            ctx.output["bio_created"] = True
        return service_outcome(result, bio_created=ctx.output["bio_created"])

    def _shows(self, payload: ManualChefAdditionInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        result = deps.show_discovery.find_all_shows(payload.chef_id, payload.chef_name)
        ensure_success(
            "Discover all TV show appearances", result, fatal=True, code="show_discovery_failed"
        )
        queued = 0
        if result.shows and not ctx.dry_run:
            saved = save_discovered_shows(deps, payload.chef_id, payload.chef_name, result.shows)
            ctx.output["total_shows"] = saved.saved
            queued = saved.queued
        return service_outcome(
            result,
            shows_found=len(result.shows),
            shows_saved=ctx.output["total_shows"],
            shows_queued=queued,
        )

    def _restaurants(self, payload: ManualChefAdditionInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        result = deps.restaurant_discovery.find_restaurants(
            payload.chef_id,
            payload.chef_name,
            payload.initial_show_name,
            season=payload.initial_show_season,
            result=payload.initial_show_result,
        )
        ensure_success(
            "Discover restaurants", result, fatal=True, code="restaurant_discovery_failed"
        )
        saved = None
        if result.restaurants and not ctx.dry_run:
            saved = save_discovered_restaurants(
                deps, ctx, payload.chef_id, result.restaurants, step_name="Discover restaurants"
            )
            ctx.output["total_restaurants"] = len(saved.new_ids)
        duplicates = saved.duplicates if saved is not None else 0
        return restaurant_outcome(
            result,
            saved,
            restaurants_found=len(result.restaurants),
            restaurants_added=ctx.output["total_restaurants"],
            duplicates_suppressed=duplicates,
        )

    def _timestamp(self, payload: ManualChefAdditionInput) -> StepOutcome:
        self.dependencies.chefs.set_enrichment_timestamp(payload.chef_id)
        return StepOutcome()
