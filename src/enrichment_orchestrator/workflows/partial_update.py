"""Single-concern update of one chef: shows, restaurants or narrative."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Literal

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
    is_uuid,
    narrative_context,
    restaurant_outcome,
    save_discovered_restaurants,
    save_discovered_shows,
    service_outcome,
)
from enrichment_orchestrator.workflows.models import CostEstimate, WorkflowInput

PartialUpdateMode = Literal["shows", "restaurants", "chef-narrative"]

_TOKEN_ALLOWANCES: dict[str, tuple[int, int]] = {
    "shows": (1500, 3000),
    "restaurants": (2500, 5000),
    "chef-narrative": (2000, 4000),
}


class PartialUpdateInput(WorkflowInput):
    mode: PartialUpdateMode
    target_id: str
    target_name: str
    context: dict[str, Any] | None = None


class PartialUpdateWorkflow(BaseWorkflow[PartialUpdateInput]):
    config = WorkflowConfig(
        name="partial-update",
        description="Refresh one concern of a chef without a full enrichment",
        max_cost_usd=2.0,
        timeout_s=300.0,
    )
    input_model = PartialUpdateInput

    def _validate(self, payload: PartialUpdateInput) -> list[str]:
        errors: list[str] = []
        if not is_uuid(payload.target_id):
            errors.append("Invalid target ID (must be UUID)")
        if not payload.target_name.strip():
            errors.append("Target name is required")
        return errors

    def _estimate(self, payload: PartialUpdateInput) -> CostEstimate:
        return self.blended_estimate(*_TOKEN_ALLOWANCES[payload.mode])

    def build_steps(
        self, payload: PartialUpdateInput, ctx: RunContext
    ) -> Iterable[WorkflowStep]:
        ctx.output.update(
            mode=payload.mode,
            target_id=payload.target_id,
            success=False,
            items_updated=0,
            narrative=None,
        )
        if payload.mode == "shows":
            return [
                WorkflowStep("Discover TV shows", lambda c: self._shows(payload, c), fatal=True)
            ]
        if payload.mode == "restaurants":
            return [
                WorkflowStep(
                    "Discover restaurants", lambda c: self._restaurants(payload, c), fatal=True
                )
            ]
        return [
            WorkflowStep(
                "Generate chef narrative", lambda c: self._narrative(payload, c), fatal=True
            )
        ]

    def _shows(self, payload: PartialUpdateInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        result = deps.show_discovery.find_all_shows(payload.target_id, payload.target_name)
        ensure_success("Discover TV shows", result, fatal=True, code="show_discovery_failed")
        if result.shows and not ctx.dry_run:
            saved = save_discovered_shows(
                deps, payload.target_id, payload.target_name, result.shows
            )
            ctx.output["items_updated"] = saved.saved
            deps.chefs.set_enrichment_timestamp(payload.target_id)
        ctx.output["success"] = True
        return service_outcome(result, shows_saved=ctx.output["items_updated"])

    def _restaurants(self, payload: PartialUpdateInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        result = deps.restaurant_discovery.find_restaurants(payload.target_id, payload.target_name)
        ensure_success(
            "Discover restaurants", result, fatal=True, code="restaurant_discovery_failed"
        )
        saved = None
        if result.restaurants and not ctx.dry_run:
            saved = save_discovered_restaurants(
                deps, ctx, payload.target_id, result.restaurants, step_name="Discover restaurants"
            )
            ctx.output["items_updated"] = len(saved.new_ids)
            deps.chefs.set_enrichment_timestamp(payload.target_id)
        ctx.output["success"] = True
        return restaurant_outcome(result, saved, restaurants_added=ctx.output["items_updated"])

    def _narrative(self, payload: PartialUpdateInput, ctx: RunContext) -> StepOutcome:
        deps = ctx.deps
        context = payload.context or narrative_context(deps, payload.target_id)
        if context is None:
            raise StepFatalError(
                "Generate chef narrative", "Chef not found in database", code="chef_not_found"
            )
        result = deps.bio.generate_narrative(payload.target_id, context)
        ensure_success(
            "Generate chef narrative", result, fatal=True, code="narrative_generation_failed"
        )
        ctx.output["narrative"] = result.narrative
        if result.narrative and not ctx.dry_run:
            deps.chefs.update_narrative(payload.target_id, result.narrative)
            ctx.output["items_updated"] = 1
        ctx.output["success"] = True
        return service_outcome(result, narrative_generated=bool(result.narrative))
