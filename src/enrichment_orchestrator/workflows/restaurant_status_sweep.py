"""Operating-status sweep over a set of restaurants.

Restaurants are picked by id or by criteria, then verified batch by batch.
Each batch is one step and fans out through the bounded worker pool; a
failing batch never stops the sweep.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import asdict
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from enrichment_orchestrator.errors import StepSoftError
from enrichment_orchestrator.storage.models import Restaurant, RestaurantStatus
from enrichment_orchestrator.workflows.base import (
    BaseWorkflow,
    RunContext,
    StepOutcome,
    WorkflowConfig,
    WorkflowStep,
)
from enrichment_orchestrator.workflows.common import is_uuid, verify_statuses
from enrichment_orchestrator.workflows.models import CostEstimate, WorkflowInput

logger = logging.getLogger(__name__)


class SweepCriteria(BaseModel):
    not_verified_in_days: int | None = Field(default=None, ge=1)
    status: RestaurantStatus | None = None
    chef_id: str | None = None


class RestaurantStatusSweepInput(WorkflowInput):
    restaurant_ids: list[str] | None = None
    criteria: SweepCriteria | None = None
    limit: int | None = Field(default=None, ge=1)
    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    batch_size: int = Field(default=10, ge=1, le=50)


class RestaurantStatusSweepWorkflow(BaseWorkflow[RestaurantStatusSweepInput]):
    config = WorkflowConfig(
        name="restaurant-status-sweep",
        description="Verify and update restaurant operating status in batches",
        max_cost_usd=5.0,
        timeout_s=900.0,
    )
    input_model = RestaurantStatusSweepInput

    def _validate(self, payload: RestaurantStatusSweepInput) -> list[str]:
        errors: list[str] = []
        if payload.restaurant_ids is None and payload.criteria is None:
            errors.append("Must provide either restaurant_ids or criteria")
        if payload.restaurant_ids is not None and payload.criteria is not None:
            errors.append("Cannot provide both restaurant_ids and criteria")
        if payload.restaurant_ids is not None:
            if not payload.restaurant_ids:
                errors.append("restaurant_ids must not be empty")
            invalid = [item for item in payload.restaurant_ids if not is_uuid(item)]
            if invalid:
                errors.append(f"Invalid restaurant IDs (must be UUID): {', '.join(invalid[:5])}")
        if payload.criteria is not None and payload.criteria.chef_id is not None:
            if not is_uuid(payload.criteria.chef_id):
                errors.append("Invalid criteria chef ID (must be UUID)")
        return errors

    def _estimate(self, payload: RestaurantStatusSweepInput) -> CostEstimate:
        if payload.restaurant_ids is not None:
            count = len(payload.restaurant_ids)
            if payload.limit is not None:
                count = min(count, payload.limit)
        elif self.deps is not None:
            count = len(self._fetch(payload))
        else:
            count = payload.limit or 0
        return self.blended_estimate(count * 500, count * 1000)

    def build_steps(
        self, payload: RestaurantStatusSweepInput, ctx: RunContext
    ) -> Iterator[WorkflowStep]:
        ctx.output.update(
            total_processed=0,
            total_updated=0,
            total_skipped=0,
            total_failed=0,
            updates=[],
        )
        yield WorkflowStep(
            "Fetch restaurants to verify", lambda c: self._fetch_step(payload, c), fatal=True
        )

        restaurants: list[Restaurant] = ctx.state.get("restaurants", [])
        size = payload.batch_size
        batches = [restaurants[start : start + size] for start in range(0, len(restaurants), size)]
        for number, batch in enumerate(batches, start=1):
            yield WorkflowStep(
                f"Verify batch {number}/{len(batches)} ({len(batch)} restaurants)",
                lambda c, batch=batch: self._verify_batch(payload, c, batch),
            )

    def _fetch(self, payload: RestaurantStatusSweepInput) -> list[Restaurant]:
        repo = self.dependencies.restaurants
        if payload.restaurant_ids is not None:
            found = repo.find_by_ids(payload.restaurant_ids)
            return found[: payload.limit] if payload.limit is not None else found

        criteria = payload.criteria or SweepCriteria()
        verified_before = None
        if criteria.not_verified_in_days:
            verified_before = datetime.now(UTC) - timedelta(days=criteria.not_verified_in_days)
        return repo.find_for_verification(
            statuses=[criteria.status] if criteria.status else None,
            chef_id=criteria.chef_id,
            verified_before=verified_before,
            limit=payload.limit,
        )

    def _fetch_step(self, payload: RestaurantStatusSweepInput, ctx: RunContext) -> StepOutcome:
        restaurants = self._fetch(payload)
        chef_names: dict[str, str] = {}
        for chef_id in {item.chef_id for item in restaurants if item.chef_id}:
            chef = self.dependencies.chefs.get(chef_id)
            if chef is not None:
                chef_names[chef_id] = chef.name
        ctx.state["restaurants"] = restaurants
        ctx.state["chef_names"] = chef_names
        return StepOutcome(metadata={"restaurant_count": len(restaurants)})

    def _verify_batch(
        self,
        payload: RestaurantStatusSweepInput,
        ctx: RunContext,
        batch: list[Restaurant],
    ) -> StepOutcome:
        deps = ctx.deps
        try:
            summary = verify_statuses(
                deps,
                batch,
                dry_run=ctx.dry_run,
                min_confidence=payload.min_confidence,
                chef_names=ctx.state.get("chef_names"),
                concurrency=min(payload.batch_size, deps.sweep_concurrency),
            )
        except Exception as exc:  # noqa: BLE001
            raise StepSoftError(
                "Verify batch", str(exc), code="batch_verification_failed"
            ) from exc

        output = ctx.output
        output["total_processed"] += summary.processed
        output["total_updated"] += len(summary.updated)
        output["total_skipped"] += summary.skipped
        output["total_failed"] += summary.failed
        output["updates"].extend(asdict(update) for update in summary.updated)
        logger.info(
            "status_sweep_batch run_id=%s size=%d updated=%d failed=%d",
            ctx.run_id,
            len(batch),
            len(summary.updated),
            summary.failed,
        )
        return StepOutcome(
            usage=summary.usage,
            model=summary.model,
            metadata={
                "batch_size": len(batch),
                "updated": len(summary.updated),
                "skipped": summary.skipped,
                "failed": summary.failed,
            },
        )
