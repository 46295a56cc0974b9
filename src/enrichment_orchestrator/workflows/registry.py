"""Workflow lookup by name."""

from __future__ import annotations

from enrichment_orchestrator.workflows.base import BaseWorkflow
from enrichment_orchestrator.workflows.deps import WorkflowDependencies
from enrichment_orchestrator.workflows.manual_chef_addition import ManualChefAdditionWorkflow
from enrichment_orchestrator.workflows.partial_update import PartialUpdateWorkflow
from enrichment_orchestrator.workflows.refresh_stale_chef import RefreshStaleChefWorkflow
from enrichment_orchestrator.workflows.restaurant_status_sweep import (
    RestaurantStatusSweepWorkflow,
)

WORKFLOWS: dict[str, type[BaseWorkflow]] = {
    workflow.config.name: workflow
    for workflow in (
        ManualChefAdditionWorkflow,
        RefreshStaleChefWorkflow,
        RestaurantStatusSweepWorkflow,
        PartialUpdateWorkflow,
    )
}


class UnknownWorkflowError(KeyError):
    pass


def build_workflow(name: str, deps: WorkflowDependencies) -> BaseWorkflow:
    workflow_cls = WORKFLOWS.get(name)
    if workflow_cls is None:
        raise UnknownWorkflowError(name)
    return workflow_cls(deps)


def list_workflows() -> list[dict[str, object]]:
    return [
        {
            "name": workflow.config.name,
            "description": workflow.config.description,
            "max_cost_usd": workflow.config.max_cost_usd,
            "timeout_s": workflow.config.timeout_s,
            "allow_rollback": workflow.config.allow_rollback,
        }
        for workflow in WORKFLOWS.values()
    ]
