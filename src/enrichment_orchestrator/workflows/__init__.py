"""Workflow engine and the enrichment workflows built on it."""

from enrichment_orchestrator.workflows.base import (
    BaseWorkflow,
    RunContext,
    StepOutcome,
    WorkflowConfig,
    WorkflowStep,
)
from enrichment_orchestrator.workflows.deps import WorkflowDependencies, build_dependencies
from enrichment_orchestrator.workflows.models import (
    CostEstimate,
    ErrorRecord,
    RunCost,
    StepRecord,
    ValidationResult,
    WorkflowInput,
    WorkflowRun,
)
from enrichment_orchestrator.workflows.pool import TaskOutcome, run_bounded
from enrichment_orchestrator.workflows.registry import (
    WORKFLOWS,
    UnknownWorkflowError,
    build_workflow,
    list_workflows,
)
from enrichment_orchestrator.workflows.run_state import RunLedger

__all__ = [
    "WORKFLOWS",
    "BaseWorkflow",
    "CostEstimate",
    "ErrorRecord",
    "RunContext",
    "RunCost",
    "RunLedger",
    "StepOutcome",
    "StepRecord",
    "TaskOutcome",
    "UnknownWorkflowError",
    "ValidationResult",
    "WorkflowConfig",
    "WorkflowDependencies",
    "WorkflowInput",
    "WorkflowRun",
    "WorkflowStep",
    "build_dependencies",
    "build_workflow",
    "list_workflows",
    "run_bounded",
]
