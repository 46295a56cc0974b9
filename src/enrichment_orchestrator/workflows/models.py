"""Run records produced by the workflow engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field

RunStatus = Literal["pending", "running", "completed", "failed"]
StepStatus = Literal["running", "completed", "failed", "skipped"]


class WorkflowInput(BaseModel):
    """Fields every workflow input carries."""

    dry_run: bool = False


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class CostEstimate(BaseModel):
    estimated_tokens: int
    estimated_usd: float
    max_tokens: int
    max_usd: float


class RunCost(BaseModel):
    tokens: int = 0
    usd: float = 0.0


class ErrorRecord(BaseModel):
    code: str
    message: str
    fatal: bool
    step: str | None = None


class StepRecord(BaseModel):
    index: int
    name: str
    status: StepStatus
    tokens_used: int | None = None
    cost_usd: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    started_at: datetime
    finished_at: datetime | None = None


class WorkflowRun(BaseModel):
    """Structured summary of one workflow invocation."""

    run_id: str
    workflow_name: str
    status: RunStatus = "pending"
    steps: list[StepRecord] = Field(default_factory=list)
    total_cost: RunCost = Field(default_factory=RunCost)
    errors: list[ErrorRecord] = Field(default_factory=list)
    output: dict[str, Any] | None = None
    estimate: CostEstimate | None = None
    dry_run: bool = False
    rollback_performed: bool = False
    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: int | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.status == "completed"
