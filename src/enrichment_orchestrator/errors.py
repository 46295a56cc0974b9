"""Error taxonomy shared by the gateway, repositories, and workflow engine."""

from __future__ import annotations

from typing import Any


class EnrichmentError(Exception):
    """Base class for all orchestration errors."""

    code = "enrichment_error"


class ValidationError(EnrichmentError):
    """Input rejected before any cost was incurred. Never retried."""

    code = "validation_failed"

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid input")


class TransientExternalError(EnrichmentError):
    """External call failed in a way that is worth retrying."""

    code = "transient_external_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ExternalCallError(EnrichmentError):
    """External call failed permanently (bad request, auth, unparseable body)."""

    code = "external_call_failed"


class BudgetExceededError(EnrichmentError):
    """Worst-case cost estimate is above the workflow ceiling."""

    code = "budget_exceeded"

    def __init__(self, *, workflow_name: str, max_usd: float, ceiling_usd: float) -> None:
        self.workflow_name = workflow_name
        self.max_usd = max_usd
        self.ceiling_usd = ceiling_usd
        super().__init__(
            f"Estimated worst-case cost ${max_usd:.4f} exceeds ceiling "
            f"${ceiling_usd:.2f} for workflow '{workflow_name}'"
        )


class StepFatalError(EnrichmentError):
    """A step whose output later steps depend on has failed."""

    code = "step_failed"

    def __init__(
        self,
        step_name: str,
        message: str,
        *,
        code: str | None = None,
        usage: Any = None,
        model: str | None = None,
    ) -> None:
        self.step_name = step_name
        self.usage = usage
        self.model = model
        if code:
            self.code = code
        super().__init__(f"{step_name}: {message}")


class StepSoftError(EnrichmentError):
    """An optional step failed; the run continues."""

    code = "step_soft_failure"

    def __init__(
        self,
        step_name: str,
        message: str,
        *,
        code: str | None = None,
        usage: Any = None,
        model: str | None = None,
    ) -> None:
        self.step_name = step_name
        self.usage = usage
        self.model = model
        if code:
            self.code = code
        super().__init__(f"{step_name}: {message}")


class StepSkipped(Exception):
    """Raised by a step action to record the step as skipped."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class WorkflowTimeoutError(EnrichmentError):
    code = "timeout"


class PersistenceConflict(EnrichmentError):
    """A dedup gate blocked a write because the record already exists."""

    code = "persistence_conflict"

    def __init__(
        self,
        message: str,
        *,
        table: str,
        existing_id: str,
        confidence: float = 1.0,
        attempted: dict[str, Any] | None = None,
    ) -> None:
        self.table = table
        self.existing_id = existing_id
        self.confidence = confidence
        self.attempted = dict(attempted or {})
        super().__init__(message)


class RollbackError(EnrichmentError):
    """Compensation failed. Carries the run summary so partial progress stays visible."""

    code = "rollback_failed"

    def __init__(self, message: str, *, run: Any = None) -> None:
        self.run = run
        super().__init__(message)
