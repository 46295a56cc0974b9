"""Workflow engine.

A workflow declares an input model, a cost estimate and an ordered list of
steps. ``BaseWorkflow.run`` validates the input, gates on the worst-case cost,
executes the steps under a wall-clock timeout and returns a ``WorkflowRun``
summary. Workflow objects hold no per-run state; everything a run mutates
lives on its ``RunContext`` and ``RunLedger``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor, TimeoutError
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import ValidationError as PydanticValidationError

from enrichment_orchestrator.config.settings import ModelRate, default_model_rates
from enrichment_orchestrator.errors import (
    BudgetExceededError,
    RollbackError,
    StepFatalError,
    StepSkipped,
    ValidationError,
    WorkflowTimeoutError,
)
from enrichment_orchestrator.shared.token_tracker import TokenUsage, cost_for_usage
from enrichment_orchestrator.workflows.models import (
    CostEstimate,
    ErrorRecord,
    ValidationResult,
    WorkflowInput,
    WorkflowRun,
)
from enrichment_orchestrator.workflows.run_state import RunLedger

if TYPE_CHECKING:
    from enrichment_orchestrator.workflows.deps import WorkflowDependencies

logger = logging.getLogger(__name__)

TInput = TypeVar("TInput", bound=WorkflowInput)


@dataclass(frozen=True)
class WorkflowConfig:
    name: str
    description: str
    max_cost_usd: float
    timeout_s: float
    allow_rollback: bool = False
    model: str = "gpt-5-mini"


@dataclass
class StepOutcome:
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunContext:
    """Mutable state of one run, shared by its steps and its rollback.

    ``deps`` is what the steps use; a dry run gets a view that writes nothing
    back to the result cache.
    """

    run_id: str
    dry_run: bool
    ledger: RunLedger
    deps: WorkflowDependencies | None = None
    created_ids: dict[str, list[str]] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] = field(default_factory=dict)
    rollback_done: bool = False
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def track_created(self, table: str, record_id: str) -> bool:
        """Record a row for rollback.

        Returns False once rollback has started; the caller must then remove
        the row itself.
        """
        with self._lock:
            if self.rollback_done:
                return False
            self.created_ids.setdefault(table, []).append(record_id)
            return True

    def begin_rollback(self) -> bool:
        """Claim the run's single rollback. False if it was already claimed."""
        with self._lock:
            if self.rollback_done:
                return False
            self.rollback_done = True
            return True

    def add_error(
        self, code: str, message: str, *, fatal: bool = False, step: str | None = None
    ) -> None:
        self.ledger.add_error(code, message, fatal=fatal, step=step)


@dataclass(frozen=True)
class WorkflowStep:
    name: str
    action: Callable[[RunContext], StepOutcome | None]
    fatal: bool = False
    enabled: bool = True
    skip_reason: str | None = None


class BaseWorkflow(Generic[TInput]):
    config: ClassVar[WorkflowConfig]
    input_model: ClassVar[type[WorkflowInput]] = WorkflowInput

    def __init__(
        self,
        deps: WorkflowDependencies | None = None,
        *,
        rate_table: Mapping[str, ModelRate] | None = None,
        ceiling_usd: float | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.deps = deps
        if rate_table is None:
            rate_table = deps.rate_table if deps is not None else default_model_rates()
        self.rate_table = dict(rate_table)
        if ceiling_usd is None and deps is not None:
            ceiling_usd = deps.budget_ceilings_usd.get(self.config.name)
        self.ceiling_usd = self.config.max_cost_usd if ceiling_usd is None else ceiling_usd
        self.timeout_s = self.config.timeout_s if timeout_s is None else timeout_s
        self.model = deps.model if deps is not None else self.config.model

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def dependencies(self) -> WorkflowDependencies:
        if self.deps is None:
            raise RuntimeError(f"Workflow '{self.name}' was built without dependencies")
        return self.deps

    def parse_input(self, raw: TInput | Mapping[str, Any] | None) -> TInput:
        if isinstance(raw, self.input_model):
            return raw  # type: ignore[return-value]
        try:
            return self.input_model.model_validate(dict(raw or {}))  # type: ignore[return-value]
        except PydanticValidationError as exc:
            raise ValidationError(
                [
                    f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
                    for error in exc.errors()
                ]
            ) from exc

    def validate(self, raw: TInput | Mapping[str, Any] | None) -> ValidationResult:
        try:
            payload = self.parse_input(raw)
        except ValidationError as exc:
            return ValidationResult(valid=False, errors=exc.errors)
        errors = self._validate(payload)
        return ValidationResult(valid=not errors, errors=errors)

    def estimate_cost(self, raw: TInput | Mapping[str, Any] | None) -> CostEstimate:
        return self._estimate(self.parse_input(raw))

    def _validate(self, payload: TInput) -> list[str]:
        return []

    def _estimate(self, payload: TInput) -> CostEstimate:
        return CostEstimate(estimated_tokens=0, estimated_usd=0.0, max_tokens=0, max_usd=0.0)

    def build_steps(self, payload: TInput, ctx: RunContext) -> Iterable[WorkflowStep]:
        """Yield the steps of one run.

        Steps are consumed lazily, so a generator may decide later steps from
        what earlier ones left in ``ctx.state``.
        """
        raise NotImplementedError

    def build_output(self, payload: TInput, ctx: RunContext) -> dict[str, Any]:
        return dict(ctx.output)

    def rollback(self, ctx: RunContext) -> None:
        """Undo side effects recorded on ``ctx``. Must be safe to call twice."""

    def blended_estimate(self, estimated_tokens: int, max_tokens: int) -> CostEstimate:
        """Price token allowances at the average of the model's prompt and completion rates."""
        rate = self.rate_table.get(self.model) or self.rate_table.get(self.config.model)
        per_token = (rate.prompt + rate.completion) / 2 / 1_000_000 if rate is not None else 0.0
        return CostEstimate(
            estimated_tokens=estimated_tokens,
            estimated_usd=estimated_tokens * per_token,
            max_tokens=max_tokens,
            max_usd=max_tokens * per_token,
        )

    def step_cost(self, usage: TokenUsage | None, model: str | None = None) -> float:
        if usage is None or not (usage.prompt or usage.completion):
            return 0.0
        rate = self.rate_table.get(model or self.model) or self.rate_table.get(self.model)
        if rate is None:
            logger.warning(
                "workflow_cost event=unknown_rate workflow=%s model=%s", self.name, model
            )
            return 0.0
        return cost_for_usage(usage, rate)

    def run(
        self, raw: TInput | Mapping[str, Any] | None = None, *, dry_run: bool | None = None
    ) -> WorkflowRun:
        try:
            payload = self.parse_input(raw)
        except ValidationError as exc:
            return self._reject(RunLedger(self.name, dry_run=bool(dry_run)), exc.code, str(exc))
        if dry_run is not None:
            payload = payload.model_copy(update={"dry_run": dry_run})

        ledger = RunLedger(self.name, dry_run=payload.dry_run)
        errors = self._validate(payload)
        if errors:
            return self._reject(ledger, ValidationError.code, "; ".join(errors))

        estimate = self._estimate(payload)
        if estimate.max_usd > self.ceiling_usd:
            budget_error = BudgetExceededError(
                workflow_name=self.name, max_usd=estimate.max_usd, ceiling_usd=self.ceiling_usd
            )
            return self._reject(ledger, budget_error.code, str(budget_error))

        deps = self.deps
        if deps is not None and payload.dry_run:
            deps = deps.for_dry_run()
        ctx = RunContext(run_id=ledger.run_id, dry_run=payload.dry_run, ledger=ledger, deps=deps)
        ledger.begin(estimate)
        logger.info(
            "workflow_run event=start workflow=%s run_id=%s dry_run=%s max_usd=%.4f",
            self.name,
            ctx.run_id,
            ctx.dry_run,
            estimate.max_usd,
        )

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"workflow-{self.name}")
        try:
            future = pool.submit(self.execute_steps, payload, ctx)
            try:
                output = future.result(timeout=self.timeout_s)
            except TimeoutError:
                ledger.close()
                timeout = WorkflowTimeoutError(
                    f"Workflow '{self.name}' exceeded timeout of {self.timeout_s:g}s"
                )
                return self._fail(
                    ctx, ErrorRecord(code=timeout.code, message=str(timeout), fatal=True)
                )
            except StepFatalError as exc:
                return self._fail(ctx, None, reason=str(exc))
            except Exception as exc:  # noqa: BLE001
                return self._fail(
                    ctx, ErrorRecord(code="unexpected_error", message=str(exc), fatal=True)
                )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        run = ledger.finish("completed", output=output)
        logger.info(
            "workflow_run event=completed workflow=%s run_id=%s steps=%d cost_usd=%.4f",
            self.name,
            run.run_id,
            len(run.steps),
            run.total_cost.usd,
        )
        return run

    def execute_steps(self, payload: TInput, ctx: RunContext) -> dict[str, Any]:
        for step in self.build_steps(payload, ctx):
            if ctx.ledger.closed:
                break
            self._run_step(step, ctx)
        return self.build_output(payload, ctx)

    def _run_step(self, step: WorkflowStep, ctx: RunContext) -> None:
        index = ctx.ledger.start_step(step.name)
        if index < 0:
            return
        if not step.enabled:
            ctx.ledger.skip_step(index, step.skip_reason or "disabled")
            return

        try:
            outcome = step.action(ctx) or StepOutcome()
        except StepSkipped as skipped:
            ctx.ledger.skip_step(index, skipped.reason)
            return
        except Exception as exc:  # noqa: BLE001
            usage = getattr(exc, "usage", None)
            usage = usage if isinstance(usage, TokenUsage) else None
            cost_usd = self.step_cost(usage, getattr(exc, "model", None))
            ctx.ledger.fail_step(index, str(exc), usage=usage, cost_usd=cost_usd)
            code = getattr(exc, "code", None) or (
                "step_failed" if step.fatal else "step_soft_failure"
            )
            ctx.add_error(code, str(exc), fatal=step.fatal, step=step.name)
            if not step.fatal:
                return
            if isinstance(exc, StepFatalError):
                raise
            raise StepFatalError(step.name, str(exc), code=code) from exc

        ctx.ledger.complete_step(
            index,
            usage=outcome.usage,
            cost_usd=self.step_cost(outcome.usage, outcome.model),
            metadata=outcome.metadata,
        )

    def _reject(self, ledger: RunLedger, code: str, message: str) -> WorkflowRun:
        logger.warning(
            "workflow_run event=rejected workflow=%s run_id=%s code=%s message=%s",
            self.name,
            ledger.run_id,
            code,
            message,
        )
        return ledger.finish("failed", errors=[ErrorRecord(code=code, message=message, fatal=True)])

    def _fail(
        self, ctx: RunContext, error: ErrorRecord | None, *, reason: str | None = None
    ) -> WorkflowRun:
        ctx.ledger.close()
        terminal = [error] if error is not None else []
        rollback_performed = False
        if self.config.allow_rollback and not ctx.dry_run and ctx.begin_rollback():
            try:
                self.rollback(ctx)
                rollback_performed = True
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "workflow_run event=rollback_failed workflow=%s run_id=%s error=%s",
                    self.name,
                    ctx.run_id,
                    exc,
                )
                terminal.append(ErrorRecord(code=RollbackError.code, message=str(exc), fatal=True))
                run = ctx.ledger.finish("failed", errors=terminal)
                raise RollbackError(
                    f"Rollback failed for run {ctx.run_id}: {exc}", run=run
                ) from exc

        run = ctx.ledger.finish("failed", errors=terminal, rollback_performed=rollback_performed)
        logger.warning(
            "workflow_run event=failed workflow=%s run_id=%s reason=%s rollback=%s cost_usd=%.4f",
            self.name,
            run.run_id,
            reason or (error.message if error else "unknown"),
            rollback_performed,
            run.total_cost.usd,
        )
        return run
