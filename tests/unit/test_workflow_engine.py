import threading
from collections.abc import Callable, Iterable

import pytest

from enrichment_orchestrator.errors import RollbackError, StepSkipped, StepSoftError
from enrichment_orchestrator.shared.token_tracker import TokenUsage
from enrichment_orchestrator.workflows.base import (
    BaseWorkflow,
    RunContext,
    StepOutcome,
    WorkflowConfig,
    WorkflowStep,
)
from enrichment_orchestrator.workflows.models import CostEstimate, WorkflowInput
from enrichment_orchestrator.workflows.run_state import RunLedger

USAGE = TokenUsage(prompt=1000, completion=1000, total=2000)
STEP_COST = 1000 / 1_000_000 * 0.25 + 1000 / 1_000_000 * 2.00


class _ToyInput(WorkflowInput):
    name: str = "toy"
    max_tokens: int = 1000


StepsFactory = Callable[[_ToyInput, RunContext], Iterable[WorkflowStep]]


class _ToyWorkflow(BaseWorkflow[_ToyInput]):
    config = WorkflowConfig(
        name="toy",
        description="Test workflow",
        max_cost_usd=1.0,
        timeout_s=5.0,
        allow_rollback=True,
    )
    input_model = _ToyInput

    def __init__(
        self,
        steps: StepsFactory,
        *,
        rollback_error: Exception | None = None,
        **kwargs,
    ) -> None:
        super().__init__(None, **kwargs)
        self._steps = steps
        self.rollback_error = rollback_error
        self.rollback_calls = 0

    def _validate(self, payload: _ToyInput) -> list[str]:
        return [] if payload.name.strip() else ["Name is required"]

    def _estimate(self, payload: _ToyInput) -> CostEstimate:
        return self.blended_estimate(payload.max_tokens // 2, payload.max_tokens)

    def build_steps(self, payload: _ToyInput, ctx: RunContext) -> Iterable[WorkflowStep]:
        return self._steps(payload, ctx)

    def rollback(self, ctx: RunContext) -> None:
        self.rollback_calls += 1
        if self.rollback_error is not None:
            raise self.rollback_error
        ctx.created_ids.clear()


def _charged(name: str) -> Callable[[RunContext], StepOutcome]:
    def action(ctx: RunContext) -> StepOutcome:
        ctx.track_created("things", name)
        ctx.output[name] = True
        return StepOutcome(usage=USAGE, model="gpt-5-mini", metadata={"step": name})

    return action


def _broken(ctx: RunContext) -> StepOutcome:
    raise RuntimeError("step broke")


def _three_steps(middle: Callable[[RunContext], StepOutcome], *, middle_fatal: bool = False):
    def factory(payload: _ToyInput, ctx: RunContext) -> list[WorkflowStep]:
        return [
            WorkflowStep("first", _charged("first"), fatal=True),
            WorkflowStep("second", middle, fatal=middle_fatal),
            WorkflowStep("third", _charged("third"), fatal=True),
        ]

    return factory


def test_successful_run_sums_step_costs() -> None:
    workflow = _ToyWorkflow(_three_steps(_charged("second")))

    run = workflow.run({"name": "demo"})

    assert run.success
    assert [step.status for step in run.steps] == ["completed"] * 3
    assert run.total_cost.usd == pytest.approx(3 * STEP_COST)
    assert run.total_cost.usd == pytest.approx(sum(step.cost_usd for step in run.steps))
    assert run.total_cost.tokens == 6000
    assert run.output == {"first": True, "second": True, "third": True}
    assert run.estimate.max_tokens == 1000
    assert run.steps[0].metadata == {"step": "first"}


def test_non_fatal_failure_continues_the_run() -> None:
    workflow = _ToyWorkflow(_three_steps(_broken))

    run = workflow.run({})

    assert run.status == "completed"
    assert [step.status for step in run.steps] == ["completed", "failed", "completed"]
    assert run.errors[0].code == "step_soft_failure"
    assert not run.errors[0].fatal
    assert run.errors[0].step == "second"
    assert workflow.rollback_calls == 0


def test_fatal_failure_stops_and_rolls_back_once() -> None:
    workflow = _ToyWorkflow(_three_steps(_broken, middle_fatal=True))

    run = workflow.run({})

    assert run.status == "failed"
    assert [step.status for step in run.steps] == ["completed", "failed"]
    assert run.rollback_performed
    assert workflow.rollback_calls == 1
    assert run.errors[0].code == "step_failed"
    assert run.errors[0].fatal
    assert run.total_cost.usd == pytest.approx(STEP_COST)


def test_dry_run_never_rolls_back() -> None:
    workflow = _ToyWorkflow(_three_steps(_broken, middle_fatal=True))

    run = workflow.run({}, dry_run=True)

    assert run.status == "failed"
    assert run.dry_run
    assert not run.rollback_performed
    assert workflow.rollback_calls == 0


def test_rollback_runs_at_most_once_per_run() -> None:
    workflow = _ToyWorkflow(_three_steps(_charged("second")))
    ledger = RunLedger("toy")
    ctx = RunContext(run_id=ledger.run_id, dry_run=False, ledger=ledger)

    first = workflow._fail(ctx, None, reason="first failure")
    second = workflow._fail(ctx, None, reason="second failure")

    assert workflow.rollback_calls == 1
    assert first.rollback_performed
    assert not second.rollback_performed


def test_rollback_failure_raises_with_run_summary() -> None:
    workflow = _ToyWorkflow(
        _three_steps(_broken, middle_fatal=True), rollback_error=RuntimeError("db down")
    )

    with pytest.raises(RollbackError) as exc_info:
        workflow.run({})

    run = exc_info.value.run
    assert run.status == "failed"
    assert [error.code for error in run.errors] == ["step_failed", "rollback_failed"]
    assert workflow.rollback_calls == 1


@pytest.mark.parametrize(
    "raw",
    [{"name": "  "}, {"max_tokens": "plenty"}],
)
def test_invalid_input_fails_with_zero_steps(raw) -> None:
    calls = []
    workflow = _ToyWorkflow(lambda payload, ctx: calls.append("built") or [])

    run = workflow.run(raw)

    assert run.status == "failed"
    assert run.steps == []
    assert run.errors[0].code == "validation_failed"
    assert calls == []


def test_validate_reports_field_errors() -> None:
    workflow = _ToyWorkflow(_three_steps(_charged("second")))

    result = workflow.validate({"max_tokens": "plenty"})

    assert not result.valid
    assert result.errors[0].startswith("max_tokens:")


def test_budget_gate_fails_before_any_step() -> None:
    calls = []
    workflow = _ToyWorkflow(lambda payload, ctx: calls.append("built") or [], ceiling_usd=0.0005)

    run = workflow.run({"max_tokens": 1000})

    assert run.status == "failed"
    assert run.steps == []
    assert run.total_cost.usd == 0.0
    assert run.errors[0].code == "budget_exceeded"
    assert calls == []


def test_timeout_fails_run_and_rolls_back() -> None:
    release = threading.Event()

    def slow(ctx: RunContext) -> StepOutcome:
        release.wait(5)
        return StepOutcome(usage=USAGE, model="gpt-5-mini")

    workflow = _ToyWorkflow(
        lambda payload, ctx: [
            WorkflowStep("first", _charged("first"), fatal=True),
            WorkflowStep("slow", slow, fatal=True),
            WorkflowStep("never", _charged("never"), fatal=True),
        ],
        timeout_s=0.2,
    )

    try:
        run = workflow.run({})
    finally:
        release.set()

    assert run.status == "failed"
    assert run.errors[-1].code == "timeout"
    assert [step.status for step in run.steps] == ["completed", "failed"]
    assert run.rollback_performed
    assert run.total_cost.usd == pytest.approx(STEP_COST)


def test_skipped_and_disabled_steps_are_recorded() -> None:
    def skip(ctx: RunContext) -> StepOutcome:
        raise StepSkipped("nothing to do")

    workflow = _ToyWorkflow(
        lambda payload, ctx: [
            WorkflowStep("skips", skip),
            WorkflowStep("off", _charged("off"), enabled=False, skip_reason="dry run"),
        ]
    )

    run = workflow.run({})

    assert run.success
    assert [step.status for step in run.steps] == ["skipped", "skipped"]
    assert run.steps[0].metadata == {"reason": "nothing to do"}
    assert run.steps[1].metadata == {"reason": "dry run"}
    assert run.total_cost.usd == 0.0


def test_failed_step_is_charged_for_reported_usage() -> None:
    def soft_fail(ctx: RunContext) -> StepOutcome:
        raise StepSoftError(
            "parse", "bad json", code="parse_failed", usage=USAGE, model="gpt-5-mini"
        )

    workflow = _ToyWorkflow(lambda payload, ctx: [WorkflowStep("parse", soft_fail)])

    run = workflow.run({})

    assert run.success
    assert run.steps[0].status == "failed"
    assert run.steps[0].cost_usd == pytest.approx(STEP_COST)
    assert run.total_cost.usd == pytest.approx(STEP_COST)
    assert run.errors[0].code == "parse_failed"


def test_steps_are_built_lazily_from_earlier_state() -> None:
    def factory(payload: _ToyInput, ctx: RunContext):
        yield WorkflowStep("fetch", lambda c: c.state.update(items=["a", "b"]) or StepOutcome())
        for item in ctx.state["items"]:
            yield WorkflowStep(f"handle {item}", _charged(item))

    run = _ToyWorkflow(factory).run({})

    assert [step.name for step in run.steps] == ["fetch", "handle a", "handle b"]


def test_unknown_model_rate_costs_nothing() -> None:
    workflow = _ToyWorkflow(_three_steps(_charged("second")), rate_table={})

    assert workflow.step_cost(USAGE, "unpriced-model") == 0.0
    assert workflow.step_cost(None) == 0.0
