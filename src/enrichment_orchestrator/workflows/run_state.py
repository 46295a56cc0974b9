"""Per-run step bookkeeping.

A ``RunLedger`` owns one ``WorkflowRun``. Every step moves from ``running`` to
exactly one of ``completed``, ``failed`` or ``skipped``; run cost is only ever
accumulated from those transitions. Once the ledger is closed (run finished or
timed out) step calls are ignored, so a worker abandoned by a timeout cannot
change the reported run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from enrichment_orchestrator.shared.token_tracker import TokenUsage
from enrichment_orchestrator.workflows.models import (
    CostEstimate,
    ErrorRecord,
    RunStatus,
    StepRecord,
    WorkflowRun,
)

logger = logging.getLogger(__name__)


class RunLedger:
    def __init__(
        self,
        workflow_name: str,
        *,
        dry_run: bool = False,
        run_id: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.Lock()
        self._closed = False
        self._run = WorkflowRun(
            run_id=run_id or str(uuid4()),
            workflow_name=workflow_name,
            dry_run=dry_run,
            started_at=self._clock(),
        )

    @property
    def run_id(self) -> str:
        return self._run.run_id

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def begin(self, estimate: CostEstimate | None = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._run.status = "running"
            self._run.estimate = estimate

    def start_step(self, name: str) -> int:
        with self._lock:
            if self._closed:
                return -1
            index = len(self._run.steps)
            self._run.steps.append(
                StepRecord(index=index, name=name, status="running", started_at=self._clock())
            )
        logger.info("workflow_step event=start run_id=%s step=%s", self.run_id, name)
        return index

    def complete_step(
        self,
        index: int,
        *,
        usage: TokenUsage | None = None,
        cost_usd: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        with self._lock:
            step = self._open_step(index)
            if step is None:
                return
            step.status = "completed"
            step.metadata = dict(metadata or {})
            self._charge(step, usage, cost_usd)

    def fail_step(
        self,
        index: int,
        error: str,
        *,
        usage: TokenUsage | None = None,
        cost_usd: float = 0.0,
    ) -> None:
        with self._lock:
            step = self._open_step(index)
            if step is None:
                return
            step.status = "failed"
            step.error = error
            self._charge(step, usage, cost_usd)
        logger.warning(
            "workflow_step event=failed run_id=%s step=%s error=%s", self.run_id, step.name, error
        )

    def skip_step(self, index: int, reason: str) -> None:
        with self._lock:
            step = self._open_step(index)
            if step is None:
                return
            step.status = "skipped"
            step.metadata = {"reason": reason}
            step.finished_at = self._clock()

    def add_error(self, code: str, message: str, *, fatal: bool, step: str | None = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._run.errors.append(ErrorRecord(code=code, message=message, fatal=fatal, step=step))

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def finish(
        self,
        status: RunStatus,
        *,
        output: dict[str, Any] | None = None,
        errors: Iterable[ErrorRecord] = (),
        rollback_performed: bool = False,
    ) -> WorkflowRun:
        """Close the ledger and return the final run summary.

        Any step still running is marked failed so no record is left open.
        """
        with self._lock:
            self._closed = True
            finished_at = self._clock()
            terminal = list(errors)
            for step in self._run.steps:
                if step.status == "running":
                    step.status = "failed"
                    step.error = (
                        terminal[0].message if terminal else "Run ended before the step finished"
                    )
                    step.finished_at = finished_at
            self._run.errors.extend(terminal)
            self._run.status = status
            self._run.output = output
            self._run.rollback_performed = rollback_performed
            self._run.finished_at = finished_at
            self._run.duration_ms = int(
                (finished_at - self._run.started_at).total_seconds() * 1000
            )
            return self._run.model_copy(deep=True)

    def _open_step(self, index: int) -> StepRecord | None:
        if self._closed or index < 0:
            return None
        if index >= len(self._run.steps):
            raise IndexError(f"Unknown step index {index}")
        step = self._run.steps[index]
        if step.status != "running":
            raise RuntimeError(f"Step '{step.name}' already {step.status}")
        return step

    def _charge(self, step: StepRecord, usage: TokenUsage | None, cost_usd: float) -> None:
        step.tokens_used = usage.total if usage is not None else 0
        step.cost_usd = cost_usd
        step.finished_at = self._clock()
        self._run.total_cost.tokens += step.tokens_used
        self._run.total_cost.usd += cost_usd
