"""Bounded fan-out across independent entities."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Generic, TypeVar

TItem = TypeVar("TItem")
TValue = TypeVar("TValue")

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 50


@dataclass(frozen=True)
class TaskOutcome(Generic[TItem, TValue]):
    item: TItem
    value: TValue | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_bounded(
    items: Iterable[TItem],
    fn: Callable[[TItem], TValue],
    *,
    concurrency: int = 10,
) -> list[TaskOutcome[TItem, TValue]]:
    """Apply ``fn`` to every item with at most ``concurrency`` in flight.

    A failing item never affects the others. Outcomes come back in completion
    order.
    """
    if not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY:
        raise ValueError(
            f"concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}"
        )
    pending = list(items)
    if not pending:
        return []

    outcomes: list[TaskOutcome[TItem, TValue]] = []
    with ThreadPoolExecutor(max_workers=min(concurrency, len(pending))) as pool:
        futures = {pool.submit(fn, item): item for item in pending}
        for future in as_completed(futures):
            item = futures[future]
            try:
                outcomes.append(TaskOutcome(item=item, value=future.result()))
            except Exception as exc:  # noqa: BLE001
                outcomes.append(TaskOutcome(item=item, error=exc))
    return outcomes
