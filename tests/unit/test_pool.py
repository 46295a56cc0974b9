import threading
import time

import pytest

from enrichment_orchestrator.workflows.pool import run_bounded


def test_failures_are_isolated_per_item() -> None:
    def work(value: int) -> int:
        if value == 3:
            raise ValueError("bad item")
        return value * 2

    outcomes = run_bounded(range(6), work, concurrency=3)

    by_item = {outcome.item: outcome for outcome in outcomes}
    assert len(outcomes) == 6
    assert not by_item[3].ok
    assert isinstance(by_item[3].error, ValueError)
    assert sorted(o.value for o in outcomes if o.ok) == [0, 2, 4, 8, 10]


def test_concurrency_is_bounded() -> None:
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def work(_: int) -> None:
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.02)
        with lock:
            state["active"] -= 1

    run_bounded(range(12), work, concurrency=3)

    assert 1 <= state["peak"] <= 3


def test_empty_input_returns_no_outcomes() -> None:
    assert run_bounded([], lambda item: item) == []


@pytest.mark.parametrize("concurrency", [0, 51])
def test_concurrency_outside_range_is_rejected(concurrency: int) -> None:
    with pytest.raises(ValueError):
        run_bounded([1], lambda item: item, concurrency=concurrency)
