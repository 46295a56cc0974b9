from concurrent.futures import ThreadPoolExecutor

import pytest

from enrichment_orchestrator.config.settings import ModelRate
from enrichment_orchestrator.shared.token_tracker import TokenTracker, TokenUsage, cost_for_usage

RATES = {
    "gpt-5-mini": ModelRate(prompt=0.25, completion=2.00),
    "gpt-5-nano": ModelRate(prompt=0.05, completion=0.40),
}


def test_cost_for_usage_prices_per_million_tokens() -> None:
    usage = TokenUsage(prompt=1_000_000, completion=500_000, total=1_500_000)

    assert cost_for_usage(usage, RATES["gpt-5-mini"]) == pytest.approx(0.25 + 1.00)


def test_tracker_accumulates_by_model() -> None:
    tracker = TokenTracker(model="gpt-5-mini")
    tracker.track_usage(TokenUsage(prompt=100, completion=50, total=150))
    tracker.track_usage(TokenUsage(prompt=10, completion=5, total=15), model="gpt-5-nano")

    assert tracker.get_total_usage() == TokenUsage(prompt=110, completion=55, total=165)
    assert tracker.usage_by_model()["gpt-5-nano"].total == 15
    assert tracker.call_count == 2


def test_estimate_cost_prices_each_model_at_its_own_rate() -> None:
    tracker = TokenTracker(model="gpt-5-mini")
    tracker.track_usage(TokenUsage(prompt=1_000_000, completion=0, total=1_000_000))
    tracker.track_usage(
        TokenUsage(prompt=1_000_000, completion=0, total=1_000_000), model="gpt-5-nano"
    )

    assert tracker.estimate_cost(RATES) == pytest.approx(0.30)
    assert tracker.estimate_cost(RATES, model="gpt-5-mini") == pytest.approx(0.50)


def test_estimate_cost_rejects_unknown_model() -> None:
    tracker = TokenTracker(model="mystery-model")
    tracker.track_usage(TokenUsage(prompt=1, completion=1, total=2))

    with pytest.raises(KeyError):
        tracker.estimate_cost(RATES)


def test_reset_clears_everything() -> None:
    tracker = TokenTracker(model="gpt-5-mini")
    tracker.track_usage(TokenUsage(prompt=1, completion=1, total=2))

    tracker.reset()

    assert tracker.get_total_usage() == TokenUsage()
    assert tracker.usage_by_model() == {}
    assert tracker.call_count == 0


def test_concurrent_tracking_loses_no_updates() -> None:
    tracker = TokenTracker(model="gpt-5-mini")
    usage = TokenUsage(prompt=2, completion=1, total=3)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: tracker.track_usage(usage), range(400)))

    assert tracker.get_total_usage().total == 1200
    assert tracker.call_count == 400
