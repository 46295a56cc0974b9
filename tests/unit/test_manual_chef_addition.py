import threading
import time
from uuid import uuid4

import pytest

from enrichment_orchestrator.storage.models import DiscoveredRestaurant
from enrichment_orchestrator.workflows.base import RunContext
from enrichment_orchestrator.workflows.manual_chef_addition import ManualChefAdditionWorkflow
from enrichment_orchestrator.workflows.run_state import RunLedger

from .conftest import ADJUDICATE, BIO, NARRATIVE, RESTAURANTS, SHOWS

CALL_COST = 100 / 1_000_000 * 0.25 + 50 / 1_000_000 * 2.00


def _script(backend, *, narrative: bool = True) -> None:
    backend.on_json(
        BIO,
        {
            "mini_bio": "Won Top Chef season 4.",
            "james_beard_status": "winner",
            "notable_awards": ["James Beard Best Chef Great Lakes"],
        },
    )
    backend.on_json(
        SHOWS,
        [
            {"show_name": "Top Chef", "season": "Season 4", "result": "winner"},
            {"show_name": "Chef Wars Unlimited", "season": None, "result": None},
        ],
    )
    backend.on_json(
        RESTAURANTS,
        {
            "restaurants": [
                {"name": "Girl & the Goat", "city": "Chicago", "state": "IL", "status": "open"},
                {"name": "Girl & the Goat LA", "city": "Los Angeles", "state": "CA"},
            ]
        },
    )
    if narrative:
        backend.on_json(NARRATIVE, {"narrative": "Stephanie Izard cooks in Chicago."})


def _input(chef_id: str, **overrides) -> dict:
    return {
        "chef_id": chef_id,
        "chef_name": "Stephanie Izard",
        "initial_show_name": "Top Chef",
        "initial_show_season": "Season 4",
        "initial_show_result": "winner",
    } | overrides


@pytest.fixture
def chef(deps):
    deps.shows.create("Top Chef", network="Bravo")
    return deps.chefs.create("Stephanie Izard")


def test_full_enrichment_of_new_chef(deps, backend, chef, store) -> None:
    _script(backend)

    run = ManualChefAdditionWorkflow(deps).run(_input(chef.id))

    assert run.success
    assert [step.status for step in run.steps] == ["completed"] * 6
    assert run.output == {
        "chef_id": chef.id,
        "chef_name": "Stephanie Izard",
        "bio_created": True,
        "total_shows": 1,
        "total_restaurants": 2,
        "narrative_created": True,
    }
    saved = deps.chefs.get(chef.id)
    assert saved.mini_bio == "Won Top Chef season 4."
    assert saved.narrative == "Stephanie Izard cooks in Chicago."
    assert saved.last_enriched_at is not None
    assert store.count("restaurants") == 2
    assert deps.discoveries.get_stats()["pending"] == 1
    assert run.total_cost.usd == pytest.approx(4 * CALL_COST)
    assert "Top Chef (Season 4) as winner" in backend.calls[0]


def test_unknown_chef_fails_before_any_call(deps, backend) -> None:
    _script(backend)

    run = ManualChefAdditionWorkflow(deps).run(_input(str(uuid4())))

    assert run.status == "failed"
    assert len(run.steps) == 1
    assert run.errors[0].code == "chef_not_found"
    assert backend.calls == []


def test_invalid_chef_id_is_rejected(deps, backend) -> None:
    run = ManualChefAdditionWorkflow(deps).run(_input("chef-1", initial_show_name=" "))

    assert run.status == "failed"
    assert run.steps == []
    assert run.errors[0].code == "validation_failed"
    assert "Invalid chef ID (must be UUID)" in run.errors[0].message
    assert "Initial show name is required" in run.errors[0].message


def test_bio_failure_stops_the_run(deps, backend, chef) -> None:
    backend.on(BIO, "no idea who that is")

    run = ManualChefAdditionWorkflow(deps).run(_input(chef.id))

    assert run.status == "failed"
    assert [step.status for step in run.steps] == ["completed", "failed"]
    assert run.errors[0].code == "bio_enrichment_failed"
    assert run.total_cost.usd == pytest.approx(CALL_COST)
    assert backend.count(SHOWS) == 0


def test_failure_while_saving_restaurants_deletes_created_ones(
    deps, backend, chef, store, monkeypatch
) -> None:
    _script(backend)
    create = deps.restaurants.create_restaurant
    calls = []

    def flaky_create(chef_id, restaurant):
        calls.append(restaurant.name)
        if len(calls) == 2:
            raise RuntimeError("connection reset")
        return create(chef_id, restaurant)

    monkeypatch.setattr(deps.restaurants, "create_restaurant", flaky_create)

    run = ManualChefAdditionWorkflow(deps).run(_input(chef.id))

    assert run.status == "failed"
    assert run.rollback_performed
    assert run.steps[-1].name == "Discover restaurants"
    assert run.steps[-1].status == "failed"
    assert store.count("restaurants") == 0
    assert deps.chefs.get(chef.id).last_enriched_at is None


def test_dry_run_writes_nothing(deps, backend, chef, store) -> None:
    _script(backend)
    writes_before = store.write_count

    run = ManualChefAdditionWorkflow(deps).run(_input(chef.id), dry_run=True)

    assert run.success and run.dry_run
    assert [step.status for step in run.steps] == ["completed"] * 4 + ["skipped"] * 2
    assert run.steps[4].metadata == {"reason": "dry run"}
    assert store.write_count == writes_before
    assert store.count("search_cache") == 0
    assert store.count("restaurants") == 0
    assert deps.chefs.get(chef.id).mini_bio is None
    assert backend.count(NARRATIVE) == 0
    assert run.output["bio_created"] is False


def test_skip_narrative(deps, backend, chef) -> None:
    _script(backend)

    run = ManualChefAdditionWorkflow(deps).run(_input(chef.id, skip_narrative=True))

    assert run.success
    assert run.steps[4].status == "skipped"
    assert run.steps[4].metadata == {"reason": "skip_narrative requested"}
    assert run.steps[5].status == "completed"
    assert backend.count(NARRATIVE) == 0


def test_narrative_failure_does_not_fail_the_run(deps, backend, chef) -> None:
    _script(backend, narrative=False)

    run = ManualChefAdditionWorkflow(deps).run(_input(chef.id))

    assert run.success
    assert run.steps[4].status == "failed"
    assert run.errors[0].code == "narrative_failed"
    assert not run.errors[0].fatal
    assert deps.chefs.get(chef.id).last_enriched_at is not None


def test_estimate_shrinks_without_narrative(deps) -> None:
    workflow = ManualChefAdditionWorkflow(deps)

    full = workflow.estimate_cost(_input(str(uuid4())))
    lean = workflow.estimate_cost(_input(str(uuid4()), skip_narrative=True))

    assert full.max_tokens == 16000
    assert lean.max_tokens == 12000
    assert lean.max_usd < full.max_usd <= workflow.ceiling_usd


def test_adjudication_usage_is_charged_to_the_run(deps, backend, chef, store) -> None:
    _script(backend)
    backend.on_json(
        ADJUDICATE, {"is_duplicate": False, "confidence": 0.2, "reasoning": "Different venue"}
    )
    store.insert(
        "restaurants",
        {"name": "Girl and Goat", "slug": "girl-and-goat", "chef_id": "other", "city": "Chicago"},
    )

    run = ManualChefAdditionWorkflow(deps).run(_input(chef.id))

    restaurants_step = run.steps[3]
    assert run.success
    assert backend.count(ADJUDICATE) == 1
    assert store.count("restaurants") == 3
    assert restaurants_step.metadata["adjudication_tokens"] == 150
    assert restaurants_step.tokens_used == 300
    assert run.total_cost.tokens == deps.tracker.get_total_usage().total == 750
    assert run.total_cost.usd == pytest.approx(5 * CALL_COST)


def test_restaurant_saved_after_timeout_is_removed(deps, backend, chef, store, monkeypatch) -> None:
    _script(backend)
    release = threading.Event()
    inserted = threading.Event()
    create = deps.restaurants.create_restaurant
    calls = []

    def slow_create(chef_id, restaurant):
        calls.append(restaurant.name)
        release.wait(5)
        saved = create(chef_id, restaurant)
        inserted.set()
        return saved

    monkeypatch.setattr(deps.restaurants, "create_restaurant", slow_create)

    run = ManualChefAdditionWorkflow(deps, timeout_s=0.2).run(_input(chef.id))
    release.set()

    assert run.status == "failed"
    assert run.errors[-1].code == "timeout"
    assert run.rollback_performed
    assert inserted.wait(5)
    deadline = time.monotonic() + 2
    while store.count("restaurants") and time.monotonic() < deadline:
        time.sleep(0.01)
    assert store.count("restaurants") == 0
    assert calls == ["Girl & the Goat"]


def test_rollback_is_idempotent(deps, chef, store) -> None:
    workflow = ManualChefAdditionWorkflow(deps)
    ctx = RunContext(run_id="r-1", dry_run=False, ledger=RunLedger(workflow.name), deps=deps)
    workflow.rollback(ctx)

    created = deps.restaurants.create_restaurant(
        chef.id, DiscoveredRestaurant(name="Aba", city="Chicago")
    )
    deps.restaurants.create_restaurant(chef.id, DiscoveredRestaurant(name="Cabra", city="Austin"))
    ctx.track_created("restaurants", created.restaurant_id)
    workflow.rollback(ctx)
    workflow.rollback(ctx)

    remaining = store.select("restaurants")
    deletes = store.select("data_changes", filters={"change_type": "delete"})
    assert [row["name"] for row in remaining] == ["Cabra"]
    assert len(deletes) == 1
