from uuid import uuid4

import pytest

from enrichment_orchestrator.workflows.deps import build_dependencies
from enrichment_orchestrator.workflows.partial_update import PartialUpdateWorkflow

from .conftest import NARRATIVE, RESTAURANTS, SHOWS


@pytest.fixture
def chef(deps):
    return deps.chefs.create("Stephanie Izard")


def _input(mode: str, target_id: str, **extra) -> dict:
    return {"mode": mode, "target_id": target_id, "target_name": "Stephanie Izard"} | extra


def test_shows_mode_saves_links_and_stamps_chef(deps, backend, chef) -> None:
    deps.shows.create("Top Chef")
    backend.on_json(SHOWS, [{"show_name": "Top Chef", "season": "Season 4", "result": "winner"}])

    run = PartialUpdateWorkflow(deps).run(_input("shows", chef.id))

    assert run.success
    assert run.output["success"] is True
    assert run.output["items_updated"] == 1
    assert deps.chefs.get(chef.id).last_enriched_at is not None


def test_restaurants_mode_counts_new_rows(deps, backend, chef, store) -> None:
    backend.on_json(
        RESTAURANTS,
        {"restaurants": [{"name": "Aba", "city": "Chicago"}, {"name": "Cabra", "city": "Austin"}]},
    )

    run = PartialUpdateWorkflow(deps).run(_input("restaurants", chef.id))

    assert run.success
    assert run.output["items_updated"] == 2
    assert store.count("restaurants") == 2


def test_restaurant_lost_to_a_concurrent_writer_is_resolved_on_retry(
    store, backend, settings, monkeypatch
) -> None:
    deps = build_dependencies(
        store=store, backend=backend, settings=settings.model_copy(update={"retry_max_attempts": 2})
    )
    chef = deps.chefs.create("Stephanie Izard")
    backend.on_json(RESTAURANTS, {"restaurants": [{"name": "Aba", "city": "Chicago"}]})
    insert = store.insert
    raced = []

    def racing_insert(table, row):
        if table == "restaurants" and not raced:
            raced.append(row["name"])
            insert(table, dict(row, chef_id="other-chef"))
            raise RuntimeError('duplicate key value violates unique constraint "restaurants_slug"')
        return insert(table, row)

    monkeypatch.setattr(store, "insert", racing_insert)

    run = PartialUpdateWorkflow(deps).run(_input("restaurants", chef.id))

    assert run.success
    assert run.errors == []
    assert raced == ["Aba"]
    assert run.output["items_updated"] == 0
    assert store.count("restaurants") == 1
    assert store.select("restaurants")[0]["chef_id"] == "other-chef"


def test_narrative_mode_uses_supplied_context(deps, backend, chef) -> None:
    backend.on_json(NARRATIVE, {"narrative": "A Chicago story."})

    run = PartialUpdateWorkflow(deps).run(
        _input("chef-narrative", chef.id, context={"name": "Stephanie Izard", "cities": []})
    )

    assert run.success
    assert run.output["narrative"] == "A Chicago story."
    assert deps.chefs.get(chef.id).narrative == "A Chicago story."
    assert '"cities": []' in backend.calls[0]


def test_narrative_mode_needs_a_known_chef(deps, backend) -> None:
    run = PartialUpdateWorkflow(deps).run(_input("chef-narrative", str(uuid4())))

    assert run.status == "failed"
    assert run.errors[0].code == "chef_not_found"
    assert backend.calls == []


def test_service_failure_fails_without_rollback(deps, backend, chef) -> None:
    run = PartialUpdateWorkflow(deps).run(_input("shows", chef.id))

    assert run.status == "failed"
    assert run.errors[0].code == "show_discovery_failed"
    assert not run.rollback_performed


def test_dry_run_narrative_is_returned_not_saved(deps, backend, chef) -> None:
    backend.on_json(NARRATIVE, {"narrative": "A Chicago story."})

    run = PartialUpdateWorkflow(deps).run(_input("chef-narrative", chef.id), dry_run=True)

    assert run.success
    assert run.output["narrative"] == "A Chicago story."
    assert run.output["items_updated"] == 0
    assert deps.chefs.get(chef.id).narrative is None


def test_unknown_mode_is_rejected(deps, chef) -> None:
    run = PartialUpdateWorkflow(deps).run(_input("city", chef.id))

    assert run.status == "failed"
    assert run.errors[0].code == "validation_failed"
    assert run.errors[0].message.startswith("mode:")
