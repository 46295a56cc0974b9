from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from enrichment_orchestrator.api.main import create_app
from enrichment_orchestrator.workflows.manual_chef_addition import ManualChefAdditionWorkflow

from .conftest import NARRATIVE, SHOWS


@pytest.fixture
def client(deps, settings) -> TestClient:
    return TestClient(create_app(deps=deps, settings_override=settings))


@pytest.fixture
def chef(deps):
    return deps.chefs.create("Stephanie Izard")


def _manual_input(chef_id: str) -> dict:
    return {"chef_id": chef_id, "chef_name": "Stephanie Izard", "initial_show_name": "Top Chef"}


def test_health_and_workflow_listing(client: TestClient) -> None:
    health = client.get("/health")
    listing = client.get("/workflows")

    assert health.status_code == 200
    assert health.json() == {"status": "ok", "service": "enrichment-orchestrator"}
    names = [item["name"] for item in listing.json()["workflows"]]
    assert names == [
        "manual-chef-addition",
        "refresh-stale-chef",
        "restaurant-status-sweep",
        "partial-update",
    ]


def test_unknown_workflow_is_404(client: TestClient) -> None:
    response = client.post("/workflows/does-not-exist/run", json={"input": {}})

    assert response.status_code == 404


def test_invalid_input_is_422_with_messages(client: TestClient) -> None:
    response = client.post(
        "/workflows/partial-update/run",
        json={"input": {"mode": "shows", "target_id": "abc", "target_name": ""}},
    )

    assert response.status_code == 422
    assert response.json()["detail"] == [
        "Invalid target ID (must be UUID)",
        "Target name is required",
    ]


def test_run_returns_run_record(client: TestClient, backend, chef) -> None:
    backend.on_json(NARRATIVE, {"narrative": "A Chicago story."})

    response = client.post(
        "/workflows/partial-update/run",
        json={
            "input": {"mode": "chef-narrative", "target_id": chef.id, "target_name": chef.name},
            "dry_run": True,
        },
    )

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "completed"
    assert body["dry_run"] is True
    assert body["success"] is True
    assert body["output"]["narrative"] == "A Chicago story."
    assert body["steps"][0]["status"] == "completed"


def test_estimate_reports_ceiling(client: TestClient) -> None:
    valid = client.post(
        "/workflows/manual-chef-addition/estimate", json={"input": _manual_input(str(uuid4()))}
    ).json()
    invalid = client.post(
        "/workflows/manual-chef-addition/estimate", json={"input": _manual_input("nope")}
    ).json()

    assert valid["validation"]["valid"] is True
    assert valid["estimate"]["max_tokens"] == 16000
    assert valid["ceiling_usd"] == 15.0
    assert invalid["validation"]["valid"] is False
    assert invalid["estimate"] is None


def test_rollback_failure_is_500_with_run(client: TestClient, monkeypatch) -> None:
    def broken_rollback(self, ctx):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(ManualChefAdditionWorkflow, "rollback", broken_rollback)

    response = client.post(
        "/workflows/manual-chef-addition/run", json={"input": _manual_input(str(uuid4()))}
    )

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert "store unavailable" in detail["error"]
    assert detail["run"]["status"] == "failed"
    assert [error["code"] for error in detail["run"]["errors"]] == [
        "chef_not_found",
        "rollback_failed",
    ]


def test_usage_and_cache_endpoints(client: TestClient, backend, chef) -> None:
    backend.on_json(SHOWS, [])
    client.post(
        "/workflows/partial-update/run",
        json={"input": {"mode": "shows", "target_id": chef.id, "target_name": chef.name}},
    )

    usage = client.get("/usage").json()
    stats = client.get("/cache/stats").json()
    reset = client.post("/usage/reset").json()
    after = client.get("/usage").json()

    assert usage["calls"] == 1
    assert usage["total"]["total"] == 150
    assert usage["cost_usd"] == pytest.approx(100 / 1_000_000 * 0.25 + 50 / 1_000_000 * 2.00)
    assert usage["by_model"]["gpt-5-mini"]["total"] == 150
    assert stats["total_entries"] == 1
    assert reset == {"status": "reset"}
    assert after["calls"] == 0
