"""FastAPI endpoint tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from dfs_simulator.api import server
from dfs_simulator.persistence.codec import topology_to_dict
from dfs_simulator.persistence.state_store import TopologyStateStore
from dfs_simulator.scenarios import build_simple_download


@pytest.fixture(scope="module")
def api_client():
    with TestClient(server.app) as client:
        yield client


def _simulation_body(**overrides):
    body = {"topology": topology_to_dict(build_simple_download().topology), "client": "client", "mode": "SHORTEST"}
    body.update(overrides)
    return body


def test_health_and_modes(api_client: TestClient):
    assert api_client.get("/health").json() == {"status": "ok"}
    modes = {mode["name"]: mode for mode in api_client.get("/modes").json()}
    assert modes["SHORTEST"]["label"] == "Shortest"
    assert modes["HIERARCHICAL_DYNAMIC_PATH_THROUGHPUT_AND_LATENCY"]["hierarchical"] is True
    assert modes["DYNAMIC_PATH_THROUGHPUT_AND_LATENCY"]["dynamic_routing"] is True


def test_simulation_runs_posted_topology(api_client: TestClient):
    resp = api_client.post("/simulations", json=_simulation_body())
    resp.raise_for_status()
    payload = resp.json()

    result = payload["results"][0]
    assert result["state"] == "SUCCESS"
    assert result["total_time_ms"] == 1000
    assert result["average_speed_bps"] == 1_000_000
    assert payload["total_downloaded_bytes"] == 1_000_000
    assert payload["log"][0] == "[0] Simulation started."


def test_simulation_with_explicit_tasks(api_client: TestClient):
    tasks = [
        {"type": "PUT", "path": "/data/new.bin", "size": 500_000},
        {"type": "PUT", "path": "/inbox/new.bin", "size": 10},
        {"type": "GET", "path": "/nowhere.bin"},
    ]
    resp = api_client.post("/simulations", json=_simulation_body(tasks=tasks))
    resp.raise_for_status()

    states = [result["state"] for result in resp.json()["results"]]
    assert states == ["SUCCESS", "OBJECT_NOT_FOUND", "OBJECT_NOT_FOUND"]
    assert resp.json()["total_uploaded_bytes"] == 500_000


def test_simulation_rejects_bad_input(api_client: TestClient):
    assert api_client.post("/simulations", json=_simulation_body(mode="warp")).status_code == 422
    assert api_client.post("/simulations", json=_simulation_body(client="ghost")).status_code == 404
    assert api_client.post("/simulations", json=_simulation_body(topology={"name": "nope"})).status_code == 422
    upload_without_size = _simulation_body(tasks=[{"type": "PUT", "path": "/x.bin"}])
    assert api_client.post("/simulations", json=upload_without_size).status_code == 422
    bad_type = _simulation_body(tasks=[{"type": "MOVE", "path": "/x.bin"}])
    assert api_client.post("/simulations", json=bad_type).status_code == 422


def test_snapshot_saved_on_request(api_client: TestClient, tmp_path, monkeypatch):
    monkeypatch.setattr(server, "state_store", TopologyStateStore(str(tmp_path / "snapshot.json")))
    assert api_client.get("/snapshot").status_code == 404

    api_client.post("/simulations", json=_simulation_body(save_snapshot=True)).raise_for_status()

    snapshot = api_client.get("/snapshot")
    snapshot.raise_for_status()
    assert snapshot.json()["name"] == "topology"


def test_corrupt_snapshot_is_a_conflict(api_client: TestClient, tmp_path, monkeypatch):
    path = tmp_path / "snapshot.json"
    path.write_text("{truncated", encoding="utf-8")
    monkeypatch.setattr(server, "state_store", TopologyStateStore(str(path)))

    resp = api_client.get("/snapshot")
    assert resp.status_code == 409
    assert "not valid JSON" in resp.json()["detail"]


def test_scenario_endpoints(api_client: TestClient):
    assert "tiering" in api_client.get("/scenarios").json()

    resp = api_client.post("/scenarios/tiering", params={"event_limit": 3})
    resp.raise_for_status()
    payload = resp.json()
    assert payload["placement"]["/hot.bin"] == "fast"
    assert len(payload["events"]) == 3

    assert api_client.post("/scenarios/unknown").status_code == 404
