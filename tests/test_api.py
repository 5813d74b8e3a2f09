"""Pruebas de la API REST y del canal WebSocket.

Tests for the REST API and the WebSocket channel.
"""

import pytest
from fastapi.testclient import TestClient

from vigia.api import create_app
from vigia.config import VigiaSettings


def _payload(pd_code, votes=10, **extra):
    return {"pd_code": pd_code, "summary": {}, "by_party": [{"party_code": "A", "votes": votes}], **extra}


@pytest.fixture
def client(catalog, store):
    app = create_app(VigiaSettings(), catalog=catalog, store=store)
    with TestClient(app) as test_client:
        yield test_client


def test_post_result_creates_then_overrides(client):
    created = client.post("/api/results", json=_payload("PD1"))
    overridden = client.post("/api/results", json=_payload("PD1", votes=4))

    assert created.status_code == 201
    assert created.json()["overridden"] is False
    assert overridden.status_code == 200
    assert overridden.json()["overridden"] is True
    assert overridden.json()["id"] == created.json()["id"]


def test_post_invalid_result_returns_400(client):
    response = client.post("/api/results", json={"pd_code": "PD1"})
    garbage = client.post("/api/results", content=b"{nope", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert "error" in response.json()
    assert garbage.status_code == 400
    assert client.get("/api/results").json() == []


def test_batch_endpoint_reports_per_item(client):
    response = client.post("/api/results/batch", json=[_payload("PD1"), {"bad": 1}, _payload("PD2")])

    body = response.json()
    assert response.status_code == 200
    assert [item["status"] for item in body["results"]] == ["success", "error", "success"]
    assert body["failed"] == 1


def test_batch_endpoint_requires_a_list(client):
    response = client.post("/api/results/batch", json={"pd_code": "PD1"})

    assert response.status_code == 400


def test_read_endpoints(client, catalog_payload):
    client.post("/api/results", json=_payload("PD1", votes=7))
    client.post("/api/results", json=_payload("PD4", votes=3, ed_code="ED2"))

    results = client.get("/api/results").json()
    districts = client.get("/api/districts").json()
    summary = client.get("/api/summary").json()
    audit = client.get("/api/audit", params={"limit": 1}).json()
    health = client.get("/health").json()

    assert [record["pd_code"] for record in results] == ["PD1", "PD4"]
    assert districts == catalog_payload
    assert summary["districts_complete"] == 1
    assert summary["island_totals"][0] == {"party_code": "A", "party_name": None, "votes": 10}
    assert len(audit) == 1
    assert audit[0]["pd_code"] == "PD4"
    assert audit[0]["sequence"] == 2
    assert health == {"status": "ok", "records": 2, "subscribers": 0}


def test_websocket_sends_snapshot_then_events(client):
    client.post("/api/results", json=_payload("PD1"))

    with client.websocket_connect("/ws/results") as websocket:
        initial = websocket.receive_json()
        assert initial["event"] == "results:all"
        assert [record["pd_code"] for record in initial["data"]] == ["PD1"]

        client.post("/api/results", json=_payload("PD2"))
        client.post("/api/results", json=_payload("PD1", votes=1))

        received = [websocket.receive_json() for _ in range(4)]

    assert [message["event"] for message in received] == [
        "result:new",
        "results:all",
        "result:updated",
        "results:all",
    ]
    assert received[0]["data"]["pd_code"] == "PD2"
    assert len(received[3]["data"]) == 2


def test_websocket_events_only_mode(client):
    with client.websocket_connect("/ws/results?mode=events") as websocket:
        assert websocket.receive_json()["event"] == "results:all"
        client.post("/api/results", json=_payload("PD3"))
        message = websocket.receive_json()

    assert message["event"] == "result:new"
    assert message["data"]["pd_code"] == "PD3"
