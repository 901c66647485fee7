import json

import pytest
from fastapi.testclient import TestClient

from capture_router.main import app, build_pipeline, get_pipeline


class RecordingPipeline:
    def __init__(self):
        self.runs = []

    def run(self, raw_text, source):
        self.runs.append((raw_text, source))


@pytest.fixture
def client():
    # No context manager: startup wiring against the real database is not needed.
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def recording(client):
    pipeline = RecordingPipeline()
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return pipeline


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_webhook_accepts_and_runs_in_background(client, recording, destination_env):
    response = client.post("/webhook", json={"text": "buy milk", "source": "siri"})

    assert response.status_code == 200
    assert response.json() == {"status": "accepted"}
    assert recording.runs == [("buy milk", "siri")]


def test_webhook_defaults_source_and_accepts_timestamp(client, recording, destination_env):
    response = client.post("/webhook", json={"text": "buy milk", "timestamp": "2026-02-08T12:00:00Z"})

    assert response.status_code == 200
    assert recording.runs == [("buy milk", "unknown")]


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"text": ""},
        {"text": 42},
        {"source": "siri"},
        ["text"],
    ],
)
def test_webhook_rejects_invalid_body(client, recording, destination_env, body):
    response = client.post("/webhook", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"
    assert response.json()["details"]
    assert recording.runs == []


def test_webhook_rejects_malformed_json(client, recording, destination_env):
    response = client.post(
        "/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"
    assert recording.runs == []


@pytest.mark.parametrize("header", [None, "Bearer wrong", "s3cret", "bearer s3cret"])
def test_webhook_requires_matching_secret(client, recording, destination_env, monkeypatch, header):
    monkeypatch.setenv("WEBHOOK_SECRET", "s3cret")
    headers = {"Authorization": header} if header else {}

    response = client.post("/webhook", json={"text": "buy milk"}, headers=headers)

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert recording.runs == []


def test_webhook_checks_secret_before_body(client, recording, destination_env, monkeypatch):
    monkeypatch.setenv("WEBHOOK_SECRET", "s3cret")

    response = client.post("/webhook", json={})

    assert response.status_code == 401


def test_webhook_accepts_matching_secret(client, recording, destination_env, monkeypatch):
    monkeypatch.setenv("WEBHOOK_SECRET", "s3cret")

    response = client.post(
        "/webhook", json={"text": "buy milk"}, headers={"Authorization": "Bearer s3cret"}
    )

    assert response.status_code == 200
    assert recording.runs == [("buy milk", "unknown")]


def test_webhook_acknowledges_even_when_routing_fails(
    client, table_store, document_store, destination_env, make_completion
):
    reply = json.dumps(
        {
            "action": "append_to_project",
            "url": None,
            "tags": [],
            "project": "nowhere",
            "title": "Note",
            "comment": "A note",
            "confidence": 0.9,
        }
    )
    pipeline = build_pipeline(table_store, document_store, make_completion(reply))
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    response = client.post("/webhook", json={"text": "note for nowhere", "source": "siri"})

    assert response.status_code == 200
    records = table_store.read_rows("activity-table", "Sheet1!A:H")
    assert len(records) == 1
    assert records[0][6] == "error"


def test_activity_log_page_lists_recent_runs(client, table_store, document_store, destination_env, make_completion):
    pipeline = build_pipeline(table_store, document_store, make_completion("not json"))
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    pipeline.run("first capture", "siri")

    response = client.get("/activity-log", params={"limit": 5})

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "first capture" in response.text
    assert "Inbox Doc" in response.text


def test_activity_log_page_without_activity_table(client, table_store, document_store, make_completion, monkeypatch):
    monkeypatch.delenv("ACTIVITY_LOG_SHEET_ID", raising=False)
    pipeline = build_pipeline(table_store, document_store, make_completion())
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    response = client.get("/activity-log")

    assert response.status_code == 503
    assert "ACTIVITY_LOG_SHEET_ID" in response.text
