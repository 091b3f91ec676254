"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeLLMClient, build_engine, make_phase
from services.content_service.main import app
from services.content_service.models import QualityLevel, WorkflowModel
from services.content_service.routes.workflows import get_engine

INTRO = "Standing desks are everywhere."
BODY = "## Height\n\nPick the right height."


@pytest.fixture
def engine(intro_body_model):
    branded = WorkflowModel(
        id="branded",
        name="Branded",
        quality_levels={QualityLevel.HIGH},
        content_types={"review"},
        platforms={"wordpress"},
        additional_inputs=["brand"],
        phases=[make_phase("review", ["content"], ["topic", "brand"])],
    )
    llm = FakeLLMClient({"m-intro": [INTRO], "m-body": [BODY], "m-review": ["## Review\n\nGood."]})
    return build_engine(llm, intro_body_model, branded)


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestWorkflowRoutes:
    def test_list(self, client):
        response = client.get("/workflows/")
        assert response.status_code == 200
        body = response.json()
        assert [w["id"] for w in body] == ["intro-body", "branded"]
        assert body[0]["is_default"] is True
        assert body[1]["phase_ids"] == ["review"]

    def test_get_model(self, client):
        response = client.get("/workflows/branded")
        assert response.status_code == 200
        assert response.json()["phases"][0]["required_inputs"] == ["topic", "brand"]

    def test_unknown_model(self, client):
        assert client.get("/workflows/nope").status_code == 404

    def test_select(self, client):
        response = client.post("/workflows/select", json={"quality_level": "high", "content_type": "Review"})
        assert response.status_code == 200
        assert response.json()["id"] == "branded"

    def test_select_respects_platform(self, client):
        response = client.post("/workflows/select", json={
            "quality_level": "high", "content_type": "review", "platform": "shopify",
        })
        assert response.status_code == 200
        assert response.json()["id"] == "intro-body"

    def test_select_falls_back_to_default(self, client):
        response = client.post("/workflows/select", json={"quality_level": "low"})
        assert response.json()["id"] == "intro-body"


class TestRunRoutes:
    def test_sync_run(self, client):
        response = client.post("/runs/sync", json={
            "quality_level": "medium", "seed": {"topic": "standing desks"},
        })
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "succeeded"
        assert body["content"] == f"{INTRO}\n\n{BODY}"
        assert [r["phase_id"] for r in body["phase_results"]] == ["intro", "body"]

        status = client.get(f"/runs/{body['run_id']}/status").json()
        assert status["progress_percentage"] == 100
        assert status["current_phase"] is None

    def test_extra_seed_values_reach_templates(self, client):
        response = client.post("/runs/sync", json={
            "quality_level": "high", "content_type": "review",
            "seed": {"topic": "desks", "brand": "Acme"},
        })
        assert response.json()["status"] == "succeeded"

    def test_missing_seed_input(self, client):
        response = client.post("/runs/sync", json={
            "quality_level": "high", "content_type": "review", "seed": {"topic": "desks"},
        })
        assert response.status_code == 422
        assert "brand" in response.json()["detail"]

    def test_invalid_request_body(self, client):
        assert client.post("/runs/sync", json={"quality_level": "medium", "seed": {}}).status_code == 422

    def test_unknown_run(self, client):
        assert client.get("/runs/missing").status_code == 404
        assert client.post("/runs/missing/cancel").status_code == 404

    def test_cannot_cancel_finished_run(self, client):
        run_id = client.post("/runs/sync", json={
            "quality_level": "medium", "seed": {"topic": "standing desks"},
        }).json()["run_id"]
        response = client.post(f"/runs/{run_id}/cancel")
        assert response.status_code == 400


def test_health_reports_components(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["components"]["redis"] == "disabled"
    assert body["components"]["workflow_models"] == 2
