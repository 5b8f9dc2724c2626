"""API tests for the content generation service, with the synthesizer faked out."""

import pytest
from fastapi.testclient import TestClient
from google.api_core.exceptions import ServiceUnavailable

from content_generation_service.main import app, get_synthesizer
from content_generation_service.outline import OutlineSynthesizer
from tests._helpers.fakes import FakeTextCapability, RecordingSleep, outline_json


@pytest.fixture
def client_with():
    def _make(responses):
        synthesizer = OutlineSynthesizer(FakeTextCapability(responses), sleep=RecordingSleep())
        app.dependency_overrides[get_synthesizer] = lambda: synthesizer
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


def test_generate_outline_returns_exact_count(client_with):
    client = client_with([outline_json(7)])
    response = client.post("/generate-outline", json={"topic": "Mars Exploration", "pageCount": 5})

    assert response.status_code == 200
    body = response.json()
    assert len(body["slides"]) == 5
    assert set(body["styleTheme"]) == {"name", "colorTone", "style", "mood"}
    assert "imagePrompt" in body["slides"][0]


def test_out_of_range_page_count_is_400(client_with):
    client = client_with([outline_json(5)])
    response = client.post("/generate-outline", json={"topic": "Mars Exploration", "pageCount": 25})
    assert response.status_code == 400


def test_missing_topic_is_400(client_with):
    client = client_with([outline_json(5)])
    response = client.post("/generate-outline", json={"topic": " ", "pageCount": 5})
    assert response.status_code == 400


def test_unparseable_answer_is_502(client_with):
    client = client_with(["<html>oops</html>"])
    response = client.post("/generate-outline", json={"topic": "Mars Exploration", "pageCount": 5})
    assert response.status_code == 502


def test_persistently_busy_model_is_503(client_with):
    client = client_with([ServiceUnavailable("overloaded")])
    response = client.post("/generate-outline", json={"topic": "Mars Exploration", "pageCount": 5})
    assert response.status_code == 503


def test_missing_model_is_503():
    # No GCP project is configured while testing, so the real dependency refuses.
    response = TestClient(app).post("/generate-outline", json={"topic": "Mars", "pageCount": 5})
    assert response.status_code == 503


def test_health_reports_model_state():
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
