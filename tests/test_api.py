"""
Tests for the HTTP routes, with model clients replaced by scripted fakes.
"""

import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

from exam_grader.api import create_app
from exam_grader.config import ClientConfig, Settings


@pytest.fixture
def fake_clients(make_llm):
    """Scripts the next model client handed out by the app, and records its config."""
    state: dict[str, Any] = {"script": (), "configs": [], "clients": []}

    def factory(config: ClientConfig):
        client = make_llm(*state["script"], model=config.model)
        state["configs"].append(config)
        state["clients"].append(client)
        return client

    state["factory"] = factory
    return state


@pytest.fixture
def api(test_settings: Settings, fake_clients) -> TestClient:
    return TestClient(create_app(test_settings, client_factory=fake_clients["factory"]))


class TestExamParserRoute:
    """Tests for /api/exam-parser."""

    def test_missing_content(self, api: TestClient) -> None:
        response = api.post("/api/exam-parser", json={"apiKey": "k"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Missing file content"}

    def test_missing_api_key(self, api: TestClient) -> None:
        response = api.post("/api/exam-parser", json={"fileContent": "1. 2+2=?"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing API key"

    def test_parse(self, api: TestClient, fake_clients) -> None:
        questions = [{"id": "1", "type": "fill", "content": "2+2=__", "answer": "4", "score": 5}]
        fake_clients["script"] = (f"```json\n{json.dumps(questions)}\n```",)

        response = api.post(
            "/api/exam-parser",
            json={"fileContent": "1. 2+2=__", "apiKey": "per-request-key", "model": "vision-model"},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["totalScore"] == 5
        assert body["questions"][0]["type"] == "fill"
        assert fake_clients["configs"][0].api_key == "per-request-key"
        assert fake_clients["configs"][0].model == "vision-model"
        assert fake_clients["clients"][0].closed

    def test_parse_failure(self, api: TestClient, fake_clients) -> None:
        fake_clients["script"] = ()

        response = api.post("/api/exam-parser", json={"fileContent": "exam", "apiKey": "k"})

        assert response.status_code == 500
        assert response.json()["success"] is False


class TestMultimodalRoute:
    """Tests for /api/exam-parser-multimodal."""

    def test_missing_images(self, api: TestClient) -> None:
        response = api.post("/api/exam-parser-multimodal", json={"images": [], "apiKey": "k"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing exam images"

    def test_parse_images(self, api: TestClient, fake_clients) -> None:
        fake_clients["script"] = (json.dumps([{"id": "1", "content": "Essay", "score": 20}]),)

        response = api.post(
            "/api/exam-parser-multimodal",
            json={"images": ["data:image/png;base64,AAAA"], "apiKey": "k"},
        )

        assert response.status_code == 200
        assert response.json()["totalScore"] == 20
        assert fake_clients["clients"][0].calls[0]["images"] == ["data:image/png;base64,AAAA"]


class TestJsonFixerRoute:
    """Tests for /api/json-fixer."""

    def test_fix(self, api: TestClient, fake_clients) -> None:
        fake_clients["script"] = ('```json\n{"a": 1}\n```',)

        response = api.post(
            "/api/json-fixer",
            json={"brokenJson": '{"a": 1,}', "errorMessage": "Trailing comma", "apiKey": "k"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "fixedJson": '{"a": 1}'}
        assert "Trailing comma" in fake_clients["clients"][0].calls[0]["prompt"]

    def test_missing_json(self, api: TestClient) -> None:
        response = api.post("/api/json-fixer", json={"apiKey": "k"})

        assert response.status_code == 400

    def test_model_failure(self, api: TestClient, fake_clients) -> None:
        fake_clients["script"] = ()

        response = api.post("/api/json-fixer", json={"brokenJson": "{", "apiKey": "k"})

        assert response.status_code == 500
        assert response.json()["success"] is False


class TestGradeAnswerRoute:
    """Tests for /api/grade-answer."""

    def test_grade(self, api: TestClient, fake_clients, reply) -> None:
        fake_clients["script"] = (reply(score=12, confidence=40),)

        response = api.post(
            "/api/grade-answer",
            json={
                "question": "2+2=?",
                "standardAnswer": "4",
                "candidateAnswer": "4",
                "maxScore": 10,
            },
        )

        body = response.json()
        assert response.status_code == 200
        assert body["result"]["score"] == 10
        assert body["result"]["scoringPoints"][0]["status"] == "correct"
        assert body["needsReview"] is True
        # Falls back to the configured key when the request carries none
        assert fake_clients["configs"][0].api_key == "test-api-key-for-testing"

    def test_invalid_max_score(self, api: TestClient) -> None:
        response = api.post(
            "/api/grade-answer",
            json={"question": "q", "standardAnswer": "a", "candidateAnswer": "b", "maxScore": 0},
        )

        body = response.json()
        assert response.status_code == 400
        assert body["success"] is False
        assert "maxScore" in body["error"]

    def test_missing_required_field(self, api: TestClient) -> None:
        response = api.post("/api/grade-answer", json={"question": "q", "maxScore": 5})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")

    def test_grading_failure(self, api: TestClient, fake_clients) -> None:
        fake_clients["script"] = ("not json",)

        response = api.post(
            "/api/grade-answer",
            json={"question": "q", "standardAnswer": "a", "candidateAnswer": "b", "maxScore": 5},
        )

        assert response.status_code == 500
