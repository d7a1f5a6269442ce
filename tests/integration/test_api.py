"""
Integration tests for the Tidy API.

Every route runs against a throwaway SQLite database and a scripted
completion client; nothing reaches the Gemini API.
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from tidy.api.app import create_app
from tidy.api.context import ServiceContext
from tidy.llm.errors import QuotaExceededError
from tidy.llm.gemini import GeminiInitializationError

ANALYZER_REPLY = json.dumps(
    {
        "score": 72,
        "issues": [
            {"id": "i1", "severity": "medium", "title": "Long function", "description": "Split it"}
        ],
        "suggestions": [{"id": "s1", "title": "Extract helper", "impact": "low", "effort": "low"}],
        "summary": "Mostly fine",
    }
)

SOURCE = "export function add(a, b) {\n  return a + b;\n}\n"


def no_key_factory(api_key):
    raise GeminiInitializationError("Gemini API key not configured")


@pytest.fixture
def gateway(make_gateway):
    return make_gateway(default=ANALYZER_REPLY)


@pytest.fixture
def client(db_path, gateway):
    services = ServiceContext(api_key="test-key", gateway_factory=lambda key: gateway)
    with TestClient(create_app(services, rate_limit=False)) as test_client:
        yield test_client


@pytest.fixture
def offline_client(db_path):
    services = ServiceContext(api_key=None, gateway_factory=no_key_factory)
    with TestClient(create_app(services, rate_limit=False)) as test_client:
        yield test_client


def analyze(client, **overrides):
    body = {"code": SOURCE, "filePath": "src/math.ts", "language": "typescript", "userId": "u1"}
    body.update(overrides)
    return client.post("/api/analysis", json=body)


class TestHealth:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["service"] == "Tidy API"
        assert data["llm"]["apiKey"] is True

    def test_health_without_key(self, offline_client):
        assert offline_client.get("/health").json()["llm"]["apiKey"] is False

    def test_db_health(self, client):
        data = client.get("/health/db").json()
        assert data["status"] == "healthy"
        assert data["pool"]["closed"] is False


class TestUsers:
    def test_get_creates_with_defaults(self, client):
        data = client.get("/api/user/u1").json()
        assert data["id"] == "u1"
        assert data["settings"]["ai"]["enabled"] is True

    def test_update_settings(self, client):
        settings = {"experimental": {"minimap": False}, "ai": {"enabled": False}}
        response = client.put("/api/user/u1", json={"settings": settings})
        assert response.status_code == 200
        assert client.get("/api/user/u1").json()["settings"] == settings

    def test_update_rejects_non_object_section(self, client):
        response = client.put("/api/user/u1", json={"settings": {"ai": "on"}})
        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"

    def test_create_anonymous(self, client):
        data = client.post("/api/user").json()
        assert data["id"].startswith("user_")

    def test_delete(self, client):
        assert client.delete("/api/user/ghost").status_code == 404
        assert client.delete("/api/user/ghost").json() == {"error": "User not found"}
        client.get("/api/user/u1")
        assert client.delete("/api/user/u1").json() == {
            "success": True,
            "message": "User data cleared",
        }
        assert client.get("/api/user/u1").json()["settings"] is None


class TestAnalysis:
    def test_run_stores_session_and_history(self, client, gateway):
        response = analyze(client)
        assert response.status_code == 200
        data = response.json()

        assert [r["type"] for r in data["results"]] == [
            "codeQuality",
            "security",
            "performance",
            "maintainability",
            "testing",
            "documentation",
        ]
        assert data["summary"]["overallScore"] == 72
        assert data["summary"]["totalIssues"] == 6
        assert data["errors"] == []
        assert gateway.calls == 6

        session = client.get(f"/api/analysis/{data['sessionId']}").json()
        assert session["userId"] == "u1"
        assert session["fileName"] == "math.ts"
        assert session["fullResults"]["summary"]["overallScore"] == 72

        history = client.get("/api/analysis-history/user/u1").json()
        assert history["total"] == 1
        assert history["sessions"][0]["id"] == data["sessionId"]
        assert history["sessions"][0]["issuesCount"] == 6

    def test_run_config_override(self, client, gateway):
        data = analyze(client, config={"enabledAnalyzers": ["security"], "timeout": 5000}).json()
        assert [r["type"] for r in data["results"]] == ["security"]
        assert gateway.calls == 1

    def test_invalid_config(self, client):
        response = analyze(client, config={"maxConcurrency": 0})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid analysis config"}

    def test_validation_error_shape(self, client):
        response = client.post("/api/analysis", json={"filePath": "a.ts", "language": "ts"})
        assert response.status_code == 400
        assert response.json() == {"error": "Validation failed", "details": ["code"]}

    def test_empty_code_rejected(self, client):
        assert analyze(client, code="").status_code == 400

    def test_provider_failures_degrade(self, client, gateway):
        gateway.replies = [QuotaExceededError()]
        data = analyze(client).json()
        assert len(data["results"]) == 6
        assert gateway.calls == 1
        assert data["errors"][0]["analyzer"] == "codeQuality"
        assert all(r["score"] == 75 for r in data["results"][1:])

    def test_missing_session(self, client):
        response = client.get("/api/analysis/analysis_missing")
        assert response.status_code == 404
        assert response.json() == {"error": "Analysis session not found"}

    def test_no_api_key_is_503(self, offline_client):
        response = analyze(offline_client)
        assert response.status_code == 503
        assert "API key" in response.json()["error"]


class TestAnalysisHistory:
    def test_paging_and_search(self, client):
        ids = [analyze(client, filePath=f"src/file{i}.ts").json()["sessionId"] for i in range(3)]

        page = client.get("/api/analysis-history/user/u1?limit=2&offset=0").json()
        assert page["total"] == 3
        assert page["limit"] == 2
        assert len(page["sessions"]) == 2

        found = client.get("/api/analysis-history/user/u1/search?q=FILE1").json()
        assert [s["id"] for s in found["sessions"]] == [ids[1]]

    def test_bad_limit(self, client):
        assert client.get("/api/analysis-history/user/u1?limit=0").status_code == 400

    def test_get_and_delete_session(self, client):
        session_id = analyze(client).json()["sessionId"]
        assert client.get(f"/api/analysis-history/{session_id}").json()["id"] == session_id

        response = client.delete(f"/api/analysis-history/{session_id}")
        assert response.json() == {"success": True, "message": "Analysis session deleted"}
        assert client.get(f"/api/analysis-history/{session_id}").status_code == 404
        assert client.get("/api/analysis-history/user/u1").json()["total"] == 0
        assert client.delete(f"/api/analysis-history/{session_id}").status_code == 404

    def test_clear_all(self, client):
        session_id = analyze(client).json()["sessionId"]
        analyze(client)
        response = client.delete("/api/analysis-history/user/u1/all").json()
        assert response["deletedCount"] == 2
        assert client.get(f"/api/analysis/{session_id}").status_code == 404


class TestChat:
    def test_reply_with_suggestions_and_session(self, client, gateway):
        gateway.replies = ["You could add testing around this."]
        body = {
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello!"},
                {"role": "user", "content": "What next?"},
            ],
            "context": {"code": SOURCE, "filePath": "src/math.ts", "language": "typescript"},
            "userId": "u1",
            "sessionId": "c1",
        }
        data = client.post("/api/chat", json=body).json()

        assert data["message"] == "You could add testing around this."
        assert data["suggestions"] == ["Add unit tests", "Consider integration tests"]
        assert "assistant: Hello!" in gateway.prompts[0]

        session = client.get("/api/chat/session/u1/c1").json()
        assert len(session["messages"]) == 4
        assert session["context"]["filePath"] == "src/math.ts"

        assert client.delete("/api/chat/session/u1/c1").json() == {"success": True}
        assert client.get("/api/chat/session/u1/c1").status_code == 404

    def test_without_session_id_nothing_stored(self, client):
        client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
        assert client.get("/api/chat/session/anonymous/c1").status_code == 404

    def test_empty_messages_rejected(self, client):
        response = client.post("/api/chat", json={"messages": []})
        assert response.status_code == 400
        assert response.json()["details"] == ["messages"]

    def test_fix(self, client):
        body = {
            "issue": {"title": "Missing Error Handling", "category": "reliability"},
            "code": "async function f(){ fetch(x) }",
            "filePath": "a.ts",
        }
        data = client.post("/api/chat/fix", json=body).json()
        assert "catch (error)" in data["fixedCode"]
        assert data["diff"]

    def test_chat_without_key_is_503(self, offline_client):
        response = offline_client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
        assert response.status_code == 503


class TestCompletion:
    def test_completion(self, client, gateway):
        gateway.replies = ["```\nreturn a + b;\n```"]
        data = client.post(
            "/api/completion",
            json={"code": "function add(a, b) {\n  ", "cursorPosition": 23, "language": "javascript"},
        ).json()
        assert data == {
            "suggestions": [{"insertText": "return a + b;", "kind": "text", "detail": "AI completion"}],
            "isIncomplete": False,
        }

    def test_no_key_uses_fallback_table(self, offline_client):
        response = offline_client.post(
            "/api/completion",
            json={"code": "console.log(", "cursorPosition": 12, "language": "typescript"},
        )
        assert response.status_code == 200
        assert response.json()["suggestions"][0]["insertText"] == ");"

    def test_provider_error_never_fails(self, client, gateway):
        gateway.replies = [QuotaExceededError()]
        response = client.post(
            "/api/completion", json={"code": "zz", "cursorPosition": 2, "language": "go"}
        )
        assert response.status_code == 200
        assert response.json() == {"suggestions": [], "isIncomplete": False}


class TestReview:
    def test_empty_results_use_heuristics(self, client):
        response = client.post(
            "/api/review",
            json={"results": [], "filePath": "src/app.ts", "fileContent": "let a: any = 1;"},
        )
        data = response.json()
        assert data["summary"].startswith("Analysis completed for app.ts.")
        assert data["codeSuggestions"][0]["title"] == "Type Safety Issues"

    def test_results_transformed(self, client):
        results = analyze(client).json()["results"]
        data = client.post("/api/review", json={"results": results, "filePath": "src/math.ts"}).json()
        assert data["summary"].startswith("Analysis completed with overall score: 72/100.")
        assert data["changesSummary"][0]["title"] == "[CODEQUALITY] Long function"
