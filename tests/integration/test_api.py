"""Integration tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from dslgen.api.main import create_app
from dslgen.config.defaults import STANDARD_MODEL
from dslgen.exceptions import ProviderError
from dslgen.pipeline.runner import CodeGenerationPipeline, PipelineComponents
from dslgen.pipeline.trace import TraceLogger
from fakes import DIALECT, CompilerService, FakeProvider, call

SYNTAX_ERROR = {"status": "error", "error": {"message": "Unexpected token", "line": 2, "col": 4}}


@pytest.fixture
def api(make_config, session_factory):
    """Build a test client around a pipeline with scripted services."""

    def _build(scripts, results=None, **features):
        config = make_config(**features)
        provider = FakeProvider(scripts)
        service = CompilerService(results=results)
        components = PipelineComponents(
            config,
            provider=provider,
            session_factory=session_factory,
            transport=service.transport,
            trace=TraceLogger(),
        )
        client = TestClient(create_app(CodeGenerationPipeline(config, components)))
        return client, provider, service

    return _build


class TestGenerateEndpoint:
    """Tests for POST /generate."""

    def test_generate_verified(self, api):
        client, _, service = api([call("```\nadd 1 2..\n```")])

        response = client.post(
            "/generate",
            json={"prompt": "Add two numbers", "dialect": DIALECT, "account_id": "acct", "plan": "starter"},
            headers={"Authorization": "Bearer secret"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["code"] == "add 1 2.."
        assert data["fix_attempts"] == 0
        assert data["models_used"] == [STANDARD_MODEL]
        assert data["usage"] == {"input_tokens": 10, "output_tokens": 5}
        assert data["billed_units"] == 1
        assert data["verification"]["status"] == "success"
        assert data["error"] is None
        submit = [r for r in service.requests if r.url.path == "/task"][0]
        assert submit.headers["Authorization"] == "secret"

    def test_generate_without_token(self, api):
        client, _, service = api([call("```\nadd 1 2..\n```")])

        response = client.post("/generate", json={"prompt": "Add two numbers", "dialect": DIALECT})

        assert response.status_code == 200
        assert response.json()["status"] == "unverified"
        assert response.json()["verification"] is None
        assert service.paths("compiler.test") == []

    def test_failing_code_reports_errors(self, api):
        scripts = [call("```\nadd 1..\n```"), call("```\nadd 1 2..\n```"), call("```\nadd 1 2 3..\n```")]
        client, _, _ = api(scripts, results=[SYNTAX_ERROR])

        response = client.post(
            "/generate",
            json={"prompt": "Add two numbers", "dialect": DIALECT},
            headers={"Authorization": "secret"},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["status"] == "error"
        assert data["fix_attempts"] == 2
        assert data["verification"]["errors"][0] == {
            "type": "syntax",
            "message": "Unexpected token",
            "line": 2,
            "column": 4,
            "expected": None,
            "found": None,
        }

    def test_conversation_and_options(self, api):
        client, provider, _ = api([call("```\nadd 1 2 3..\n```")])

        response = client.post(
            "/generate",
            json={
                "prompt": "Add a third number",
                "dialect": DIALECT,
                "current_code": "add 1 2..",
                "conversation_summary": {"turn_count": 2, "previous_requests": ["Add two numbers"]},
                "options": {"temperature": 0.5, "max_tokens": 300},
            },
        )

        assert response.status_code == 200
        last_message = provider.calls[0]["messages"][-1]["content"]
        assert "```\nadd 1 2..\n```" in last_message
        assert "Turn 2 of conversation." in last_message
        assert provider.calls[0]["options"].max_tokens == 300

    def test_partial_output_reports_error(self, api):
        client, _, service = api([call("add 1 2..", stop_reason="max_tokens"), ProviderError("stream dropped")])

        response = client.post(
            "/generate",
            json={"prompt": "Add two numbers", "dialect": DIALECT},
            headers={"Authorization": "Bearer secret"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["code"] == "add 1 2.."
        assert "stream dropped" in data["error"]
        assert service.submitted == [{"lang": DIALECT, "code": "add 1 2.."}]

    def test_blank_prompt_rejected(self, api):
        client, provider, _ = api([])

        response = client.post("/generate", json={"prompt": "   ", "dialect": DIALECT})

        assert response.status_code == 422
        assert provider.calls == []

    def test_missing_dialect_rejected(self, api):
        client, _, _ = api([])

        assert client.post("/generate", json={"prompt": "Add"}).status_code == 422

    def test_generation_failure(self, api):
        client, _, _ = api([ProviderError("HTTP 529: overloaded", status_code=529)])

        response = client.post("/generate", json={"prompt": "Add two numbers", "dialect": DIALECT})

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert "529" in detail["message"]
        assert detail["request_id"]


class TestUsageEndpoint:
    """Tests for GET /usage/{account_id}."""

    def test_usage_after_generation(self, api):
        client, _, _ = api([call("```\nadd 1 2..\n```"), call("```\nadd 3 4..\n```")])
        for _ in range(2):
            client.post(
                "/generate",
                json={"prompt": "Add two numbers", "dialect": DIALECT, "account_id": "acct", "plan": "pro"},
            )

        response = client.get("/usage/acct", params={"limit": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["account_id"] == "acct"
        assert data["total_units"] == 2
        assert len(data["recent"]) == 1
        assert data["recent"][0]["billed_units"] == 1

    def test_unknown_account(self, api):
        client, _, _ = api([])

        data = client.get("/usage/nobody").json()

        assert data["total_units"] == 0
        assert data["recent"] == []


class TestHealth:
    """Tests for health endpoints."""

    def test_health_without_spec_compiler(self, api):
        client, _, _ = api([])

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["spec_compiler"] is None

    def test_health_with_spec_compiler(self, api):
        client, _, _ = api([], enable_spec_compiler=True)

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["spec_compiler"] is True

    def test_root(self, api):
        client, _, _ = api([])

        assert client.get("/").json()["health"] == "/health"
