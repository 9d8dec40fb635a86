"""Tests for the HTTP layer: routing, status mapping, CORS and metrics."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from diffbreak.agent import UpgradeAnalyzer
from diffbreak.config import Settings
from diffbreak.context.github import GitHubClient
from diffbreak.errors import (
    InternalError,
    ModelResponseInvalidError,
    RateLimitedError,
    RepoNotFoundError,
    TimedOutError,
)
from diffbreak.llm import LLMConfig, OllamaClient
from diffbreak.main import create_app
from diffbreak.metrics import PrometheusObserver
from fakes import OLLAMA_URL, compare_payload, model_reply, paged, releases

REPO = "https://github.com/octo/hello"
ORIGIN = "https://diffbreak.fyi"

VALID_BODY = {
    "repoUrl": REPO,
    "fromTag": "v1.0.0",
    "toTag": "v1.1.0",
    "mode": "fast",
    "limits": {"maxReleases": 10},
}


def github_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/repos/octo/missing/tags":
        return httpx.Response(404)
    if request.url.path.endswith("/tags"):
        return paged(request, [[{"name": "v1.0.0"}, {"name": "v1.1.0"}]])
    if "/compare/" in request.url.path:
        return httpx.Response(200, json=compare_payload([("abcdef1234", "feat: one")]))
    return paged(request, [releases("v1.1.0", "v1.0.0")])


@pytest.fixture
def client(sample_reply):
    observer = PrometheusObserver()
    analyzer = UpgradeAnalyzer(
        GitHubClient(observer=observer, transport=httpx.MockTransport(github_handler)),
        OllamaClient(
            config=LLMConfig(base_url=OLLAMA_URL),
            observer=observer,
            transport=httpx.MockTransport(lambda request: model_reply(sample_reply)),
        ),
    )
    app = create_app(Settings(), analyzer=analyzer, observer=observer)
    with TestClient(app) as test_client:
        yield test_client


def failing_client(error: Exception) -> TestClient:
    analyzer = AsyncMock(spec=UpgradeAnalyzer)
    analyzer.analyze.side_effect = error
    analyzer.detect.side_effect = error
    return TestClient(create_app(Settings(), analyzer=analyzer, observer=PrometheusObserver()))


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


# ---------------------------------------------------------------------------
# /detect
# ---------------------------------------------------------------------------


class TestDetect:
    def test_missing_repo(self, client: TestClient) -> None:
        response = client.get("/detect")
        assert response.status_code == 400
        assert response.json() == {"error": "repo is required"}

    def test_invalid_repo(self, client: TestClient) -> None:
        response = client.get("/detect", params={"repo": "github.com/octo/hello"})
        assert response.status_code == 400
        assert response.json() == {"error": "invalid repoUrl"}

    def test_repo_not_found(self, client: TestClient) -> None:
        response = client.get("/detect", params={"repo": "https://github.com/octo/missing"})
        assert response.status_code == 404
        assert response.json() == {"error": "repository not found"}

    def test_success(self, client: TestClient) -> None:
        response = client.get("/detect", params={"repo": REPO})

        assert response.status_code == 200
        assert response.json() == {
            "repo": {"url": REPO, "owner": "octo", "name": "hello", "provider": "github"},
            "tags": ["v1.0.0", "v1.1.0"],
        }


# ---------------------------------------------------------------------------
# /api/analyze
# ---------------------------------------------------------------------------


class TestAnalyze:
    def test_invalid_json_body(self, client: TestClient) -> None:
        response = client.post(
            "/api/analyze", content=b"{", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "invalid JSON body"}

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"mode": "slow"}, "invalid mode"),
            ({"fromTag": None}, "invalid fromTag"),
            ({"toTag": "   "}, "invalid toTag"),
            ({"repoUrl": " "}, "invalid repoUrl"),
        ],
    )
    def test_invalid_fields(self, client: TestClient, overrides: dict, message: str) -> None:
        response = client.post("/api/analyze", json={**VALID_BODY, **overrides})
        assert response.status_code == 400
        assert response.json() == {"error": message}

    def test_missing_field(self, client: TestClient) -> None:
        body = {k: v for k, v in VALID_BODY.items() if k != "toTag"}
        response = client.post("/api/analyze", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "toTag is required"}

    def test_invalid_repo_url(self, client: TestClient) -> None:
        response = client.post("/api/analyze", json={**VALID_BODY, "repoUrl": "github.com/octo/hello"})
        assert response.status_code == 400
        assert response.json() == {"error": "invalid repoUrl"}

    def test_success_uses_wire_names(self, client: TestClient) -> None:
        response = client.post("/api/analyze", json=VALID_BODY)

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {
            "risk", "summary", "breakers", "behaviorChanges", "upgradeSteps", "evidence", "meta",
        }
        assert data["risk"]["level"] == "high"
        assert data["upgradeSteps"][0]["evidence"] == []
        assert data["meta"]["repo"] == {"url": REPO}
        assert data["meta"]["toTag"] == "v1.1.0"

    def test_limits_are_optional(self, client: TestClient) -> None:
        body = {k: v for k, v in VALID_BODY.items() if k != "limits"}
        assert client.post("/api/analyze", json=body).status_code == 200

    @pytest.mark.parametrize("limits", [None, {"maxReleases": None}, {}])
    def test_null_limits_use_default(self, client: TestClient, limits) -> None:
        response = client.post("/api/analyze", json={**VALID_BODY, "limits": limits})
        assert response.status_code == 200

    @pytest.mark.parametrize(
        ("error", "status", "message"),
        [
            (RepoNotFoundError(), 404, "repository not found"),
            (RateLimitedError(), 429, "github rate limit exceeded"),
            (TimedOutError(), 504, "request timed out"),
            (ModelResponseInvalidError("raw model text"), 502, "model returned invalid JSON"),
            (InternalError("connection refused to 10.0.0.1"), 500, "internal server error"),
        ],
    )
    def test_error_kinds_map_to_statuses(
        self, error: Exception, status: int, message: str
    ) -> None:
        with failing_client(error) as test_client:
            response = test_client.post("/api/analyze", json=VALID_BODY)

        assert response.status_code == status
        assert response.json() == {"error": message}


# ---------------------------------------------------------------------------
# CORS and metrics
# ---------------------------------------------------------------------------


class TestCORS:
    def _preflight(self, client: TestClient, origin: str):
        return client.options(
            "/api/analyze",
            headers={"Origin": origin, "Access-Control-Request-Method": "POST"},
        )

    def test_allowed_origin(self, client: TestClient) -> None:
        response = self._preflight(client, ORIGIN)
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == ORIGIN

    def test_other_origin(self, client: TestClient) -> None:
        response = self._preflight(client, "https://evil.example")
        assert "access-control-allow-origin" not in response.headers


class TestMetrics:
    def test_exposes_request_counters(self, client: TestClient) -> None:
        client.get("/detect", params={"repo": REPO})
        client.post("/api/analyze", json=VALID_BODY)

        body = client.get("/metrics").text

        assert 'http_requests_total{handler="detect",method="GET",status="200"} 1.0' in body
        assert 'github_requests_total{operation="list_tags",status="ok"} 1.0' in body
        assert 'ollama_requests_total{status="ok"} 1.0' in body


def test_error_body_is_documented(client: TestClient) -> None:
    paths = client.get("/openapi.json").json()["paths"]

    detect_404 = paths["/detect"]["get"]["responses"]["404"]
    analyze_502 = paths["/api/analyze"]["post"]["responses"]["502"]

    for documented in (detect_404, analyze_502):
        schema = documented["content"]["application/json"]["schema"]
        assert schema["$ref"].endswith("/ErrorResponse")
