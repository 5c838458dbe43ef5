"""分析 API 路由测试

测试内容：
1. POST /api/analyze 成功响应结构与 X-RateLimit-* 头
2. 错误码到 HTTP 状态码的映射（400 / 401 / 429 / 502 / 503）
3. 其余 /api 端点
"""

from unittest.mock import AsyncMock, patch

from httpx import AsyncClient
from mindgate.provider import ProviderConfig, ProviderTransientError


class TestAnalyzeEndpoint:
    async def test_success_envelope(self, client: AsyncClient):
        resp = await client.post(
            "/api/analyze",
            json={
                "content": {"severity": 9},
                "params": {"type": "episode_analysis"},
                "user_id": "alice",
            },
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["type"] == "episode_analysis"
        assert data["format"] == "structured"
        assert data["provider"] == "simulated"
        assert data["data"]["professional_support_recommended"] is True
        assert "content" not in data
        assert set(data["usage"]) == {"prompt_tokens", "completion_tokens", "total_tokens"}
        assert "timestamp" in data

        # 假时钟位于第 10 秒，一次请求已计数
        assert resp.headers["X-RateLimit-Limit"] == "60"
        assert resp.headers["X-RateLimit-Remaining"] == "59"
        assert resp.headers["X-RateLimit-Reset"] == "50"

    async def test_defaults(self, client: AsyncClient):
        resp = await client.post("/api/analyze", json={"content": {}})
        assert resp.status_code == 200
        assert resp.json()["type"] == "episode_analysis"

    async def test_unknown_type_is_400(self, client: AsyncClient):
        resp = await client.post(
            "/api/analyze",
            json={"content": {}, "params": {"type": "horoscope"}},
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_request"

    async def test_malformed_body_is_400(self, client: AsyncClient):
        resp = await client.post("/api/analyze", json={"content": ["not", "an", "object"]})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "invalid_request"
        assert "content" in body["error"]

    async def test_rate_limited_is_429(self, app, client: AsyncClient, make_gateway, seeded_provider):
        app.state.gateway = make_gateway(
            ProviderConfig(force_simulated=True, requests_per_minute=1, cache_results=False),
            seeded_provider,
        )

        assert (await client.post("/api/analyze", json={})).status_code == 200
        resp = await client.post("/api/analyze", json={})

        assert resp.status_code == 429
        body = resp.json()
        assert body["code"] == "rate_limited"
        assert body["retry_after"] == 50.0
        assert resp.headers["Retry-After"] == "50"
        assert resp.headers["X-RateLimit-Reset"] == "50"

    async def test_provider_unavailable_is_502(self, client: AsyncClient, seeded_provider):
        with patch.object(
            seeded_provider,
            "analyze",
            AsyncMock(side_effect=ProviderTransientError("Simulated API error for testing", status_code=503)),
        ):
            resp = await client.post("/api/analyze", json={})

        assert resp.status_code == 502
        assert resp.json() == {
            "error": "Simulated API error for testing",
            "code": "provider_unavailable",
        }

    async def test_configuration_error_is_503(self, client: AsyncClient):
        resp = await client.post("/api/analyze", json={"params": {"provider": "openai"}})
        assert resp.status_code == 503
        assert resp.json()["code"] == "configuration_error"


class TestApiToken:
    async def test_missing_token_rejected(self, app, client: AsyncClient):
        app.state.api_token = "secret"

        resp = await client.post("/api/analyze", json={})

        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or missing API token", "code": "unauthorized"}

    async def test_wrong_token_rejected(self, app, client: AsyncClient):
        app.state.api_token = "secret"

        resp = await client.get("/api/providers", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    async def test_valid_token_accepted(self, app, client: AsyncClient):
        app.state.api_token = "secret"

        resp = await client.get("/api/providers", headers={"Authorization": "Bearer secret"})
        assert resp.status_code == 200

    async def test_health_is_public(self, app, client: AsyncClient):
        app.state.api_token = "secret"

        resp = await client.get("/health")
        assert resp.status_code == 200


class TestOtherEndpoints:
    async def test_recommendations(self, client: AsyncClient):
        resp = await client.post(
            "/api/recommendations",
            json={"user_id": "alice", "context": "coping_skills"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["type"] == "recommendations"
        assert data["data"]["immediate_actions"][0]["action"] == "Practice your most effective coping skill"

    async def test_recommendations_requires_user(self, client: AsyncClient):
        resp = await client.post("/api/recommendations", json={"context": "general"})
        assert resp.status_code == 400

    async def test_estimate_cost(self, client: AsyncClient):
        resp = await client.get("/api/estimate-cost", params={"estimated_tokens": 2000})
        assert resp.status_code == 200
        assert resp.json() == {"estimated_cost": 0.0, "estimated_tokens": 2000, "model": None}

    async def test_estimate_cost_zero_tokens(self, app, client: AsyncClient, make_gateway):
        app.state.gateway = make_gateway(ProviderConfig(openai_api_key="sk-test"))

        resp = await client.get(
            "/api/estimate-cost",
            params={"provider": "openai", "model": "gpt-4-turbo", "estimated_tokens": 0},
        )

        assert resp.json() == {"estimated_cost": 0.0, "estimated_tokens": 0, "model": "gpt-4-turbo"}

    async def test_estimate_cost_by_type(self, client: AsyncClient):
        resp = await client.get("/api/estimate-cost", params={"type": "pattern_analysis"})
        assert resp.json()["estimated_tokens"] == 2000

    async def test_estimate_cost_negative_tokens(self, client: AsyncClient):
        resp = await client.get("/api/estimate-cost", params={"estimated_tokens": -5})
        assert resp.status_code == 400

    async def test_usage(self, client: AsyncClient):
        await client.post("/api/analyze", json={"user_id": "alice"})

        resp = await client.get("/api/usage", params={"period": "week", "user_id": "alice"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["period"] == "week"
        assert data["user"]["mock-advanced"]["request_count"] == 1
        assert data["global"]["mock-advanced"]["unique_users"] == 1
        assert data["global"]["mock-advanced"]["estimated_cost"] == 0.0

    async def test_usage_bad_period(self, client: AsyncClient):
        resp = await client.get("/api/usage", params={"period": "year"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_request"

    async def test_providers(self, client: AsyncClient):
        resp = await client.get("/api/providers")
        assert resp.status_code == 200
        ids = [p["id"] for p in resp.json()["providers"]]
        assert ids == ["simulated", "openai"]
