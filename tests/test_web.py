"""Tests for the KeyRouter web API."""

import pytest
from fastapi.testclient import TestClient

from keyrouter.web import create_app


@pytest.fixture
def client(home):
    return TestClient(create_app())


class TestRouteEndpoints:

    def test_audit(self, client, scenario_config):
        resp = client.get("/api/keyrouter/audit")
        assert resp.status_code == 200
        data = resp.json()
        assert data["auth_profile_count"] == 1
        assert [p["id"] for p in data["providers"]] == ["anthropic", "openai"]

    def test_route_prompt(self, client, scenario_config):
        resp = client.post("/api/keyrouter/route", json={"input": "quick cheap summary"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["policy"] == "cheap"
        assert data["top_candidates"][0]["provider_id"] == "openai"
        assert data["top_candidates"][1]["input_cost"] is None

    def test_route_messages(self, client, scenario_config):
        resp = client.post("/api/keyrouter/route", json={
            "input": [{"role": "user", "content": "why? prove correctness"}]})
        assert resp.json()["policy"] == "reasoning"

    def test_route_bad_host_config(self, client, write_host_config):
        write_host_config({}).write_text("[]")
        resp = client.post("/api/keyrouter/route", json={"input": "hi"})
        assert resp.status_code == 500

    def test_retry(self, client, scenario_config):
        resp = client.post("/api/keyrouter/retry", json={"error": "insufficient_quota"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["recommendation"]["error_class"] == "quota_exhausted"
        assert data["recommendation"]["strategy"] == "immediate_fallback"
        assert data["failed"] == "openai/gpt-4o-mini"
        assert data["alternate"] == "anthropic/claude-3-haiku"

    def test_retry_blank(self, client):
        assert client.post("/api/keyrouter/retry", json={"error": " "}).status_code == 400


class TestStateEndpoints:

    def test_usage(self, client, scenario_config):
        client.post("/api/keyrouter/route", json={"input": "quick cheap summary"})
        data = client.get("/api/keyrouter/usage").json()
        assert data["events"] == 1
        assert data["by_model"] == {"openai/gpt-4o-mini": {"routed": 1}}
        assert data["recent"][0]["status"] == "routed"

    def test_quota_roundtrip(self, client):
        resp = client.post("/api/keyrouter/quota", json={
            "model_key": "openai/gpt-4o-mini", "remaining": 50, "reset_at": "2026-11-01T00:00:00Z"})
        assert resp.status_code == 200
        assert resp.json()["quota"] == {"remaining": 50, "reset_at": "2026-11-01T00:00:00Z"}

        quota = client.get("/api/keyrouter/quota").json()["quota"]
        assert quota["openai/gpt-4o-mini"]["remaining"] == 50

    @pytest.mark.parametrize("body", [
        {"model_key": "p/m", "remaining": "many"},
        {"model_key": "p/m", "remaining": True},
        {"model_key": "p/m", "remaining": 1, "reset_at": "soon"},
    ])
    def test_quota_invalid(self, client, body):
        resp = client.post("/api/keyrouter/quota", json=body)
        assert resp.status_code == 400
        assert "Invalid" in resp.json()["detail"]
