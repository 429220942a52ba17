"""Tests for the HTTP surface: routing, auth headers, error envelopes."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.core.exceptions import UpstreamUnreachableError
from src.gateway.bootstrap import Gateway, build_gateway

ADMIN = {"X-Admin-Secret": "test-admin-secret"}


@pytest.fixture()
def client(gateway: Gateway) -> TestClient:
    """Test client serving the in-memory gateway from conftest."""
    return TestClient(create_app(gateway))


def _create(client: TestClient, **body: object) -> dict:
    body.setdefault("name", "Acme Clinic")
    response = client.post("/api/admin/tenants", json=body, headers=ADMIN)
    assert response.status_code == 201, response.text
    return response.json()


def _bearer(credential: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential}"}


class TestPublic:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["version"] == "1.0.0"
        assert data["upstream_configured"] is True
        assert "environment" in data

    def test_models(self, client: TestClient) -> None:
        response = client.get("/api/models")
        assert response.status_code == 200
        ids = [m["model_id"] for m in response.json()["models"]]
        assert "anthropic/claude-opus-4" in ids
        assert len(ids) == 5

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestAdminRoutes:
    def test_missing_secret(self, client: TestClient) -> None:
        response = client.get("/api/admin/tenants")
        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "unauthenticated"

    def test_wrong_secret(self, client: TestClient) -> None:
        response = client.get("/api/admin/dashboard", headers={"X-Admin-Secret": "nope"})
        assert response.status_code == 401

    def test_create_returns_credential_once(self, client: TestClient) -> None:
        created = _create(client, contact="ops@acme.test")
        assert created["credential"].startswith("tg_")
        assert created["tenant"]["tenant_id"] == "acme-clinic"
        assert created["tenant"]["plan"] == "pro"
        assert created["tenant"]["monthly_limit_usd"] == 50.0

        listing = client.get("/api/admin/tenants", headers=ADMIN).json()["tenants"]
        assert len(listing) == 1
        assert listing[0]["credential"].endswith("...")
        assert created["credential"] not in str(listing)
        assert listing[0]["usage_this_month"] == 0.0

    def test_duplicate_is_conflict(self, client: TestClient) -> None:
        _create(client)
        response = client.post("/api/admin/tenants", json={"name": "ACME clinic"}, headers=ADMIN)
        assert response.status_code == 409
        assert response.json()["error"]["kind"] == "conflict"

    def test_invalid_body_is_400(self, client: TestClient) -> None:
        response = client.post(
            "/api/admin/tenants",
            json={"name": "Acme", "monthly_limit_usd": "lots"},
            headers=ADMIN,
        )
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "validation_error"

    def test_patch_partial(self, client: TestClient) -> None:
        _create(client, plan="basic")
        response = client.patch(
            "/api/admin/tenants/acme-clinic",
            json={"monthly_limit_usd": 75},
            headers=ADMIN,
        )
        assert response.status_code == 200
        tenant = response.json()["tenant"]
        assert tenant["monthly_limit_usd"] == 75.0
        assert tenant["plan"] == "basic"

    def test_patch_unknown_tenant(self, client: TestClient) -> None:
        response = client.patch("/api/admin/tenants/ghost", json={"active": False}, headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"

    def test_rotate(self, client: TestClient) -> None:
        old = _create(client)["credential"]
        response = client.post("/api/admin/tenants/acme-clinic/rotate-credential", headers=ADMIN)
        assert response.status_code == 200
        new = response.json()["credential"]

        assert client.get("/api/tenant/status", headers=_bearer(old)).status_code == 401
        assert client.get("/api/tenant/status", headers=_bearer(new)).status_code == 200

    def test_usage_bad_period(self, client: TestClient) -> None:
        _create(client)
        response = client.get(
            "/api/admin/tenants/acme-clinic/usage", params={"period": "2025-13"}, headers=ADMIN,
        )
        assert response.status_code == 400

    def test_listing_sees_tenant_created_elsewhere(self, client: TestClient, settings, store,
                                                   upstream, instructions) -> None:
        cli = build_gateway(settings, store=store, upstream=upstream, instructions=instructions)
        asyncio.run(cli.admin.create_tenant(name="Elsewhere"))

        listing = client.get("/api/admin/tenants", headers=ADMIN).json()["tenants"]
        assert [t["tenant_id"] for t in listing] == ["elsewhere"]

    def test_dashboard(self, client: TestClient) -> None:
        _create(client)
        data = client.get("/api/admin/dashboard", headers=ADMIN).json()
        assert data["total_tenants"] == 1
        assert data["active_tenants"] == 1
        assert data["total_requests_this_month"] == 0
        assert len(data["available_models"]) == 5
        assert data["tenants"][0]["percent"] == 0


class TestTenantRoutes:
    def test_status_requires_credential(self, client: TestClient) -> None:
        response = client.get("/api/tenant/status")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_status_with_token_header(self, client: TestClient) -> None:
        credential = _create(client, plan="basic")["credential"]
        response = client.get("/api/tenant/status", headers={"X-Tenant-Token": credential})
        assert response.status_code == 200
        data = response.json()
        assert data["tenant_name"] == "Acme Clinic"
        assert data["used_this_month_usd"] == 0.0
        assert data["remaining_usd"] == 50.0
        assert [m["model_id"] for m in data["models"]] == [
            "anthropic/claude-sonnet-4",
            "google/gemini-2.5-flash",
        ]
        assert data["prompts_available"] == ["clinical", "summary"]

    def test_generate(self, client: TestClient, upstream) -> None:
        credential = _create(client)["credential"]
        response = client.post(
            "/api/generate",
            json={"model": "anthropic/claude-sonnet-4", "prompt_type": "clinical", "user_content": "x"},
            headers=_bearer(credential),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["text"] == "Report body"
        assert data["usage"]["cost_usd"] == 0.0105
        assert data["usage"]["month_total_usd"] == 0.0105
        assert data["usage"]["month_limit_usd"] == 50.0

    def test_generate_unauthenticated_before_body(self, client: TestClient, upstream) -> None:
        response = client.post("/api/generate", json={"nonsense": True})
        assert response.status_code == 401
        assert upstream.requests == []

    def test_generate_not_entitled(self, client: TestClient, upstream) -> None:
        credential = _create(client)["credential"]
        response = client.post(
            "/api/generate",
            json={"model": "anthropic/claude-opus-4", "user_content": "x"},
            headers=_bearer(credential),
        )
        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "model_not_entitled"
        assert upstream.requests == []

    def test_generate_quota_exceeded(self, client: TestClient, upstream) -> None:
        credential = _create(client, monthly_limit_usd=0)["credential"]
        response = client.post(
            "/api/generate",
            json={"model": "openai/gpt-4o", "user_content": "x"},
            headers=_bearer(credential),
        )
        assert response.status_code == 429
        error = response.json()["error"]
        assert error["kind"] == "quota_exceeded"
        assert error["limit_usd"] == 0.0

    def test_generate_deactivated(self, client: TestClient) -> None:
        credential = _create(client)["credential"]
        client.patch("/api/admin/tenants/acme-clinic", json={"active": False}, headers=ADMIN)
        response = client.post(
            "/api/generate",
            json={"model": "openai/gpt-4o", "user_content": "x"},
            headers=_bearer(credential),
        )
        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "deactivated"

    def test_generate_upstream_down(self, client: TestClient, upstream) -> None:
        credential = _create(client)["credential"]
        upstream.error = UpstreamUnreachableError("Could not reach the upstream provider")
        response = client.post(
            "/api/generate",
            json={"model": "openai/gpt-4o", "user_content": "x"},
            headers=_bearer(credential),
        )
        assert response.status_code == 503
        assert response.json()["error"]["kind"] == "upstream_unreachable"

        usage = client.get("/api/admin/tenants/acme-clinic/usage", headers=ADMIN).json()
        assert usage["total_requests"] == 0

    def test_generate_then_usage_report(self, client: TestClient) -> None:
        credential = _create(client)["credential"]
        for _ in range(3):
            client.post(
                "/api/generate",
                json={"model": "openai/gpt-4o", "prompt_type": "summary", "user_content": "x"},
                headers=_bearer(credential),
            )

        report = client.get("/api/admin/tenants/acme-clinic/usage", headers=ADMIN).json()

        assert report["tenant"] == "Acme Clinic"
        assert report["total_requests"] == 3
        assert report["by_model"]["openai/gpt-4o"]["count"] == 3
        assert report["by_model"]["openai/gpt-4o"]["tokens"] == 4500
        assert report["total_cost_usd"] == pytest.approx(0.0225)
        assert len(report["recent"]) == 3
        assert report["recent"][0]["prompt_type"] == "summary"


class TestOpenAPI:
    def test_error_envelope_documented(self, client: TestClient) -> None:
        paths = client.get("/openapi.json").json()["paths"]
        schema_ref = "#/components/schemas/ErrorResponse"

        generate = paths["/api/generate"]["post"]["responses"]
        assert generate["429"]["content"]["application/json"]["schema"]["$ref"] == schema_ref
        admin = paths["/api/admin/tenants"]["get"]["responses"]
        assert admin["401"]["content"]["application/json"]["schema"]["$ref"] == schema_ref
