"""
Tests for the impersonation HTTP endpoints.

Requests go through the full FastAPI app (middleware included) over httpx's
ASGI transport; the service dependency is bound to the test database and clock.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api import deps
from app.main import app
from app.services.impersonation import ImpersonationService
from tests.conftest import ADMIN_TOKEN, WORKER_TOKEN

ADMIN_HEADERS = {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest_asyncio.fixture
async def client(session_factory, clock, users):
    async def override_service():
        async with session_factory() as session:
            yield ImpersonationService(session, clock=clock)

    app.dependency_overrides[deps.get_impersonation_service] = override_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


async def start(client, email="john.doe@example.com", headers=ADMIN_HEADERS):
    return await client.post(
        "/api/impersonation/start",
        json={"target_user_email": email, "reason": "Ticket #4521"},
        headers=headers,
    )


class TestImpersonationLifecycleEndpoints:
    @pytest.mark.asyncio
    async def test_start_status_end(self, client):
        started = await start(client)
        assert started.status_code == 200
        body = started.json()
        assert body["success"] is True
        assert body["impersonation_token"].startswith("imp_")
        assert body["correlation_id"].startswith("cor_")
        assert body["expires"].startswith("2026-01-01T12:30:00")

        token = body["impersonation_token"]
        status = await client.get("/api/impersonation/status", headers={"Authorization": f"Bearer {token}"})
        assert status.status_code == 200
        assert status.json()["is_impersonating"] is True
        assert status.json()["target_user"]["email"] == "john.doe@example.com"
        assert status.json()["time_remaining_ms"] == 1_800_000

        ended = await client.post("/api/impersonation/end", json={"impersonation_token": token})
        assert ended.status_code == 200
        assert ended.json() == {"success": True, "original_session_token": ADMIN_TOKEN}

        again = await client.post("/api/impersonation/end", json={"impersonation_token": token})
        assert again.status_code == 409
        assert again.json()["detail"] == "Impersonation session already terminated"

    @pytest.mark.asyncio
    async def test_status_without_session_is_minimal(self, client):
        response = await client.get("/api/impersonation/status", headers={"X-Impersonation-Token": "imp_unknown"})

        assert response.status_code == 200
        assert response.json() == {"is_impersonating": False}

    @pytest.mark.asyncio
    async def test_status_token_header(self, client):
        token = (await start(client)).json()["impersonation_token"]

        response = await client.get("/api/impersonation/status", headers={"X-Impersonation-Token": token})

        assert response.json()["is_impersonating"] is True
        assert response.json()["target_user"]["email"] == "john.doe@example.com"

    @pytest.mark.asyncio
    async def test_status_ignores_query_string_token(self, client):
        token = (await start(client)).json()["impersonation_token"]

        response = await client.get("/api/impersonation/status", params={"session_token": token})

        assert response.status_code == 200
        assert response.json() == {"is_impersonating": False}

    @pytest.mark.asyncio
    async def test_session_cookie_is_accepted(self, client):
        response = await start(client, headers={"Cookie": f"{deps.SESSION_COOKIE_NAME}={ADMIN_TOKEN}"})

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_end_unknown_token(self, client):
        response = await client.post("/api/impersonation/end", json={"impersonation_token": "imp_nope"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Impersonation session not found"


class TestImpersonationErrorMapping:
    @pytest.mark.asyncio
    async def test_missing_credentials(self, client):
        response = await start(client, headers={})

        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    @pytest.mark.asyncio
    async def test_non_admin(self, client):
        response = await start(client, headers={"Authorization": f"Bearer {WORKER_TOKEN}"})

        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions: System administrator role required"

    @pytest.mark.asyncio
    async def test_admin_target(self, client):
        response = await start(client, email="joan@supportsignal.io")

        assert response.status_code == 403
        assert response.json()["detail"] == "Cannot impersonate other system administrators"

    @pytest.mark.asyncio
    async def test_unknown_target(self, client):
        response = await start(client, email="nobody@example.com")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_concurrent_limit(self, client):
        for _ in range(3):
            assert (await start(client)).status_code == 200

        response = await start(client)
        assert response.status_code == 409
        assert response.json()["detail"] == "Maximum concurrent impersonation sessions reached (3)"

    @pytest.mark.asyncio
    async def test_request_validation(self, client):
        response = await client.post(
            "/api/impersonation/start",
            json={"target_user_email": "john.doe@example.com", "reason": ""},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 422


class TestAdminConsoleEndpoints:
    @pytest.mark.asyncio
    async def test_search_users(self, client):
        response = await client.get("/api/impersonation/users", params={"search": "jo", "limit": 10}, headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert [user["name"] for user in response.json()] == ["Jane Johnson", "John Doe"]
        assert response.json()[0]["company_name"] == "Acme Care Services"

    @pytest.mark.asyncio
    async def test_search_requires_admin(self, client):
        response = await client.get("/api/impersonation/users", params={"search": "jo"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_active_sessions_and_emergency_terminate(self, client):
        await start(client)
        await start(client, email="jane.j@example.com")

        sessions = await client.get("/api/impersonation/sessions", headers=ADMIN_HEADERS)
        assert sessions.status_code == 200
        assert len(sessions.json()) == 2

        terminated = await client.post("/api/impersonation/emergency-terminate", headers=ADMIN_HEADERS)
        assert terminated.status_code == 200
        assert terminated.json()["sessions_terminated"] == 2

        sessions = await client.get("/api/impersonation/sessions", headers=ADMIN_HEADERS)
        assert sessions.json() == []

    @pytest.mark.asyncio
    async def test_audit_trail(self, client):
        correlation_id = (await start(client)).json()["correlation_id"]

        response = await client.get(
            "/api/impersonation/audit",
            params={"correlation_id": correlation_id, "operation": "start"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["operation"] == "start"

    @pytest.mark.asyncio
    async def test_audit_trail_requires_admin(self, client):
        response = await client.get("/api/impersonation/audit", headers={"Authorization": f"Bearer {WORKER_TOKEN}"})
        assert response.status_code == 403


class TestMiddlewareAndHealth:
    @pytest.mark.asyncio
    async def test_security_headers(self, client):
        response = await client.get("/api/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_root_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
