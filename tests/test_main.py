"""Tests for the application wiring and health endpoints."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from domo.api.routes import webhooks
from domo.core.config import Settings
from domo.core.error_tracker import GUARDRAIL_VIOLATION, ErrorTracker
from domo.core.exceptions import DatabaseError
from domo.integrations.tavus_signature import generate_signature
from domo.main import app

# No context manager: the lifespan's startup validation needs real secrets.
client = TestClient(app, raise_server_exceptions=False)


def test_health() -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_webhook_health_reports_absorbed_failures() -> None:
    ErrorTracker.get_instance().record(GUARDRAIL_VIOLATION, "Invalid or missing video title.", "c1")

    response = client.get("/health/webhooks", params={"period_seconds": 600})

    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["total"] == 1
    assert body["summary"]["by_category"] == {GUARDRAIL_VIOLATION: 1}
    assert body["summary"]["period_seconds"] == 600


def test_webhook_route_is_mounted() -> None:
    response = client.post("/api/v1/webhooks/tavus", content=b"{}")

    assert response.status_code != 404


def test_domo_exception_handler() -> None:
    raw = b"{}"
    with (
        patch.object(webhooks, "settings", Settings(TAVUS_WEBHOOK_SECRET="main-secret")),
        patch.object(webhooks, "get_supabase_client", side_effect=DatabaseError("db down")),
    ):
        response = client.post(
            "/api/v1/webhooks/tavus",
            content=raw,
            headers={"x-tavus-signature": generate_signature(raw, "main-secret")},
        )

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "db down"
    assert body["code"] == "DATABASE_ERROR"
    assert body["request_id"]


def test_unsigned_request_with_broken_database_is_401() -> None:
    with (
        patch.object(webhooks, "settings", Settings(TAVUS_WEBHOOK_SECRET="main-secret")),
        patch.object(webhooks, "get_supabase_client", side_effect=DatabaseError("db down")),
    ):
        response = client.post("/api/v1/webhooks/tavus", content=b"{}")

    assert response.status_code == 401
    assert "db down" not in response.text
