"""Tests for the Tavus webhook API route."""

import json
from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from domo.api.routes import webhooks as webhooks_mod
from domo.core.config import Settings
from domo.core.exceptions import DatabaseError, ExternalServiceError
from domo.integrations.tavus_signature import generate_signature

SECRET = "whsec_route"
URL = "/api/v1/webhooks/tavus"


def create_test_app() -> FastAPI:
    """Create minimal FastAPI app for testing."""
    app = FastAPI()
    app.include_router(webhooks_mod.router, prefix="/api/v1")
    return app


@pytest.fixture
def test_client() -> Iterator[TestClient]:
    yield TestClient(create_test_app())


@pytest.fixture
def mock_supabase() -> MagicMock:
    """Supabase client whose tables are all empty."""
    mock = MagicMock()
    empty = MagicMock(data=[])
    table = mock.table.return_value
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = empty
    table.select.return_value.eq.return_value.eq.return_value.limit.return_value.execute.return_value = empty
    table.update.return_value.eq.return_value.execute.return_value = empty
    table.insert.return_value.execute.return_value = MagicMock(data=[{"id": "row-1"}])
    return mock


@pytest.fixture
def route_env(mock_supabase: MagicMock) -> Iterator[MagicMock]:
    """Patch collaborators so the route runs against in-memory doubles."""
    with (
        patch.object(webhooks_mod, "get_supabase_client", return_value=mock_supabase),
        patch.object(webhooks_mod, "_get_pubsub", return_value=None),
        patch.object(
            webhooks_mod,
            "settings",
            Settings(TAVUS_WEBHOOK_SECRET=SECRET, TAVUS_WEBHOOK_TOKEN="route-token"),
        ),
    ):
        yield mock_supabase


def _post_signed(client: TestClient, event: dict[str, Any]) -> Any:
    raw = json.dumps(event).encode()
    return client.post(
        URL,
        content=raw,
        headers={
            "content-type": "application/json",
            "x-tavus-signature": generate_signature(raw, SECRET),
        },
    )


class TestAuthentication:
    """Tests for webhook authentication at the HTTP boundary."""

    def test_missing_signature_returns_401(self, test_client: TestClient, route_env: MagicMock) -> None:
        response = test_client.post(URL, json={"event_type": "system.replica_joined"})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_signature_covers_exact_bytes(self, test_client: TestClient, route_env: MagicMock) -> None:
        raw = b'{"event_type": "system.replica_joined"}'
        signature = generate_signature(raw, SECRET)

        response = test_client.post(
            URL,
            content=raw.replace(b": ", b":"),
            headers={"x-tavus-signature": signature},
        )

        assert response.status_code == 401

    def test_base64_signature_in_pair_format(self, test_client: TestClient, route_env: MagicMock) -> None:
        raw = b'{"event_type":"system.replica_joined","conversation_id":"c1"}'
        signature = generate_signature(raw, SECRET, fmt="base64")

        response = test_client.post(
            URL,
            content=raw,
            headers={"tavus-signature": f"t=1700000000,v1={signature}"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_query_token(self, test_client: TestClient, route_env: MagicMock) -> None:
        response = test_client.post(
            URL,
            params={"t": "route-token"},
            json={"event_type": "system.replica_joined"},
        )

        assert response.status_code == 200

    def test_nothing_configured_rejects_everything(
        self, test_client: TestClient, mock_supabase: MagicMock
    ) -> None:
        raw = b'{"event_type":"system.replica_joined"}'
        with (
            patch.object(webhooks_mod, "get_supabase_client", return_value=mock_supabase),
            patch.object(webhooks_mod, "_get_pubsub", return_value=None),
            patch.object(
                webhooks_mod,
                "settings",
                Settings(TAVUS_WEBHOOK_SECRET="", TAVUS_WEBHOOK_TOKEN=""),
            ),
        ):
            response = test_client.post(
                URL,
                content=raw,
                params={"t": ""},
                headers={"x-tavus-signature": generate_signature(raw, "")},
            )

        assert response.status_code == 401


class TestDelivery:
    """Tests for routed deliveries."""

    def test_invalid_json_returns_500(self, test_client: TestClient, route_env: MagicMock) -> None:
        raw = b"not-json"

        response = test_client.post(
            URL,
            content=raw,
            headers={"x-tavus-signature": generate_signature(raw, SECRET)},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Invalid JSON payload"}

    def test_missing_title_returns_message(self, test_client: TestClient, route_env: MagicMock) -> None:
        response = _post_signed(
            test_client,
            {
                "id": "evt-route-1",
                "event_type": "conversation.tool_call",
                "conversation_id": "conv-1",
                "data": {"name": "fetch_video", "args": "{}"},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Invalid or missing video title."}
        route_env.table.assert_any_call("processed_webhook_events")

    def test_unknown_demo_returns_message(self, test_client: TestClient, route_env: MagicMock) -> None:
        response = _post_signed(
            test_client,
            {
                "id": "evt-route-2",
                "event_type": "conversation.tool_call",
                "conversation_id": "conv-1",
                "data": {"name": "fetch_video", "args": {"video_title": "Overview"}},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Demo not found for conversation."}

    def test_realtime_unavailable_still_answers(
        self, test_client: TestClient, mock_supabase: MagicMock
    ) -> None:
        raw = b'{"event_type":"conversation.utterance","conversation_id":"c1","data":{"speech":"pause_video"}}'
        with (
            patch.object(webhooks_mod, "get_supabase_client", return_value=mock_supabase),
            patch.object(
                webhooks_mod.SupabaseClient,
                "get_realtime_client",
                side_effect=ExternalServiceError("supabase_realtime"),
            ),
            patch.object(webhooks_mod, "settings", Settings(TAVUS_WEBHOOK_SECRET=SECRET)),
        ):
            response = test_client.post(
                URL,
                content=raw,
                headers={"x-tavus-signature": generate_signature(raw, SECRET)},
            )

        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_database_unavailable_propagates(self, test_client: TestClient) -> None:
        raw = b"{}"
        with (
            patch.object(webhooks_mod, "settings", Settings(TAVUS_WEBHOOK_SECRET=SECRET)),
            patch.object(
                webhooks_mod,
                "get_supabase_client",
                side_effect=DatabaseError("Failed to initialize database connection"),
            ),
            pytest.raises(DatabaseError),
        ):
            test_client.post(
                URL,
                content=raw,
                headers={"x-tavus-signature": generate_signature(raw, SECRET)},
            )

    def test_unsigned_request_never_builds_collaborators(self, test_client: TestClient) -> None:
        with (
            patch.object(webhooks_mod, "settings", Settings(TAVUS_WEBHOOK_SECRET=SECRET)),
            patch.object(
                webhooks_mod,
                "get_supabase_client",
                side_effect=DatabaseError("db down: internal host"),
            ) as get_client,
            patch.object(webhooks_mod, "_get_pubsub") as get_pubsub,
        ):
            response = test_client.post(URL, content=b"{}")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        get_client.assert_not_called()
        get_pubsub.assert_not_called()
