"""Tests for the hookrelay REST API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hookrelay.api.app import (
    REQUEST_ID_HEADER,
    register_exception_handlers,
    register_request_context,
)
from hookrelay.api.auth import TokenValidator, reset_auth_singletons
from hookrelay.api.router import router, set_service
from hookrelay.api.schemas import CreatedWebhookResponse, WebhookResponse
from hookrelay.config import Settings
from hookrelay.exceptions import NotFoundError, ValidationError
from hookrelay.models import Delivery, Subscription
from hookrelay.service import WebhookService

BASE = "/api/v1/projects/proj_1/webhooks"


def make_subscription(**overrides) -> Subscription:
    fields = {
        "id": "whk_abc",
        "project_id": "proj_1",
        "name": "CI alerts",
        "url": "https://ci.example.com/hook",
        "secret": "s3cret",
        "events": ["EXECUTION_FAILED"],
    }
    fields.update(overrides)
    return Subscription(**fields)


def make_delivery(**overrides) -> Delivery:
    fields = {
        "id": "dlv_abc",
        "subscription_id": "whk_abc",
        "project_id": "proj_1",
        "event": "TEST_PING",
        "payload": "{}",
    }
    fields.update(overrides)
    return Delivery(**fields)


@pytest.fixture
def mock_service():
    """Create a mock WebhookService."""
    service = MagicMock(spec=WebhookService)
    for name in (
        "register",
        "get",
        "list",
        "update",
        "delete",
        "get_detail",
        "list_deliveries",
        "ping",
    ):
        setattr(service, name, AsyncMock())
    service.settings = Settings(env="test", auth_enabled=False)
    service.dispatcher = MagicMock(running=True)
    service.sweeper = MagicMock(running=False)
    return service


@pytest.fixture
def test_app(mock_service):
    """Create a test FastAPI app with mocked service."""
    app = FastAPI()
    register_request_context(app)
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")
    set_service(mock_service)
    yield app
    set_service(None)


@pytest.fixture
def client(test_app):
    """Create a test client."""
    return TestClient(test_app)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_healthy(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dispatcher_running"] is True
        assert data["sweeper_running"] is False

    def test_unhealthy_without_service(self, client):
        set_service(None)

        data = client.get("/api/v1/health").json()

        assert data["status"] == "unhealthy"
        assert data["storage_connected"] is False


class TestCreateEndpoint:
    """Tests for POST /projects/{project_id}/webhooks."""

    def test_create_returns_secret(self, client, mock_service):
        mock_service.register.return_value = make_subscription()

        response = client.post(
            BASE,
            json={
                "name": "CI alerts",
                "url": "https://ci.example.com/hook",
                "events": ["EXECUTION_FAILED"],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "whk_abc"
        assert data["secret"] == "s3cret"
        mock_service.register.assert_awaited_once_with(
            "proj_1",
            name="CI alerts",
            url="https://ci.example.com/hook",
            events=["EXECUTION_FAILED"],
            secret=None,
            description=None,
            is_active=True,
            created_by=None,
        )

    def test_create_inactive(self, client, mock_service):
        mock_service.register.return_value = make_subscription(is_active=False)

        response = client.post(
            BASE,
            json={
                "name": "CI alerts",
                "url": "https://ci.example.com/hook",
                "events": ["EXECUTION_FAILED"],
                "is_active": False,
            },
        )

        assert response.status_code == 201
        assert response.json()["is_active"] is False
        assert mock_service.register.await_args.kwargs["is_active"] is False

    def test_invalid_events_is_400(self, client, mock_service):
        mock_service.register.side_effect = ValidationError("events", "Invalid events: NOPE")

        response = client.post(
            BASE, json={"name": "x", "url": "https://x.example.com", "events": ["NOPE"]}
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["field"] == "events"
        assert "NOPE" in error["message"]

    def test_missing_field_is_400(self, client, mock_service):
        response = client.post(BASE, json={"name": "x", "url": "https://x.example.com"})

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "events"
        mock_service.register.assert_not_awaited()

    def test_unknown_field_is_400(self, client):
        response = client.post(
            BASE,
            json={
                "name": "x",
                "url": "https://x.example.com",
                "events": ["BUG_CREATED"],
                "failure_count": 0,
            },
        )

        assert response.status_code == 400


class TestReadEndpoints:
    """Tests for list, detail and delivery history."""

    def test_list_hides_secret(self, client, mock_service):
        mock_service.list.return_value = [make_subscription()]

        response = client.get(BASE)

        assert response.status_code == 200
        [webhook] = response.json()["webhooks"]
        assert webhook["id"] == "whk_abc"
        assert "secret" not in webhook

    def test_detail(self, client, mock_service):
        mock_service.get_detail.return_value = (make_subscription(), [make_delivery()])

        response = client.get(f"{BASE}/whk_abc")

        assert response.status_code == 200
        data = response.json()
        assert data["webhook"]["id"] == "whk_abc"
        assert "secret" not in data["webhook"]
        assert [d["id"] for d in data["deliveries"]] == ["dlv_abc"]
        mock_service.get_detail.assert_awaited_once_with("whk_abc", "proj_1")

    def test_detail_not_found(self, client, mock_service):
        mock_service.get_detail.side_effect = NotFoundError("webhook", "whk_nope")

        response = client.get(f"{BASE}/whk_nope")

        assert response.status_code == 404
        assert response.json()["error"]["resource_id"] == "whk_nope"

    def test_deliveries_pagination(self, client, mock_service):
        mock_service.list_deliveries.return_value = ([make_delivery()], 7)

        response = client.get(f"{BASE}/whk_abc/deliveries", params={"skip": 5, "take": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 7
        assert data["skip"] == 5
        assert data["take"] == 1
        assert len(data["deliveries"]) == 1
        mock_service.list_deliveries.assert_awaited_once_with("whk_abc", "proj_1", 5, 1)

    def test_deliveries_defaults(self, client, mock_service):
        mock_service.list_deliveries.return_value = ([], 0)

        data = client.get(f"{BASE}/whk_abc/deliveries").json()

        assert data == {"deliveries": [], "total": 0, "skip": 0, "take": 50}

    def test_negative_skip_is_400(self, client):
        response = client.get(f"{BASE}/whk_abc/deliveries", params={"skip": -1})
        assert response.status_code == 400


class TestUpdateEndpoint:
    """Tests for PATCH /projects/{project_id}/webhooks/{id}."""

    def test_update_passes_only_supplied_fields(self, client, mock_service):
        mock_service.update.return_value = 1
        mock_service.get.return_value = make_subscription(is_active=False)

        response = client.patch(f"{BASE}/whk_abc", json={"is_active": False})

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        _, _, patch = mock_service.update.await_args.args
        assert patch.model_dump(exclude_unset=True) == {"is_active": False}

    def test_update_missing_is_404(self, client, mock_service):
        mock_service.update.return_value = 0

        response = client.patch(f"{BASE}/whk_nope", json={"name": "x"})

        assert response.status_code == 404

    def test_update_invalid_url_is_400(self, client, mock_service):
        mock_service.update.side_effect = ValidationError("url", "Invalid URL format: nope")

        response = client.patch(f"{BASE}/whk_abc", json={"url": "nope"})

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "url"


class TestDeleteEndpoint:
    """Tests for DELETE /projects/{project_id}/webhooks/{id}."""

    def test_delete(self, client, mock_service):
        mock_service.delete.return_value = 1

        data = client.delete(f"{BASE}/whk_abc").json()

        assert data == {
            "success": True,
            "deleted": 1,
            "message": "Webhook deleted successfully",
        }

    def test_delete_unknown_still_succeeds(self, client, mock_service):
        mock_service.delete.return_value = 0

        response = client.delete(f"{BASE}/whk_nope")

        assert response.status_code == 200
        assert response.json()["deleted"] == 0


class TestPingEndpoint:
    """Tests for POST /projects/{project_id}/webhooks/{id}/test."""

    def test_ping_success(self, client, mock_service):
        delivery = make_delivery(status="SUCCESS", attempt_count=1, response_code=200)
        mock_service.ping.return_value = delivery

        response = client.post(f"{BASE}/whk_abc/test")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["delivery"]["response_code"] == 200

    def test_ping_failure_reports_unsuccessful(self, client, mock_service):
        mock_service.ping.return_value = make_delivery(
            status="PENDING", attempt_count=1, response_code=500
        )

        data = client.post(f"{BASE}/whk_abc/test").json()

        assert data["success"] is False

    def test_ping_not_found(self, client, mock_service):
        mock_service.ping.side_effect = NotFoundError("webhook", "whk_nope")

        assert client.post(f"{BASE}/whk_nope/test").status_code == 404


class TestAuthentication:
    """Tests for bearer auth and role checks on webhook routes."""

    @pytest.fixture
    def secured(self, mock_service):
        reset_auth_singletons()
        mock_service.settings = Settings(env="test", auth_enabled=True, auth_secret_key="k" * 32)
        yield TokenValidator("k" * 32)
        reset_auth_singletons()

    def test_missing_token_is_401(self, client, secured):
        assert client.get(BASE).status_code == 401

    def test_bad_token_is_401(self, client, secured):
        response = client.get(BASE, headers={"Authorization": "Bearer user_1:ADMIN:1:forged"})
        assert response.status_code == 401

    def test_tester_role_is_403(self, client, secured):
        token = secured.create_token("user_1", "TESTER")

        response = client.get(BASE, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403

    def test_developer_creates_with_attribution(self, client, mock_service, secured):
        mock_service.register.return_value = make_subscription(created_by="user_1")
        token = secured.create_token("user_1", "developer")

        response = client.post(
            BASE,
            json={"name": "x", "url": "https://x.example.com", "events": ["BUG_CREATED"]},
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 201
        assert mock_service.register.await_args.kwargs["created_by"] == "user_1"


class TestSchemas:
    """Tests for response schema conversion."""

    def test_webhook_response_excludes_secret(self):
        response = WebhookResponse.from_subscription(make_subscription())
        assert "secret" not in response.model_dump()

    def test_created_response_includes_secret(self):
        response = CreatedWebhookResponse.from_subscription(make_subscription())
        assert response.secret == "s3cret"


class TestRequestContext:
    """Tests for per-request logging context."""

    @pytest.fixture
    def context_client(self):
        app = FastAPI()
        register_request_context(app)

        @app.get("/context")
        async def read_context() -> dict:
            return structlog.contextvars.get_contextvars()

        return TestClient(app)

    def test_binds_generated_request_id(self, context_client):
        response = context_client.get("/context")

        bound = response.json()
        assert bound["request_id"].startswith("req_")
        assert bound["http_method"] == "GET"
        assert bound["http_path"] == "/context"
        assert response.headers[REQUEST_ID_HEADER] == bound["request_id"]

    def test_reuses_incoming_request_id(self, context_client):
        response = context_client.get("/context", headers={REQUEST_ID_HEADER: "req_upstream"})

        assert response.json()["request_id"] == "req_upstream"
        assert response.headers[REQUEST_ID_HEADER] == "req_upstream"

    def test_each_request_gets_its_own_id(self, context_client):
        first = context_client.get("/context", headers={REQUEST_ID_HEADER: "req_first"})
        second = context_client.get("/context")

        assert first.json()["request_id"] == "req_first"
        assert second.json()["request_id"] != "req_first"

    def test_webhook_routes_echo_request_id(self, client, mock_service):
        mock_service.list.return_value = []

        response = client.get(BASE, headers={REQUEST_ID_HEADER: "req_trace"})

        assert response.status_code == 200
        assert response.headers[REQUEST_ID_HEADER] == "req_trace"
