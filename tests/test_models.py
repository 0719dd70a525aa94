"""Tests for hookrelay data models."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from hookrelay.models import (
    REGISTRABLE_EVENTS,
    Delivery,
    PingEvent,
    Subscription,
    SubscriptionPatch,
    WebhookEvent,
    generate_id,
    is_registrable,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_subscription(**overrides) -> Subscription:
    fields = {
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
        "subscription_id": "whk_1",
        "project_id": "proj_1",
        "event": "EXECUTION_FAILED",
        "payload": '{"event":"EXECUTION_FAILED"}',
    }
    fields.update(overrides)
    return Delivery(**fields)


class TestEvents:
    """Tests for event tags and payload envelopes."""

    def test_registrable_events_closed_set(self):
        assert len(REGISTRABLE_EVENTS) == 11
        assert "BUG_STATUS_CHANGED" in REGISTRABLE_EVENTS
        assert "TEST_PING" not in REGISTRABLE_EVENTS

    def test_is_registrable(self):
        assert is_registrable("SUITE_FAILED")
        assert not is_registrable("TEST_PING")
        assert not is_registrable("suite_failed")

    def test_webhook_event_payload_shape(self):
        event = WebhookEvent(event="BUG_CREATED", project_id="proj_1", data={"bug_id": "b1"})
        body = json.loads(event.to_payload())

        assert body["event"] == "BUG_CREATED"
        assert body["project_id"] == "proj_1"
        assert body["data"] == {"bug_id": "b1"}
        assert "timestamp" in body

    def test_webhook_event_rejects_ping(self):
        with pytest.raises(ValidationError):
            WebhookEvent(event="TEST_PING", project_id="proj_1")

    def test_ping_payload(self):
        body = json.loads(PingEvent(webhook_id="whk_1", webhook_name="CI").to_payload())

        assert body["event"] == "TEST_PING"
        assert body["message"] == "This is a test webhook from TestTrack Pro"
        assert body["webhook_id"] == "whk_1"
        assert body["webhook_name"] == "CI"


class TestSubscription:
    """Tests for the Subscription model."""

    def test_defaults(self):
        sub = make_subscription()

        assert sub.id.startswith("whk_")
        assert sub.is_active
        assert sub.failure_count == 0
        assert sub.auto_disabled_at is None

    def test_requires_events(self):
        with pytest.raises(ValidationError):
            make_subscription(events=[])

    def test_subscribes_to(self):
        sub = make_subscription(events=["BUG_CREATED", "BUG_UPDATED"])

        assert sub.subscribes_to("BUG_CREATED")
        assert not sub.subscribes_to("TEST_CREATED")

    def test_inactive_subscribes_to_nothing(self):
        sub = make_subscription(is_active=False)
        assert not sub.subscribes_to("EXECUTION_FAILED")

    def test_record_success_resets_counter(self):
        sub = make_subscription(failure_count=7)
        sub.record_success(NOW)

        assert sub.failure_count == 0
        assert sub.last_success_at == NOW
        assert sub.last_triggered_at == NOW

    def test_record_failure_increments_by_one(self):
        sub = make_subscription(failure_count=3)
        tripped = sub.record_failure(NOW, threshold=10)

        assert not tripped
        assert sub.failure_count == 4
        assert sub.last_failure_at == NOW
        assert sub.is_active

    def test_record_failure_trips_at_threshold(self):
        sub = make_subscription(failure_count=9)
        tripped = sub.record_failure(NOW, threshold=10)

        assert tripped
        assert sub.failure_count == 10
        assert not sub.is_active
        assert sub.auto_disabled_at == NOW

    def test_already_disabled_does_not_trip_again(self):
        earlier = NOW - timedelta(hours=1)
        sub = make_subscription(failure_count=10, is_active=False, auto_disabled_at=earlier)
        tripped = sub.record_failure(NOW, threshold=10)

        assert not tripped
        assert sub.failure_count == 11
        assert sub.auto_disabled_at == earlier

    def test_public_view_omits_secret(self):
        view = make_subscription().public_view()

        assert "secret" not in view
        assert view["name"] == "CI alerts"

    def test_patch_forbids_unknown_fields(self):
        with pytest.raises(ValidationError):
            SubscriptionPatch(failure_count=0)


class TestDelivery:
    """Tests for the Delivery model."""

    def test_defaults(self):
        delivery = make_delivery()

        assert delivery.id.startswith("dlv_")
        assert delivery.status == "PENDING"
        assert delivery.attempt_count == 0
        assert delivery.next_retry_at is None
        assert not delivery.is_terminal

    def test_mark_success(self):
        delivery = make_delivery(status="RETRYING", attempt_count=1)
        delivery.mark_success(response_code=204, response_body="", duration_ms=12, at=NOW)

        assert delivery.status == "SUCCESS"
        assert delivery.response_code == 204
        assert delivery.delivered_at == NOW
        assert delivery.is_terminal

    def test_mark_success_truncates_body(self):
        delivery = make_delivery()
        delivery.mark_success(response_code=200, response_body="x" * 5000, duration_ms=1)

        assert len(delivery.response_body) == 1000

    def test_mark_retry_scheduled(self):
        delivery = make_delivery(status="RETRYING", attempt_count=1)
        delivery.mark_retry_scheduled(
            delay_seconds=60,
            error="HTTP 500: boom",
            kind="http_status",
            response_code=500,
            at=NOW,
        )

        assert delivery.status == "PENDING"
        assert delivery.next_retry_at == NOW + timedelta(seconds=60)
        assert delivery.error_kind == "http_status"
        assert not delivery.is_terminal

    def test_mark_failed_truncates_error(self):
        delivery = make_delivery(status="RETRYING", attempt_count=4)
        delivery.mark_failed(error="e" * 2000, kind="connection", at=NOW)

        assert delivery.status == "FAILED"
        assert len(delivery.error_message) == 500
        assert delivery.next_retry_at is None
        assert delivery.is_terminal

    def test_unknown_error_kind_rejected(self):
        with pytest.raises(ValidationError):
            make_delivery(error_kind="dns")


class TestGenerateId:
    def test_prefix_and_uniqueness(self):
        ids = {generate_id("dlv") for _ in range(50)}

        assert len(ids) == 50
        assert all(i.startswith("dlv_") for i in ids)
