"""Tests for the subscription registry."""

import pytest

from hookrelay.exceptions import NotFoundError, ValidationError
from hookrelay.models import Delivery
from hookrelay.webhooks.registry import (
    SubscriptionRegistry,
    validate_events,
    validate_name,
    validate_url,
)


@pytest.fixture
def registry(storage) -> SubscriptionRegistry:
    return SubscriptionRegistry(storage)


async def register(registry: SubscriptionRegistry, project_id: str = "proj_1", **overrides):
    fields = {
        "name": "CI alerts",
        "url": "https://ci.example.com/hook",
        "events": ["EXECUTION_FAILED"],
    }
    fields.update(overrides)
    return await registry.register(project_id, **fields)


class TestValidators:
    """Tests for input validators."""

    def test_name_is_stripped(self):
        assert validate_name("  CI  ") == "CI"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_blank_name_rejected(self, name):
        with pytest.raises(ValidationError) as exc_info:
            validate_name(name)
        assert exc_info.value.field == "name"

    def test_url_kept_as_given(self):
        assert validate_url("https://example.com/hook?x=1") == "https://example.com/hook?x=1"

    @pytest.mark.parametrize("url", ["", "not a url", "ftp://example.com/hook"])
    def test_bad_url_rejected(self, url):
        with pytest.raises(ValidationError) as exc_info:
            validate_url(url)
        assert exc_info.value.field == "url"

    def test_events_deduplicated_in_order(self):
        assert validate_events(["BUG_CREATED", "SUITE_FAILED", "BUG_CREATED"]) == [
            "BUG_CREATED",
            "SUITE_FAILED",
        ]

    def test_empty_events_rejected(self):
        with pytest.raises(ValidationError, match="At least one event is required"):
            validate_events([])

    def test_invalid_events_listed(self):
        with pytest.raises(ValidationError, match="Invalid events: NOPE, TEST_PING"):
            validate_events(["BUG_CREATED", "NOPE", "TEST_PING"])


class TestRegister:
    """Tests for SubscriptionRegistry.register."""

    async def test_register_generates_secret(self, registry, storage):
        sub = await register(registry, created_by="user_1")

        assert len(sub.secret) == 64
        assert sub.is_active
        assert sub.failure_count == 0
        assert sub.created_by == "user_1"
        assert await storage.get_subscription(sub.id, "proj_1") is not None

    async def test_register_keeps_supplied_secret(self, registry):
        sub = await register(registry, secret="mine")
        assert sub.secret == "mine"

    async def test_register_inactive(self, registry, storage):
        sub = await register(registry, is_active=False)

        loaded = await registry.get(sub.id, "proj_1")
        assert not loaded.is_active
        assert loaded.auto_disabled_at is None
        assert await storage.find_subscriptions_for_event("EXECUTION_FAILED", "proj_1") == []

        await registry.update(sub.id, "proj_1", {"is_active": True})

        [found] = await storage.find_subscriptions_for_event("EXECUTION_FAILED", "proj_1")
        assert found.id == sub.id

    async def test_register_invalid_events_stores_nothing(self, registry):
        with pytest.raises(ValidationError):
            await register(registry, events=["NOT_AN_EVENT"])

        assert await registry.list("proj_1") == []


class TestLookup:
    """Tests for get, list and get_detail."""

    async def test_get_other_project_is_not_found(self, registry):
        sub = await register(registry)

        with pytest.raises(NotFoundError) as exc_info:
            await registry.get(sub.id, "proj_2")
        assert exc_info.value.resource_type == "webhook"

    async def test_list_is_project_scoped(self, registry):
        await register(registry, name="mine")
        await register(registry, "proj_2", name="theirs")

        assert [s.name for s in await registry.list("proj_1")] == ["mine"]

    async def test_detail_includes_recent_deliveries(self, registry, storage):
        sub = await register(registry)
        delivery = Delivery(
            subscription_id=sub.id, project_id="proj_1", event="EXECUTION_FAILED", payload="{}"
        )
        await storage.store_delivery(delivery)

        loaded, deliveries = await registry.get_detail(sub.id, "proj_1")

        assert loaded.id == sub.id
        assert [d.id for d in deliveries] == [delivery.id]

    async def test_list_deliveries_clamps_negative_paging(self, registry, storage):
        sub = await register(registry)
        await storage.store_delivery(
            Delivery(subscription_id=sub.id, project_id="proj_1", event="BUG_CREATED", payload="{}")
        )

        page, total = await registry.list_deliveries(sub.id, "proj_1", skip=-5, take=10)

        assert total == 1
        assert len(page) == 1


class TestUpdate:
    """Tests for SubscriptionRegistry.update."""

    async def test_partial_update(self, registry):
        sub = await register(registry)

        count = await registry.update(
            sub.id, "proj_1", {"name": "Renamed", "events": ["BUG_CREATED", "BUG_CREATED"]}
        )

        assert count == 1
        loaded = await registry.get(sub.id, "proj_1")
        assert loaded.name == "Renamed"
        assert loaded.events == ["BUG_CREATED"]
        assert loaded.url == sub.url

    async def test_update_missing_returns_zero(self, registry):
        assert await registry.update("whk_missing", "proj_1", {"name": "x"}) == 0

    async def test_update_other_project_returns_zero(self, registry):
        sub = await register(registry)
        assert await registry.update(sub.id, "proj_2", {"name": "x"}) == 0

    async def test_update_validates_fields(self, registry):
        sub = await register(registry)

        with pytest.raises(ValidationError):
            await registry.update(sub.id, "proj_1", {"url": "nope"})
        with pytest.raises(ValidationError):
            await registry.update(sub.id, "proj_1", {"events": []})
        with pytest.raises(ValidationError):
            await registry.update(sub.id, "proj_1", {"secret": ""})

    async def test_reenable_clears_auto_disabled_at_keeps_counter(self, registry, storage):
        sub = await register(registry)
        sub.is_active = False
        sub.failure_count = 10
        sub.auto_disabled_at = sub.created_at
        await storage.store_subscription(sub)

        await registry.update(sub.id, "proj_1", {"is_active": True})

        loaded = await registry.get(sub.id, "proj_1")
        assert loaded.is_active
        assert loaded.auto_disabled_at is None
        assert loaded.failure_count == 10

    async def test_null_is_active_is_ignored(self, registry):
        sub = await register(registry)

        await registry.update(sub.id, "proj_1", {"is_active": None, "description": "d"})

        loaded = await registry.get(sub.id, "proj_1")
        assert loaded.is_active
        assert loaded.description == "d"

    async def test_rotate_secret(self, registry):
        sub = await register(registry)

        await registry.update(sub.id, "proj_1", {"secret": "rotated"})

        assert (await registry.get(sub.id, "proj_1")).secret == "rotated"


class TestDelete:
    """Tests for SubscriptionRegistry.delete."""

    async def test_delete_keeps_delivery_history(self, registry, storage):
        sub = await register(registry)
        delivery = Delivery(
            subscription_id=sub.id, project_id="proj_1", event="BUG_CREATED", payload="{}"
        )
        await storage.store_delivery(delivery)

        assert await registry.delete(sub.id, "proj_1") == 1
        assert await registry.delete(sub.id, "proj_1") == 0
        assert await storage.get_delivery(delivery.id) is not None

    async def test_delete_other_project(self, registry):
        sub = await register(registry)

        assert await registry.delete(sub.id, "proj_2") == 0
        assert await registry.get(sub.id, "proj_1")
