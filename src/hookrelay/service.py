"""Webhook service layer.

This module provides the WebhookService that wires storage, the registry,
the delivery worker, the dispatcher and the retry sweeper together.

Example:
    ```python
    from hookrelay.service import WebhookService

    async with WebhookService.create() as webhooks:
        sub = await webhooks.register(
            "proj_1",
            name="Slack bridge",
            url="https://hooks.example.com/testtrack",
            events=["BUG_CREATED", "EXECUTION_FAILED"],
        )
        await webhooks.dispatch("BUG_CREATED", {"bug_id": "bug_42"}, "proj_1")
        ping = await webhooks.ping(sub.id, "proj_1")
        print(ping.status, ping.response_code)
    ```
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from hookrelay.config import Settings
from hookrelay.logging import get_logger
from hookrelay.models import (
    Delivery,
    PingEvent,
    Subscription,
    SubscriptionPatch,
)
from hookrelay.storage import HookRelayStorage
from hookrelay.webhooks import DeliveryWorker, Dispatcher, RetrySweeper, SubscriptionRegistry

logger = get_logger(__name__)


@dataclass
class WebhookService:
    """High-level webhook service.

    Provides:
    - register/get/list/update/delete: subscription management
    - dispatch(): fan a domain event out to matching subscriptions
    - ping(): send a synchronous TEST_PING to one subscription
    - sweep(): re-attempt deliveries whose retry time has passed

    Attributes:
        storage: Storage backend (Qdrant).
        settings: Configuration settings.
        transport: Optional httpx transport for outbound deliveries.
    """

    storage: HookRelayStorage
    settings: Settings
    transport: httpx.AsyncBaseTransport | None = None

    registry: SubscriptionRegistry = field(init=False, repr=False)
    worker: DeliveryWorker = field(init=False, repr=False)
    dispatcher: Dispatcher = field(init=False, repr=False)
    sweeper: RetrySweeper = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Build the delivery pipeline from settings."""
        self.registry = SubscriptionRegistry(self.storage)
        self.worker = DeliveryWorker(
            self.storage,
            self.settings.delivery,
            transport=self.transport,
        )
        self.dispatcher = Dispatcher(
            self.storage,
            self.worker,
            queue_size=self.settings.dispatch_queue_size,
            concurrency=self.settings.dispatch_concurrency,
        )
        self.sweeper = RetrySweeper(
            self.storage,
            self.worker,
            batch_size=self.settings.delivery.sweep_batch_size,
            interval_seconds=self.settings.sweep_interval_seconds,
        )

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses environment if None.
            transport: Optional httpx transport for outbound deliveries.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=HookRelayStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                max_scroll_limit=settings.storage_max_scroll_limit,
            ),
            settings=settings,
            transport=transport,
        )

    async def initialize(self) -> None:
        """Initialize storage and start the delivery consumers."""
        await self.storage.initialize()
        await self.dispatcher.start()

    async def close(self) -> None:
        """Drain in-flight deliveries, stop background work and close storage."""
        await self.sweeper.stop()
        await self.dispatcher.stop()
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    # Registry

    async def register(
        self,
        project_id: str,
        *,
        name: str,
        url: str,
        events: Iterable[str],
        secret: str | None = None,
        description: str | None = None,
        is_active: bool = True,
        created_by: str | None = None,
    ) -> Subscription:
        """Register a webhook. See SubscriptionRegistry.register."""
        return await self.registry.register(
            project_id,
            name=name,
            url=url,
            events=events,
            secret=secret,
            description=description,
            is_active=is_active,
            created_by=created_by,
        )

    async def get(self, subscription_id: str, project_id: str) -> Subscription:
        return await self.registry.get(subscription_id, project_id)

    async def list(self, project_id: str) -> list[Subscription]:
        return await self.registry.list(project_id)

    async def update(
        self,
        subscription_id: str,
        project_id: str,
        patch: SubscriptionPatch | dict[str, Any],
    ) -> int:
        return await self.registry.update(subscription_id, project_id, patch)

    async def delete(self, subscription_id: str, project_id: str) -> int:
        return await self.registry.delete(subscription_id, project_id)

    async def get_detail(
        self, subscription_id: str, project_id: str
    ) -> tuple[Subscription, list[Delivery]]:
        return await self.registry.get_detail(subscription_id, project_id)

    async def list_deliveries(
        self,
        subscription_id: str,
        project_id: str,
        skip: int = 0,
        take: int = 50,
    ) -> tuple[list[Delivery], int]:
        return await self.registry.list_deliveries(subscription_id, project_id, skip, take)

    # Delivery

    async def dispatch(
        self,
        event_type: str,
        event_body: dict[str, Any],
        project_id: str,
    ) -> list[str]:
        """Fan an event out to matching subscriptions. Never raises for delivery problems."""
        return await self.dispatcher.dispatch(event_type, event_body, project_id)

    async def ping(self, subscription_id: str, project_id: str) -> Delivery:
        """Send a TEST_PING to one subscription and wait for the single attempt.

        Raises:
            NotFoundError: If the subscription does not exist in the project.
        """
        subscription = await self.registry.get(subscription_id, project_id)
        payload = PingEvent(
            webhook_id=subscription.id,
            webhook_name=subscription.name,
        ).to_payload()

        delivery = Delivery(
            subscription_id=subscription.id,
            project_id=subscription.project_id,
            event="TEST_PING",
            payload=payload,
        )
        await self.storage.store_delivery(delivery)
        logger.info("webhook_ping", subscription_id=subscription.id, delivery_id=delivery.id)
        return await self.worker.attempt(delivery.id)

    async def sweep(self, now: datetime | None = None) -> int:
        """Run one retry sweep. Returns the number of deliveries processed."""
        return await self.sweeper.sweep(now)


async def dispatch_webhook_event(
    service: WebhookService,
    event_type: str,
    project_id: str,
    **data: object,
) -> list[str]:
    """Convenience function for domain code to fire an event.

    Args:
        service: Running WebhookService.
        event_type: Event tag, e.g. "BUG_CREATED".
        project_id: Project the event belongs to.
        **data: Event-specific payload data.

    Returns:
        IDs of the deliveries created.
    """
    return await service.dispatch(event_type, dict(data), project_id)


__all__ = ["WebhookService", "dispatch_webhook_event"]
