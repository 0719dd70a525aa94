"""Qdrant storage client for hookrelay.

This module provides the HookRelayStorage class that combines
subscription and delivery operations through mixins.

Example:
    ```python
    from hookrelay.storage import HookRelayStorage

    async with HookRelayStorage() as storage:
        await storage.store_subscription(subscription)
        due = await storage.list_due_deliveries(utc_now(), limit=50)
    ```
"""

from __future__ import annotations

from .base import StorageBase
from .deliveries import DeliveryMixin
from .subscriptions import SubscriptionMixin


class HookRelayStorage(SubscriptionMixin, DeliveryMixin, StorageBase):
    """Async Qdrant storage for webhook subscriptions and delivery records.

    Records are stored as point payloads; lookups go through deterministic
    point IDs and payload filters, never vector search.
    """

    async def __aenter__(self) -> HookRelayStorage:
        """Async context manager entry."""
        await self.initialize()
        return self


__all__ = ["HookRelayStorage"]
