"""Subscription storage operations.

Subscriptions are keyed by {project_id}/{subscription_id}; every read and
write is project scoped. Counter updates run under a per-subscription lock so
concurrent delivery outcomes never lose an increment or a reset.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from hookrelay.models import utc_now
from hookrelay.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from hookrelay.models import Subscription

_RECORD_TYPE = "subscriptions"


class SubscriptionMixin:
    """Mixin providing subscription operations for HookRelayStorage.

    This mixin expects the following attributes/methods from the base class:
    - _build_key(record_id, project_id) -> str
    - _key_to_point_id(key) -> str
    - _collection_name(record_type) -> str
    - _lock_for(key) -> asyncio.Lock
    - _upsert / _retrieve / _scroll_all
    - client: AsyncQdrantClient
    """

    _build_key: Any
    _key_to_point_id: Any
    _collection_name: Any
    _lock_for: Any
    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    client: Any

    @qdrant_retry
    async def store_subscription(self, subscription: Subscription) -> str:
        """Create or overwrite a subscription record.

        Returns:
            The subscription ID.
        """
        key = self._build_key(subscription.id, subscription.project_id)
        await self._upsert(_RECORD_TYPE, key, subscription)
        return subscription.id

    @qdrant_retry
    async def get_subscription(self, subscription_id: str, project_id: str) -> Subscription | None:
        """Get a subscription by ID within a project.

        Returns:
            Subscription or None if absent or owned by another project.
        """
        from hookrelay.models import Subscription

        key = self._build_key(subscription_id, project_id)
        subscription: Subscription | None = await self._retrieve(_RECORD_TYPE, key, Subscription)
        return subscription

    async def list_subscriptions(
        self,
        project_id: str,
        active_only: bool = False,
    ) -> list[Subscription]:
        """List a project's subscriptions, newest first."""
        from hookrelay.models import Subscription

        conditions: list[models.FieldCondition] = [
            models.FieldCondition(key="project_id", match=models.MatchValue(value=project_id))
        ]
        if active_only:
            conditions.append(
                models.FieldCondition(key="is_active", match=models.MatchValue(value=True))
            )

        subscriptions: list[Subscription] = await self._scroll_all(
            _RECORD_TYPE, models.Filter(must=conditions), Subscription
        )
        subscriptions.sort(key=lambda s: s.created_at, reverse=True)
        return subscriptions

    async def find_subscriptions_for_event(
        self,
        event_type: str,
        project_id: str,
    ) -> list[Subscription]:
        """Get all active subscriptions in a project that receive an event type."""
        subscriptions = await self.list_subscriptions(project_id, active_only=True)
        return [s for s in subscriptions if s.subscribes_to(event_type)]

    async def update_subscription(
        self,
        subscription_id: str,
        project_id: str,
        mutate: Callable[[Subscription], None],
    ) -> Subscription | None:
        """Apply a read-modify-write change to one subscription under its lock.

        Args:
            subscription_id: ID of the subscription.
            project_id: Owning project.
            mutate: Callback that edits the loaded record in place.

        Returns:
            The updated subscription, or None if not found.
        """
        key = self._build_key(subscription_id, project_id)
        async with self._lock_for(key):
            subscription = await self.get_subscription(subscription_id, project_id)
            if subscription is None:
                return None
            mutate(subscription)
            subscription.updated_at = utc_now()
            await self.store_subscription(subscription)
            return subscription

    async def delete_subscription(self, subscription_id: str, project_id: str) -> int:
        """Delete a subscription.

        Returns:
            Number of records removed (0 or 1).
        """
        key = self._build_key(subscription_id, project_id)
        async with self._lock_for(key):
            if await self.get_subscription(subscription_id, project_id) is None:
                return 0
            await self.client.delete(
                collection_name=self._collection_name(_RECORD_TYPE),
                points_selector=models.PointIdsList(points=[self._key_to_point_id(key)]),
            )
            return 1

    async def record_subscription_success(
        self,
        subscription_id: str,
        project_id: str,
        at: datetime,
    ) -> Subscription | None:
        """Reset the consecutive failure counter after a successful attempt."""
        return await self.update_subscription(
            subscription_id, project_id, lambda s: s.record_success(at)
        )

    async def record_subscription_failure(
        self,
        subscription_id: str,
        project_id: str,
        at: datetime,
        threshold: int,
    ) -> tuple[Subscription | None, bool]:
        """Count one failed attempt and trip the breaker in the same critical section.

        Returns:
            (updated subscription or None, whether this failure disabled it).
        """
        tripped = False

        def _apply(subscription: Subscription) -> None:
            nonlocal tripped
            tripped = subscription.record_failure(at, threshold)

        subscription = await self.update_subscription(subscription_id, project_id, _apply)
        return subscription, tripped
