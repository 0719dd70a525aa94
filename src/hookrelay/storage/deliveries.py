"""Delivery record storage operations.

Deliveries are keyed by their own ID. The PENDING -> RETRYING claim is a
conditional update under a per-delivery lock, so an attempt already in flight
and a sweep that finds the same record cannot both send it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from hookrelay.models import utc_now
from hookrelay.storage.retry import qdrant_retry

if TYPE_CHECKING:
    from hookrelay.models import Delivery, ErrorKind

_RECORD_TYPE = "deliveries"


class DeliveryMixin:
    """Mixin providing delivery record operations for HookRelayStorage."""

    _build_key: Any
    _collection_name: Any
    _lock_for: Any
    _payload_to_record: Any
    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    client: Any

    @qdrant_retry
    async def store_delivery(self, delivery: Delivery) -> str:
        """Create or overwrite a delivery record.

        Returns:
            The delivery ID.
        """
        await self._upsert(_RECORD_TYPE, self._build_key(delivery.id), delivery)
        return delivery.id

    @qdrant_retry
    async def get_delivery(self, delivery_id: str) -> Delivery | None:
        """Get a delivery by ID."""
        from hookrelay.models import Delivery

        delivery: Delivery | None = await self._retrieve(
            _RECORD_TYPE, self._build_key(delivery_id), Delivery
        )
        return delivery

    async def claim_delivery(self, delivery_id: str) -> Delivery | None:
        """Atomically move a PENDING delivery to RETRYING and count the attempt.

        Returns:
            The claimed delivery, or None if it is missing or no longer PENDING.
        """
        async with self._lock_for(self._build_key(delivery_id)):
            delivery = await self.get_delivery(delivery_id)
            if delivery is None or delivery.status != "PENDING":
                return None
            delivery.status = "RETRYING"
            delivery.attempt_count += 1
            delivery.next_retry_at = None
            delivery.updated_at = utc_now()
            await self.store_delivery(delivery)
            return delivery

    async def abandon_delivery(
        self,
        delivery_id: str,
        error: str,
        kind: ErrorKind,
    ) -> Delivery | None:
        """Terminally fail a PENDING delivery without counting an attempt.

        Returns:
            The failed delivery, or None if it is missing or no longer PENDING.
        """
        async with self._lock_for(self._build_key(delivery_id)):
            delivery = await self.get_delivery(delivery_id)
            if delivery is None or delivery.status != "PENDING":
                return None
            delivery.mark_failed(error=error, kind=kind)
            await self.store_delivery(delivery)
            return delivery

    async def save_delivery_outcome(self, delivery: Delivery) -> None:
        """Persist the result of an attempt under the delivery's lock."""
        async with self._lock_for(self._build_key(delivery.id)):
            await self.store_delivery(delivery)

    async def list_due_deliveries(self, now: datetime, limit: int) -> list[Delivery]:
        """Get PENDING deliveries whose retry time has passed, oldest due first."""
        from hookrelay.models import Delivery

        due_filter = models.Filter(
            must=[
                models.FieldCondition(key="status", match=models.MatchValue(value="PENDING")),
                models.FieldCondition(
                    key="next_retry_ts",
                    range=models.Range(lte=now.timestamp()),
                ),
            ]
        )
        deliveries: list[Delivery] = await self._scroll_all(_RECORD_TYPE, due_filter, Delivery)
        deliveries = [d for d in deliveries if d.next_retry_at is not None]
        deliveries.sort(key=lambda d: d.next_retry_at)  # type: ignore[arg-type, return-value]
        return deliveries[:limit]

    @qdrant_retry
    async def list_deliveries_for_subscription(
        self,
        subscription_id: str,
        project_id: str,
        skip: int = 0,
        take: int = 50,
    ) -> tuple[list[Delivery], int]:
        """Page through a subscription's delivery history, newest first.

        The total is an exact count, so it is not bounded by the scroll cap.
        The page is read with an ordered scroll on ``created_ts``; Qdrant does
        not accept an offset alongside ``order_by``, so the first ``skip + take``
        records are read and the leading ``skip`` dropped.

        Returns:
            (page of deliveries, total number of deliveries).
        """
        from hookrelay.models import Delivery

        collection_name = self._collection_name(_RECORD_TYPE)
        history_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="subscription_id", match=models.MatchValue(value=subscription_id)
                ),
                models.FieldCondition(key="project_id", match=models.MatchValue(value=project_id)),
            ]
        )
        counted = await self.client.count(
            collection_name=collection_name,
            count_filter=history_filter,
            exact=True,
        )
        total: int = counted.count
        if take <= 0 or skip >= total:
            return [], total

        points, _ = await self.client.scroll(
            collection_name=collection_name,
            scroll_filter=history_filter,
            limit=skip + take,
            order_by=models.OrderBy(key="created_ts", direction=models.Direction.DESC),
            with_payload=True,
        )
        deliveries: list[Delivery] = [
            self._payload_to_record(p.payload, Delivery) for p in points if p.payload is not None
        ]
        return deliveries[skip:], total
