"""Event fan-out onto a bounded delivery queue.

``dispatch`` resolves matching subscriptions, writes one PENDING delivery per
subscription and hands the IDs to a fixed pool of consumer tasks. It returns
as soon as the records exist; the HTTP work happens on the consumers.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

from hookrelay.exceptions import IntegrityFault
from hookrelay.logging import get_logger
from hookrelay.models import Delivery, WebhookEvent, is_registrable, utc_now

if TYPE_CHECKING:
    from hookrelay.models import Subscription
    from hookrelay.storage import HookRelayStorage

    from .worker import DeliveryWorker

logger = get_logger(__name__)


class Dispatcher:
    """Fans domain events out to subscriptions through a bounded work queue.

    When the queue is full a delivery is left PENDING with ``next_retry_at``
    set to now, so the next retry sweep sends it instead.

    Example:
        ```python
        dispatcher = Dispatcher(storage, worker, queue_size=1000, concurrency=10)
        await dispatcher.start()

        ids = await dispatcher.dispatch("BUG_CREATED", {"bug_id": "b1"}, "proj_1")

        await dispatcher.stop()
        ```
    """

    def __init__(
        self,
        storage: HookRelayStorage,
        worker: DeliveryWorker,
        queue_size: int = 1000,
        concurrency: int = 10,
    ) -> None:
        self._storage = storage
        self._worker = worker
        self._queue_size = queue_size
        self._concurrency = concurrency
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._consumers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._consumers)

    @property
    def pending(self) -> int:
        """Delivery IDs waiting on the queue."""
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the consumer tasks. Calling twice is a no-op."""
        if self._consumers:
            return
        self._consumers = [
            asyncio.create_task(self._consume(index), name=f"hookrelay-consumer-{index}")
            for index in range(self._concurrency)
        ]
        logger.info(
            "dispatcher_started", concurrency=self._concurrency, queue_size=self._queue_size
        )

    async def join(self) -> None:
        """Wait until every queued delivery has been attempted."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Stop the consumers, by default after the queue is drained."""
        if not self._consumers:
            return
        if drain:
            await self._queue.join()
        for task in self._consumers:
            task.cancel()
        for task in self._consumers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._consumers = []
        logger.info("dispatcher_stopped", drained=drain)

    async def dispatch(
        self,
        event_type: str,
        event_body: dict[str, Any],
        project_id: str,
    ) -> list[str]:
        """Create and enqueue one delivery per matching active subscription.

        Args:
            event_type: Event tag from the registrable set.
            event_body: Event-specific data, serialized into the payload.
            project_id: Project whose subscriptions receive the event.

        Returns:
            IDs of the deliveries created. Empty if nothing matched or the
            event could not be resolved. Never raises into the caller.
        """
        if not is_registrable(event_type):
            logger.warning("webhook_event_unknown", event=event_type, project_id=project_id)
            return []

        try:
            subscriptions = await self._storage.find_subscriptions_for_event(
                event_type, project_id
            )
            if not subscriptions:
                logger.debug("webhook_no_subscribers", event=event_type, project_id=project_id)
                return []

            payload = WebhookEvent(
                event=event_type,  # type: ignore[arg-type]
                project_id=project_id,
                data=event_body,
            ).to_payload()
        except Exception:
            logger.exception("webhook_dispatch_failed", event=event_type, project_id=project_id)
            return []

        results = await asyncio.gather(
            *(self._fan_out(subscription, event_type, payload) for subscription in subscriptions),
            return_exceptions=True,
        )

        delivery_ids: list[str] = []
        for subscription, result in zip(subscriptions, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "webhook_fan_out_failed",
                    subscription_id=subscription.id,
                    event=event_type,
                    error=str(result),
                )
            else:
                delivery_ids.append(result)
        return delivery_ids

    async def enqueue(self, delivery: Delivery) -> bool:
        """Hand a stored delivery to the consumers.

        Returns:
            False if the queue was full and the delivery was deferred to the sweeper.
        """
        try:
            self._queue.put_nowait(delivery.id)
        except asyncio.QueueFull:
            delivery.next_retry_at = utc_now()
            delivery.updated_at = delivery.next_retry_at
            await self._storage.store_delivery(delivery)
            logger.warning(
                "webhook_queue_full",
                delivery_id=delivery.id,
                queue_size=self._queue_size,
            )
            return False
        return True

    async def _fan_out(self, subscription: Subscription, event_type: str, payload: str) -> str:
        delivery = Delivery(
            subscription_id=subscription.id,
            project_id=subscription.project_id,
            event=event_type,
            payload=payload,
        )
        await self._storage.store_delivery(delivery)
        await self.enqueue(delivery)
        return delivery.id

    async def _consume(self, index: int) -> None:
        while True:
            delivery_id = await self._queue.get()
            try:
                await self._worker.attempt(delivery_id)
            except IntegrityFault as e:
                logger.error("webhook_integrity_fault", delivery_id=delivery_id, error=e.message)
            except Exception:
                logger.exception("webhook_attempt_crashed", delivery_id=delivery_id, consumer=index)
            finally:
                self._queue.task_done()
