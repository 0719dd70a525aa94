"""Periodic retry sweep over due deliveries."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING

from hookrelay.exceptions import IntegrityFault
from hookrelay.logging import get_logger
from hookrelay.models import utc_now

if TYPE_CHECKING:
    from hookrelay.storage import HookRelayStorage

    from .worker import DeliveryWorker

logger = get_logger(__name__)


class RetrySweeper:
    """Finds PENDING deliveries whose retry time has passed and re-attempts them.

    ``sweep`` can be called directly (e.g. from a cron job); ``start`` runs it
    every ``interval_seconds`` in a background task until ``stop``.
    """

    def __init__(
        self,
        storage: HookRelayStorage,
        worker: DeliveryWorker,
        batch_size: int = 50,
        interval_seconds: float = 300.0,
    ) -> None:
        self._storage = storage
        self._worker = worker
        self._batch_size = batch_size
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, now: datetime | None = None) -> int:
        """Attempt up to ``batch_size`` due deliveries, one at a time.

        Args:
            now: Cut-off for ``next_retry_at``. Defaults to the current time.

        Returns:
            Number of deliveries selected.
        """
        due = await self._storage.list_due_deliveries(now or utc_now(), limit=self._batch_size)

        for delivery in due:
            try:
                await self._worker.attempt(delivery.id)
            except IntegrityFault as e:
                logger.error("webhook_integrity_fault", delivery_id=delivery.id, error=e.message)
            except Exception:
                logger.exception("webhook_retry_crashed", delivery_id=delivery.id)

        if due:
            logger.info("retry_sweep_completed", processed=len(due))
        return len(due)

    def start(self) -> None:
        """Start the background sweep loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="hookrelay-retry-sweeper")

    async def stop(self) -> None:
        """Cancel the background sweep loop."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        logger.info("retry_sweeper_started", interval_seconds=self._interval_seconds)
        while True:
            try:
                await asyncio.sleep(self._interval_seconds)
                await self.sweep()
            except asyncio.CancelledError:
                logger.info("retry_sweeper_stopped")
                raise
            except Exception:
                logger.exception("retry_sweep_failed")
