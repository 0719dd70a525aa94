"""Delivery worker: one signed HTTP attempt per call.

The worker owns every state change of a delivery record and every change to
a subscription's health counters. Failures of the outbound call are
absorbed into the record; only a vanished delivery or subscription raises.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import httpx

from hookrelay.config import DeliveryPolicy
from hookrelay.exceptions import IntegrityFault, TerminalDeliveryFailure, TransientDeliveryFailure
from hookrelay.logging import delivery_context, get_logger
from hookrelay.models import utc_now

from .signing import DELIVERY_ID_HEADER, EVENT_HEADER, SIGNATURE_HEADER, sign_payload

if TYPE_CHECKING:
    from hookrelay.models import Delivery, Subscription
    from hookrelay.storage import HookRelayStorage

logger = get_logger(__name__)

INACTIVE_MESSAGE = "Webhook is inactive"
MISSING_MESSAGE = "Webhook not found"

# Characters of response body quoted in an HTTP error message
_ERROR_BODY_PREVIEW = 200


class DeliveryWorker:
    """Performs delivery attempts and applies their outcomes.

    Example:
        ```python
        worker = DeliveryWorker(storage, settings.delivery)
        delivery = await worker.attempt("dlv_abc123")
        print(delivery.status, delivery.attempt_count)
        ```
    """

    def __init__(
        self,
        storage: HookRelayStorage,
        policy: DeliveryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            storage: Storage holding subscriptions and deliveries.
            policy: Retry/timeout/breaker policy. Defaults to DeliveryPolicy().
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests.
        """
        self._storage = storage
        self._policy = policy or DeliveryPolicy()
        self._transport = transport

    @property
    def policy(self) -> DeliveryPolicy:
        return self._policy

    async def attempt(self, delivery_id: str) -> Delivery:
        """Make at most one HTTP attempt for a delivery.

        Returns:
            The delivery record after the attempt. If the delivery is not
            PENDING (terminal, or claimed by another worker) it is returned
            unchanged and nothing is sent.

        Raises:
            IntegrityFault: If the delivery or its subscription no longer exists.
        """
        delivery = await self._storage.get_delivery(delivery_id)
        if delivery is None:
            raise IntegrityFault(f"Delivery not found: {delivery_id}")

        with delivery_context(delivery.id, delivery.subscription_id):
            if delivery.status != "PENDING":
                logger.debug("webhook_attempt_skipped", status=delivery.status)
                return delivery

            subscription = await self._storage.get_subscription(
                delivery.subscription_id, delivery.project_id
            )
            try:
                subscription = self._require_deliverable(subscription)
            except TerminalDeliveryFailure as failure:
                return await self._abandon(delivery, failure)

            claimed = await self._storage.claim_delivery(delivery.id)
            if claimed is None:
                logger.debug("webhook_claim_lost")
                current = await self._storage.get_delivery(delivery.id)
                return current or delivery

            return await self._send_and_record(subscription, claimed)

    def _require_deliverable(self, subscription: Subscription | None) -> Subscription:
        if subscription is None:
            raise TerminalDeliveryFailure(MISSING_MESSAGE, kind="subscription_missing")
        if not subscription.is_active:
            raise TerminalDeliveryFailure(INACTIVE_MESSAGE, kind="subscription_inactive")
        return subscription

    async def _abandon(self, delivery: Delivery, failure: TerminalDeliveryFailure) -> Delivery:
        """Fail a delivery whose subscription cannot receive it. No HTTP call is made."""
        abandoned = await self._storage.abandon_delivery(
            delivery.id,
            error=failure.reason,
            kind=failure.kind,  # type: ignore[arg-type]
        )
        logger.warning("webhook_abandoned", reason=failure.reason, kind=failure.kind)
        if failure.kind == "subscription_missing":
            raise IntegrityFault(
                f"Subscription {delivery.subscription_id} missing for delivery {delivery.id}"
            ) from failure
        if abandoned is None:
            current = await self._storage.get_delivery(delivery.id)
            return current or delivery
        return abandoned

    async def _send_and_record(self, subscription: Subscription, delivery: Delivery) -> Delivery:
        started = time.monotonic()
        try:
            response = await self._post(subscription, delivery)
        except TransientDeliveryFailure as failure:
            duration_ms = int((time.monotonic() - started) * 1000)
            await self._record_failure(subscription, delivery, failure, duration_ms)
        else:
            duration_ms = int((time.monotonic() - started) * 1000)
            await self._record_success(subscription, delivery, response, duration_ms)
        return delivery

    async def _post(self, subscription: Subscription, delivery: Delivery) -> httpx.Response:
        """Send the signed payload, raising TransientDeliveryFailure on any non-2xx outcome."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._policy.user_agent,
            SIGNATURE_HEADER: sign_payload(subscription.secret, delivery.payload),
            EVENT_HEADER: delivery.event,
            DELIVERY_ID_HEADER: delivery.id,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._policy.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    subscription.url,
                    content=delivery.payload.encode("utf-8"),
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            raise TransientDeliveryFailure(
                "timeout", f"Request timed out after {self._policy.timeout_seconds:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise TransientDeliveryFailure("connection", str(e) or type(e).__name__) from e

        if not response.is_success:
            body = response.text
            raise TransientDeliveryFailure(
                "http_status",
                f"HTTP {response.status_code}: {body[:_ERROR_BODY_PREVIEW]}",
                response_code=response.status_code,
                response_body=body,
            )
        return response

    async def _record_success(
        self,
        subscription: Subscription,
        delivery: Delivery,
        response: httpx.Response,
        duration_ms: int,
    ) -> None:
        now = utc_now()
        delivery.mark_success(
            response_code=response.status_code,
            response_body=response.text or None,
            duration_ms=duration_ms,
            at=now,
            body_limit=self._policy.response_body_limit,
        )
        await self._storage.save_delivery_outcome(delivery)
        await self._storage.record_subscription_success(
            subscription.id, subscription.project_id, now
        )
        logger.info(
            "webhook_delivered",
            event=delivery.event,
            url=subscription.url,
            status_code=response.status_code,
            attempt=delivery.attempt_count,
            duration_ms=duration_ms,
        )

    async def _record_failure(
        self,
        subscription: Subscription,
        delivery: Delivery,
        failure: TransientDeliveryFailure,
        duration_ms: int,
    ) -> None:
        now = utc_now()
        # attempt_count already includes this attempt; earlier ones each consumed one delay
        should_retry = delivery.attempt_count - 1 < len(self._policy.retry_delays_seconds)
        outcome = {
            "error": failure.message,
            "kind": failure.kind,
            "response_code": failure.response_code,
            "response_body": failure.response_body,
            "duration_ms": duration_ms,
            "at": now,
            "body_limit": self._policy.response_body_limit,
            "error_limit": self._policy.error_message_limit,
        }
        if should_retry:
            delay = self._policy.retry_delay(delivery.attempt_count)
            delivery.mark_retry_scheduled(delay_seconds=delay, **outcome)  # type: ignore[arg-type]
        else:
            delivery.mark_failed(**outcome)  # type: ignore[arg-type]
        await self._storage.save_delivery_outcome(delivery)

        _, tripped = await self._storage.record_subscription_failure(
            subscription.id,
            subscription.project_id,
            now,
            threshold=self._policy.failure_threshold,
        )

        if should_retry:
            logger.info(
                "webhook_retry_scheduled",
                event=delivery.event,
                url=subscription.url,
                attempt=delivery.attempt_count,
                error_kind=failure.kind,
                next_retry_at=(
                    delivery.next_retry_at.isoformat() if delivery.next_retry_at else None
                ),
            )
        else:
            logger.warning(
                "webhook_failed",
                event=delivery.event,
                url=subscription.url,
                attempts=delivery.attempt_count,
                error_kind=failure.kind,
                error=delivery.error_message,
            )
        if tripped:
            logger.warning(
                "webhook_auto_disabled",
                url=subscription.url,
                threshold=self._policy.failure_threshold,
            )
