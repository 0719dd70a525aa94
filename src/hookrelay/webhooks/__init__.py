"""Outbound webhook delivery for hookrelay.

Provides signed delivery of platform events to registered endpoints,
with bounded retries and a per-subscription circuit breaker.

Example:
    ```python
    from hookrelay.webhooks import Dispatcher, DeliveryWorker, RetrySweeper

    worker = DeliveryWorker(storage, settings.delivery)
    dispatcher = Dispatcher(storage, worker)
    await dispatcher.start()
    await dispatcher.dispatch("EXECUTION_FAILED", {"execution_id": "ex_1"}, "proj_1")

    sweeper = RetrySweeper(storage, worker)
    await sweeper.sweep()
    ```
"""

from .dispatcher import Dispatcher
from .registry import SubscriptionRegistry, validate_events, validate_name, validate_url
from .signing import (
    DELIVERY_ID_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    generate_secret,
    sign_payload,
    verify_signature,
)
from .sweeper import RetrySweeper
from .worker import DeliveryWorker

__all__ = [
    "DELIVERY_ID_HEADER",
    "DeliveryWorker",
    "Dispatcher",
    "EVENT_HEADER",
    "RetrySweeper",
    "SIGNATURE_HEADER",
    "SubscriptionRegistry",
    "generate_secret",
    "sign_payload",
    "validate_events",
    "validate_name",
    "validate_url",
    "verify_signature",
]
