"""Data models for hookrelay.

Records:
    - Subscription: A project's registered webhook endpoint and its health counters
    - Delivery: One event sent to one subscription, with attempt bookkeeping

Payloads:
    - WebhookEvent: Envelope for a fanned-out domain event
    - PingEvent: Body of a manual test ping
"""

from .base import generate_id, truncate, utc_now
from .delivery import (
    ERROR_MESSAGE_LIMIT,
    RESPONSE_BODY_LIMIT,
    TERMINAL_STATUSES,
    Delivery,
    DeliveryStatus,
    ErrorKind,
)
from .events import (
    PING_MESSAGE,
    REGISTRABLE_EVENTS,
    TEST_PING,
    EventType,
    PingEvent,
    RegistrableEvent,
    WebhookEvent,
    is_registrable,
)
from .subscription import Subscription, SubscriptionPatch

__all__ = [
    # Helpers
    "generate_id",
    "truncate",
    "utc_now",
    # Events
    "EventType",
    "PING_MESSAGE",
    "PingEvent",
    "REGISTRABLE_EVENTS",
    "RegistrableEvent",
    "TEST_PING",
    "WebhookEvent",
    "is_registrable",
    # Records
    "Delivery",
    "DeliveryStatus",
    "ERROR_MESSAGE_LIMIT",
    "ErrorKind",
    "RESPONSE_BODY_LIMIT",
    "Subscription",
    "SubscriptionPatch",
    "TERMINAL_STATUSES",
]
