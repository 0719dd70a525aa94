"""hookrelay: signed outbound webhooks for test-management events.

Delivers platform events (test, bug, execution and suite lifecycle changes)
to registered HTTP endpoints with HMAC-SHA256 signatures, bounded retries
and a per-subscription circuit breaker.

Quick Start:
    from hookrelay.service import WebhookService

    async with WebhookService.create() as webhooks:
        sub = await webhooks.register(
            "proj_1",
            name="CI alerts",
            url="https://ci.example.com/hooks",
            events=["EXECUTION_FAILED"],
        )
        await webhooks.dispatch("EXECUTION_FAILED", {"execution_id": "ex_9"}, "proj_1")
"""

__version__ = "0.1.0"

# Configuration
from .config import DeliveryPolicy, Settings, settings

# Exceptions
from .exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    DeliveryError,
    HookRelayError,
    IntegrityFault,
    NotFoundError,
    StorageError,
    TerminalDeliveryFailure,
    TransientDeliveryFailure,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)

# Models
from .models import REGISTRABLE_EVENTS, Delivery, Subscription, WebhookEvent

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DeliveryPolicy",
    "Settings",
    "settings",
    # Exceptions
    "HookRelayError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "DeliveryError",
    "TransientDeliveryFailure",
    "TerminalDeliveryFailure",
    "IntegrityFault",
    "ConfigurationError",
    "AuthenticationError",
    "AuthorizationError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    "delivery_context",
    # Models
    "REGISTRABLE_EVENTS",
    "Delivery",
    "Subscription",
    "WebhookEvent",
]
