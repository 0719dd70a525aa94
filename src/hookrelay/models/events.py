"""Event types and the payload envelope sent to webhook endpoints."""

from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field

from .base import utc_now

# Event types a subscription may register for
RegistrableEvent = Literal[
    "TEST_CREATED",
    "TEST_UPDATED",
    "TEST_DELETED",
    "BUG_CREATED",
    "BUG_UPDATED",
    "BUG_STATUS_CHANGED",
    "BUG_ASSIGNED",
    "EXECUTION_COMPLETED",
    "EXECUTION_FAILED",
    "SUITE_COMPLETED",
    "SUITE_FAILED",
]

# Synthetic event used only by manual pings
TEST_PING = "TEST_PING"

EventType = Literal[RegistrableEvent, "TEST_PING"]

REGISTRABLE_EVENTS: tuple[str, ...] = get_args(RegistrableEvent)

PING_MESSAGE = "This is a test webhook from TestTrack Pro"


def is_registrable(event_type: str) -> bool:
    """Check whether an event tag may appear in a subscription's event set."""
    return event_type in REGISTRABLE_EVENTS


class WebhookEvent(BaseModel):
    """Envelope for a domain event fanned out to subscriptions.

    The serialized form is captured once per delivery and is the exact
    body that gets signed and transmitted.

    Attributes:
        event: Event tag.
        timestamp: When the event occurred.
        project_id: Project the event belongs to.
        data: Event-specific payload data.
    """

    model_config = ConfigDict(extra="forbid")

    event: RegistrableEvent = Field(description="Event type")
    timestamp: datetime = Field(default_factory=utc_now, description="When the event occurred")
    project_id: str = Field(description="Project the event belongs to")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")

    def to_payload(self) -> str:
        """Serialize to the wire body."""
        return self.model_dump_json()


class PingEvent(BaseModel):
    """Payload sent by a manual test ping."""

    model_config = ConfigDict(extra="forbid")

    event: Literal["TEST_PING"] = TEST_PING
    timestamp: datetime = Field(default_factory=utc_now)
    message: str = PING_MESSAGE
    webhook_id: str
    webhook_name: str

    def to_payload(self) -> str:
        """Serialize to the wire body."""
        return self.model_dump_json()
