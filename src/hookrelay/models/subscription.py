"""Webhook subscription model.

A subscription binds a project to an endpoint URL, a shared signing secret
and a set of event tags. Its health counters are mutated only by the
delivery worker.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now
from .events import RegistrableEvent


class Subscription(BaseModel):
    """A registered webhook endpoint.

    Attributes:
        id: Unique identifier ("whk_" prefix).
        project_id: Owning project.
        name: Human-readable name.
        url: http(s) endpoint receiving deliveries.
        secret: Shared secret for HMAC-SHA256 signatures.
        events: Event tags this subscription receives.
        description: Optional human-readable description.
        is_active: Manual on/off switch, also cleared by the circuit breaker.
        auto_disabled_at: When the circuit breaker disabled this subscription.
        failure_count: Consecutive failed attempts, reset on any success.
        last_success_at: Time of the most recent successful attempt.
        last_failure_at: Time of the most recent failed attempt.
        last_triggered_at: Time of the most recent attempt of any outcome.
        created_by: User who registered the subscription.
        created_at: When the subscription was registered.
        updated_at: When the subscription was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    project_id: str = Field(description="Owning project")
    name: str = Field(min_length=1, description="Human-readable name")
    url: str = Field(description="http(s) endpoint receiving deliveries")
    secret: str = Field(min_length=1, description="Shared secret for HMAC-SHA256 signatures")
    events: list[RegistrableEvent] = Field(
        min_length=1,
        description="Event types to subscribe to",
    )
    description: str | None = Field(default=None, description="Human-readable description")
    is_active: bool = Field(default=True, description="Whether deliveries are attempted")
    auto_disabled_at: datetime | None = Field(
        default=None,
        description="When the circuit breaker disabled this subscription",
    )
    failure_count: int = Field(default=0, ge=0, description="Consecutive failed attempts")
    last_success_at: datetime | None = Field(default=None)
    last_failure_at: datetime | None = Field(default=None)
    last_triggered_at: datetime | None = Field(default=None)
    created_by: str | None = Field(default=None, description="User who registered this webhook")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this subscription is active and receives the given event type."""
        return self.is_active and event_type in self.events

    def record_success(self, at: datetime) -> None:
        """Reset the consecutive failure counter after a 2xx response."""
        self.failure_count = 0
        self.last_success_at = at
        self.last_triggered_at = at
        self.updated_at = at

    def record_failure(self, at: datetime, threshold: int) -> bool:
        """Count one failed attempt and trip the breaker at ``threshold``.

        Returns:
            True if this failure disabled the subscription.
        """
        self.failure_count += 1
        self.last_failure_at = at
        self.last_triggered_at = at
        self.updated_at = at
        if self.is_active and self.failure_count >= threshold:
            self.is_active = False
            self.auto_disabled_at = at
            return True
        return False

    def public_view(self) -> dict[str, object]:
        """Serialize without the signing secret."""
        return self.model_dump(mode="json", exclude={"secret"})


class SubscriptionPatch(BaseModel):
    """Mutable subscription fields; unset fields are left unchanged.

    Values are validated by the registry, so events stay plain strings here
    and an unknown tag surfaces as a field-level validation error.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    url: str | None = None
    events: list[str] | None = None
    is_active: bool | None = None
    description: str | None = None
    secret: str | None = None
