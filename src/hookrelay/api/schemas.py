"""Request and response schemas for the hookrelay API.

Request fields are typed loosely (plain strings and lists) so that value
problems reach the registry and come back as field-level 400 errors.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models import Delivery, Subscription


class CreateWebhookRequest(BaseModel):
    """Request to register a webhook.

    Example:
        ```json
        {
            "name": "CI alerts",
            "url": "https://ci.example.com/hooks/testtrack",
            "events": ["EXECUTION_FAILED", "SUITE_FAILED"],
            "description": "Pages the on-call QA engineer"
        }
        ```
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(description="Human-readable name")
    url: str = Field(description="http(s) endpoint receiving deliveries")
    events: list[str] = Field(description="Event types to subscribe to")
    secret: str | None = Field(
        default=None,
        description="Shared signing secret; generated when omitted",
    )
    description: str | None = Field(default=None, description="Human-readable description")
    is_active: bool = Field(default=True, description="Register already disabled when false")


class UpdateWebhookRequest(BaseModel):
    """Partial update of a webhook; omitted fields are unchanged."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    url: str | None = None
    events: list[str] | None = None
    is_active: bool | None = None
    description: str | None = None
    secret: str | None = None


class WebhookResponse(BaseModel):
    """A webhook as returned by the API. The secret is never included."""

    model_config = ConfigDict(extra="forbid")

    id: str
    project_id: str
    name: str
    url: str
    events: list[str]
    description: str | None = None
    is_active: bool
    auto_disabled_at: datetime | None = None
    failure_count: int
    last_success_at: datetime | None = None
    last_failure_at: datetime | None = None
    last_triggered_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> WebhookResponse:
        return cls.model_validate(subscription.public_view())


class CreatedWebhookResponse(WebhookResponse):
    """Registration response; the only response that carries the secret."""

    secret: str

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> CreatedWebhookResponse:
        return cls.model_validate(subscription.model_dump(mode="json"))


class DeliveryResponse(BaseModel):
    """A delivery record as returned by the API."""

    model_config = ConfigDict(extra="forbid")

    id: str
    subscription_id: str
    project_id: str
    event: str
    payload: str
    status: str
    attempt_count: int
    scheduled_at: datetime
    next_retry_at: datetime | None = None
    response_code: int | None = None
    response_body: str | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    error_kind: str | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> DeliveryResponse:
        return cls.model_validate(delivery.model_dump(mode="json"))


class WebhookListResponse(BaseModel):
    """All webhooks of a project."""

    webhooks: list[WebhookResponse]


class WebhookDetailResponse(BaseModel):
    """One webhook with its most recent deliveries."""

    webhook: WebhookResponse
    deliveries: list[DeliveryResponse]


class DeliveryListResponse(BaseModel):
    """A page of delivery history."""

    deliveries: list[DeliveryResponse]
    total: int = Field(ge=0)
    skip: int = Field(ge=0)
    take: int = Field(ge=0)


class DeleteWebhookResponse(BaseModel):
    """Result of a delete request."""

    success: bool
    deleted: int = Field(ge=0)
    message: str


class PingWebhookResponse(BaseModel):
    """Result of a manual test ping."""

    success: bool
    delivery: DeliveryResponse


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(description="Service status")
    version: str = Field(description="API version")
    storage_connected: bool = Field(description="Whether the service is initialized")
    dispatcher_running: bool = Field(default=False)
    sweeper_running: bool = Field(default=False)
