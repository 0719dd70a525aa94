"""Delivery attempt record.

One record per (event, subscription) pair. The payload string is fixed at
creation; everything else is bookkeeping written by the delivery worker.
"""

from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, truncate, utc_now

DeliveryStatus = Literal["PENDING", "RETRYING", "SUCCESS", "FAILED"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"SUCCESS", "FAILED"})

# Failure classifications stored in error_kind
ErrorKind = Literal[
    "timeout",
    "connection",
    "http_status",
    "subscription_inactive",
    "subscription_missing",
]

RESPONSE_BODY_LIMIT = 1000
ERROR_MESSAGE_LIMIT = 500


class Delivery(BaseModel):
    """A single webhook delivery and its attempt history.

    Attributes:
        id: Unique identifier ("dlv_" prefix).
        subscription_id: Owning subscription.
        project_id: Project of the owning subscription.
        event: Event tag carried by the payload.
        payload: Exact request body that is signed and sent.
        status: PENDING, RETRYING, SUCCESS or FAILED.
        attempt_count: HTTP attempts made so far.
        scheduled_at: When the delivery was created.
        next_retry_at: When a PENDING retry becomes due.
        response_code: Status code of the last response.
        response_body: Body of the last response (truncated).
        duration_ms: Wall time of the last attempt.
        error_message: Error from the last failed attempt (truncated).
        error_kind: Classification of the last failure.
        delivered_at: When a 2xx response was received.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscription_id: str = Field(description="Owning subscription")
    project_id: str = Field(description="Project of the owning subscription")
    event: str = Field(description="Event tag")
    payload: str = Field(description="Serialized request body, immutable after creation")
    status: DeliveryStatus = Field(default="PENDING")
    attempt_count: int = Field(default=0, ge=0)
    scheduled_at: datetime = Field(default_factory=utc_now)
    next_retry_at: datetime | None = Field(default=None)
    response_code: int | None = Field(default=None)
    response_body: str | None = Field(default=None)
    duration_ms: int | None = Field(default=None, ge=0)
    error_message: str | None = Field(default=None)
    error_kind: ErrorKind | None = Field(default=None)
    delivered_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        """True once no further attempts will be made."""
        return self.status in TERMINAL_STATUSES

    def mark_success(
        self,
        response_code: int,
        response_body: str | None,
        duration_ms: int,
        at: datetime | None = None,
        body_limit: int = RESPONSE_BODY_LIMIT,
    ) -> None:
        """Mark delivery as successful."""
        at = at or utc_now()
        self.status = "SUCCESS"
        self.response_code = response_code
        self.response_body = truncate(response_body, body_limit)
        self.duration_ms = duration_ms
        self.error_message = None
        self.error_kind = None
        self.next_retry_at = None
        self.delivered_at = at
        self.updated_at = at

    def mark_failed(
        self,
        error: str,
        kind: ErrorKind,
        response_code: int | None = None,
        response_body: str | None = None,
        duration_ms: int | None = None,
        at: datetime | None = None,
        body_limit: int = RESPONSE_BODY_LIMIT,
        error_limit: int = ERROR_MESSAGE_LIMIT,
    ) -> None:
        """Mark delivery as terminally failed."""
        self._record_failure(
            error, kind, response_code, response_body, duration_ms, body_limit, error_limit
        )
        self.status = "FAILED"
        self.next_retry_at = None
        self.updated_at = at or utc_now()

    def mark_retry_scheduled(
        self,
        delay_seconds: int,
        error: str,
        kind: ErrorKind,
        response_code: int | None = None,
        response_body: str | None = None,
        duration_ms: int | None = None,
        at: datetime | None = None,
        body_limit: int = RESPONSE_BODY_LIMIT,
        error_limit: int = ERROR_MESSAGE_LIMIT,
    ) -> None:
        """Return the delivery to PENDING with a future retry time."""
        at = at or utc_now()
        self._record_failure(
            error, kind, response_code, response_body, duration_ms, body_limit, error_limit
        )
        self.status = "PENDING"
        self.next_retry_at = at + timedelta(seconds=delay_seconds)
        self.updated_at = at

    def _record_failure(
        self,
        error: str,
        kind: ErrorKind,
        response_code: int | None,
        response_body: str | None,
        duration_ms: int | None,
        body_limit: int,
        error_limit: int,
    ) -> None:
        self.error_message = truncate(error, error_limit)
        self.error_kind = kind
        self.response_code = response_code
        self.response_body = truncate(response_body, body_limit)
        self.duration_ms = duration_ms
