"""hookrelay exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HookRelayError for easy catching.
"""

from __future__ import annotations


class HookRelayError(Exception):
    """Base exception for all hookrelay errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookrelay_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookRelayError):
    """Invalid subscription input.

    Raised when a name, URL or event set fails validation on
    register or update.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HookRelayError):
    """Resource not found.

    Raised for unknown ids and for ids that belong to another project.

    Attributes:
        resource_type: Type of resource (e.g., "webhook", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookRelayError):
    """Storage operation failed."""

    code: str = "storage_error"


class DeliveryError(HookRelayError):
    """Base class for outcomes of a single delivery attempt.

    These are raised and caught inside the delivery worker and recorded
    on the delivery record. They never escape ``DeliveryWorker.attempt``.
    """

    code: str = "delivery_error"


class TransientDeliveryFailure(DeliveryError):
    """A delivery attempt failed in a way that may succeed later.

    Covers non-2xx responses, timeouts and connection errors.

    Attributes:
        kind: One of "http_status", "timeout" or "connection".
        response_code: HTTP status code if a response was received.
        response_body: Raw response body if a response was received.
    """

    code: str = "transient_delivery_failure"

    def __init__(
        self,
        kind: str,
        message: str,
        response_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        self.kind = kind
        self.response_code = response_code
        self.response_body = response_body
        super().__init__(message)


class TerminalDeliveryFailure(DeliveryError):
    """A delivery will not be attempted again.

    Attributes:
        reason: Why the delivery was abandoned.
        kind: Machine-readable classification stored on the record.
    """

    code: str = "terminal_delivery_failure"

    def __init__(self, reason: str, kind: str = "terminal") -> None:
        self.reason = reason
        self.kind = kind
        super().__init__(reason)


class IntegrityFault(HookRelayError):
    """A delivery or its owning subscription disappeared mid-flight.

    Logged at the dispatcher and sweeper boundaries, never retried.
    """

    code: str = "integrity_fault"


class ConfigurationError(HookRelayError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class AuthenticationError(HookRelayError):
    """Authentication credentials are invalid or missing."""

    code: str = "authentication_error"


class AuthorizationError(HookRelayError):
    """Authenticated caller lacks the role required for an action."""

    code: str = "authorization_error"
