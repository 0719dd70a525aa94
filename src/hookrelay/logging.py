"""Structured logging for hookrelay.

structlog renders JSON in production and coloured console output in
development. Context helpers bind identifiers to log lines: the API binds a
request id per HTTP request, and the delivery worker binds delivery and
subscription ids per attempt.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging for hookrelay.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: Output format - "json" for production, "text" for development.

    Example:
        ```python
        from hookrelay.logging import configure_logging, get_logger

        configure_logging(level="DEBUG", format="text")
        logger = get_logger(__name__)
        logger.info("webhook_delivered", delivery_id="dlv_abc")
        ```
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if format.lower() == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Logging is configured with defaults (INFO, JSON) on first use if
    ``configure_logging`` has not been called yet.
    """
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Bind key-value pairs to every log line emitted later in this context.

    The API binds ``request_id``, ``http_method`` and ``http_path`` at the
    start of each request, so registry and storage log lines can be joined
    back to the call that caused them.

    Example:
        ```python
        bind_context(request_id="req_3f2a9c1b7d04")
        logger.info("webhook_registered", subscription_id="whk_abc")
        # -> {"event": "webhook_registered", "request_id": "req_3f2a...", ...}
        ```
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop everything bound in this context.

    Called when a request starts, so nothing bound by an earlier request on
    a reused context is attached to its log lines.
    """
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove ``keys`` from the logging context; missing keys are ignored."""
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def delivery_context(delivery_id: str, subscription_id: str | None = None) -> Iterator[None]:
    """Bind delivery identifiers for the duration of one attempt.

    Each consumer task runs in its own context copy, so concurrent
    attempts never see each other's ids.

    Example:
        ```python
        with delivery_context(delivery.id, delivery.subscription_id):
            logger.info("webhook_attempt_started")
        ```
    """
    values: dict[str, object] = {"delivery_id": delivery_id}
    if subscription_id is not None:
        values["subscription_id"] = subscription_id
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
