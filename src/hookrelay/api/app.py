"""FastAPI application for hookrelay."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from hookrelay import __version__
from hookrelay.config import Settings
from hookrelay.exceptions import (
    AuthenticationError,
    AuthorizationError,
    HookRelayError,
    NotFoundError,
    ValidationError,
)
from hookrelay.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from hookrelay.models import generate_id
from hookrelay.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_CONTEXT_KEYS = ("request_id", "http_method", "http_path")


def _make_lifespan(
    settings: Settings,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start the webhook service and retry sweeper; drain and stop them on shutdown."""
        configure_logging(level=settings.log_level, format=settings.log_format)
        logger.info(
            "Starting hookrelay API",
            log_level=settings.log_level,
            sweep_enabled=settings.sweep_enabled,
        )

        service = WebhookService.create(settings)
        await service.initialize()
        set_service(service)

        if settings.sweep_enabled:
            service.sweeper.start()

        yield

        await service.close()
        set_service(None)

    return lifespan


def register_request_context(app: FastAPI) -> None:
    """Bind a request id, method and path to every log line of a request.

    An incoming ``X-Request-ID`` is reused; otherwise one is generated. The id
    is echoed on the response.
    """

    @app.middleware("http")
    async def bind_request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_id("req")
        clear_context()
        bind_context(
            request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        try:
            response = await call_next(request)
        finally:
            unbind_context(*_REQUEST_CONTEXT_KEYS)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Map hookrelay errors to HTTP status codes."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed request bodies and parameters as 400, like value errors."""
        errors = exc.errors()
        field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else "request"
        message = errors[0]["msg"] if errors else "Invalid request"
        logger.warning(
            "Request validation error", field=field, error=message, path=str(request.url)
        )
        return JSONResponse(
            status_code=400,
            content=ValidationError(field or "request", message).to_dict(),
        )

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        """Handle authentication errors with 401 status."""
        logger.warning("Authentication failed", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=401, content=exc.to_dict())

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(
        request: Request, exc: AuthorizationError
    ) -> JSONResponse:
        """Handle authorization errors with 403 status."""
        logger.warning("Authorization failed", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=403, content=exc.to_dict())

    @app.exception_handler(HookRelayError)
    async def hookrelay_error_handler(request: Request, exc: HookRelayError) -> JSONResponse:
        """Handle all other hookrelay errors with 500 status."""
        logger.error("hookrelay error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Example:
        ```python
        from hookrelay.api import create_app

        app = create_app()
        # Run with: uvicorn hookrelay.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="hookrelay",
        description="Signed outbound webhooks for test-management events.",
        version=__version__,
        lifespan=_make_lifespan(settings),
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
            max_age=settings.cors_max_age,
        )

    register_request_context(app)
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
