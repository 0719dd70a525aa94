"""FastAPI router for hookrelay API endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials

from hookrelay import __version__
from hookrelay.exceptions import NotFoundError
from hookrelay.logging import get_logger
from hookrelay.models import SubscriptionPatch
from hookrelay.service import WebhookService

from .auth import AuthenticatedUser, RoleGuard, security
from .schemas import (
    CreatedWebhookResponse,
    CreateWebhookRequest,
    DeleteWebhookResponse,
    DeliveryListResponse,
    DeliveryResponse,
    HealthResponse,
    PingWebhookResponse,
    UpdateWebhookRequest,
    WebhookDetailResponse,
    WebhookListResponse,
    WebhookResponse,
)

logger = get_logger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


async def require_webhook_manager(
    service: ServiceDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> AuthenticatedUser | None:
    """Allow only roles permitted to manage webhooks (ADMIN, DEVELOPER by default)."""
    return await RoleGuard(service.settings)(credentials)


CallerDep = Annotated[AuthenticatedUser | None, Depends(require_webhook_manager)]

WEBHOOKS_PATH = "/projects/{project_id}/webhooks"


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Report whether the webhook service is initialized and its workers are running."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        dispatcher_running=_service.dispatcher.running,
        sweeper_running=_service.sweeper.running,
    )


@router.get(WEBHOOKS_PATH, response_model=WebhookListResponse, tags=["webhooks"])
async def list_webhooks(
    project_id: str,
    service: ServiceDep,
    caller: CallerDep,
) -> WebhookListResponse:
    """List a project's webhooks, newest first."""
    subscriptions = await service.list(project_id)
    return WebhookListResponse(
        webhooks=[WebhookResponse.from_subscription(s) for s in subscriptions]
    )


@router.post(
    WEBHOOKS_PATH,
    response_model=CreatedWebhookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    project_id: str,
    request: CreateWebhookRequest,
    service: ServiceDep,
    caller: CallerDep,
) -> CreatedWebhookResponse:
    """Register a webhook.

    The response includes the signing secret. It is not returned by any
    other endpoint.
    """
    subscription = await service.register(
        project_id,
        name=request.name,
        url=request.url,
        events=request.events,
        secret=request.secret,
        description=request.description,
        is_active=request.is_active,
        created_by=caller.user_id if caller else None,
    )
    return CreatedWebhookResponse.from_subscription(subscription)


@router.get(
    WEBHOOKS_PATH + "/{webhook_id}",
    response_model=WebhookDetailResponse,
    tags=["webhooks"],
)
async def get_webhook(
    project_id: str,
    webhook_id: str,
    service: ServiceDep,
    caller: CallerDep,
) -> WebhookDetailResponse:
    """Get one webhook with its 50 most recent deliveries."""
    subscription, deliveries = await service.get_detail(webhook_id, project_id)
    return WebhookDetailResponse(
        webhook=WebhookResponse.from_subscription(subscription),
        deliveries=[DeliveryResponse.from_delivery(d) for d in deliveries],
    )


@router.patch(
    WEBHOOKS_PATH + "/{webhook_id}",
    response_model=WebhookResponse,
    tags=["webhooks"],
)
async def update_webhook(
    project_id: str,
    webhook_id: str,
    request: UpdateWebhookRequest,
    service: ServiceDep,
    caller: CallerDep,
) -> WebhookResponse:
    """Update name, url, events, is_active, description or secret."""
    patch = SubscriptionPatch.model_validate(request.model_dump(exclude_unset=True))
    updated = await service.update(webhook_id, project_id, patch)
    if updated == 0:
        raise NotFoundError("webhook", webhook_id)
    subscription = await service.get(webhook_id, project_id)
    return WebhookResponse.from_subscription(subscription)


@router.delete(
    WEBHOOKS_PATH + "/{webhook_id}",
    response_model=DeleteWebhookResponse,
    tags=["webhooks"],
)
async def delete_webhook(
    project_id: str,
    webhook_id: str,
    service: ServiceDep,
    caller: CallerDep,
) -> DeleteWebhookResponse:
    """Delete a webhook. Deleting an unknown webhook is not an error."""
    deleted = await service.delete(webhook_id, project_id)
    return DeleteWebhookResponse(
        success=True,
        deleted=deleted,
        message="Webhook deleted successfully" if deleted else "Webhook not found",
    )


@router.get(
    WEBHOOKS_PATH + "/{webhook_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["webhooks"],
)
async def list_deliveries(
    project_id: str,
    webhook_id: str,
    service: ServiceDep,
    caller: CallerDep,
    skip: Annotated[int, Query(ge=0)] = 0,
    take: Annotated[int, Query(ge=0, le=500)] = 50,
) -> DeliveryListResponse:
    """Page through a webhook's delivery history, newest first."""
    deliveries, total = await service.list_deliveries(webhook_id, project_id, skip, take)
    return DeliveryListResponse(
        deliveries=[DeliveryResponse.from_delivery(d) for d in deliveries],
        total=total,
        skip=skip,
        take=take,
    )


@router.post(
    WEBHOOKS_PATH + "/{webhook_id}/test",
    response_model=PingWebhookResponse,
    tags=["webhooks"],
)
async def test_webhook(
    project_id: str,
    webhook_id: str,
    service: ServiceDep,
    caller: CallerDep,
) -> PingWebhookResponse:
    """Send a TEST_PING and report the outcome of the single attempt."""
    delivery = await service.ping(webhook_id, project_id)
    return PingWebhookResponse(
        success=delivery.status == "SUCCESS",
        delivery=DeliveryResponse.from_delivery(delivery),
    )
