"""Subscription registry: validated, project-scoped CRUD over webhooks."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from pydantic import AnyHttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from hookrelay.exceptions import NotFoundError, ValidationError
from hookrelay.logging import get_logger
from hookrelay.models import REGISTRABLE_EVENTS, Subscription, SubscriptionPatch

from .signing import generate_secret

if TYPE_CHECKING:
    from hookrelay.models import Delivery
    from hookrelay.storage import HookRelayStorage

logger = get_logger(__name__)

_URL_ADAPTER: TypeAdapter[AnyHttpUrl] = TypeAdapter(AnyHttpUrl)

# Number of recent deliveries returned with a single subscription
DETAIL_DELIVERY_LIMIT = 50


def validate_name(name: str | None) -> str:
    """Require a non-blank name and return it stripped."""
    if name is None or not name.strip():
        raise ValidationError("name", "Name is required")
    return name.strip()


def validate_url(url: str | None) -> str:
    """Require a syntactically valid http(s) URL.

    The URL is stored as given; pydantic only checks it.
    """
    if not url:
        raise ValidationError("url", "URL is required")
    try:
        _URL_ADAPTER.validate_python(url)
    except PydanticValidationError as e:
        raise ValidationError("url", f"Invalid URL format: {url}") from e
    return url


def validate_events(events: Iterable[str] | None) -> list[str]:
    """Require a non-empty set of registrable event tags.

    Duplicates are collapsed, keeping first-seen order.
    """
    if events is None:
        raise ValidationError("events", "At least one event is required")
    unique = list(dict.fromkeys(events))
    if not unique:
        raise ValidationError("events", "At least one event is required")
    invalid = [e for e in unique if e not in REGISTRABLE_EVENTS]
    if invalid:
        raise ValidationError("events", f"Invalid events: {', '.join(invalid)}")
    return unique


class SubscriptionRegistry:
    """CRUD over webhook subscriptions, scoped to a project.

    Every lookup takes the pair (subscription_id, project_id); an ID that
    exists under another project behaves exactly like a missing one.

    Example:
        ```python
        registry = SubscriptionRegistry(storage)
        sub = await registry.register(
            "proj_1",
            name="CI alerts",
            url="https://ci.example.com/hooks",
            events=["EXECUTION_FAILED"],
        )
        ```
    """

    def __init__(self, storage: HookRelayStorage) -> None:
        self._storage = storage

    async def register(
        self,
        project_id: str,
        *,
        name: str,
        url: str,
        events: Iterable[str],
        secret: str | None = None,
        description: str | None = None,
        is_active: bool = True,
        created_by: str | None = None,
    ) -> Subscription:
        """Create a subscription.

        A 256-bit hex secret is generated when none is supplied. With
        ``is_active=False`` the subscription is stored disabled and receives
        no events until it is re-enabled.

        Raises:
            ValidationError: If name, URL or events are invalid.
        """
        subscription = Subscription(
            project_id=project_id,
            name=validate_name(name),
            url=validate_url(url),
            events=validate_events(events),  # type: ignore[arg-type]
            secret=secret or generate_secret(),
            description=description,
            is_active=is_active,
            created_by=created_by,
        )
        await self._storage.store_subscription(subscription)
        logger.info(
            "webhook_registered",
            subscription_id=subscription.id,
            project_id=project_id,
            events=subscription.events,
            is_active=subscription.is_active,
        )
        return subscription

    async def get(self, subscription_id: str, project_id: str) -> Subscription:
        """Get one subscription.

        Raises:
            NotFoundError: If absent or owned by another project.
        """
        subscription = await self._storage.get_subscription(subscription_id, project_id)
        if subscription is None:
            raise NotFoundError("webhook", subscription_id)
        return subscription

    async def list(self, project_id: str) -> list[Subscription]:
        """List a project's subscriptions, newest first."""
        return await self._storage.list_subscriptions(project_id)

    async def update(
        self,
        subscription_id: str,
        project_id: str,
        patch: SubscriptionPatch | dict[str, Any],
    ) -> int:
        """Apply a partial update.

        Re-enabling a subscription clears ``auto_disabled_at``; the failure
        counter is left as is.

        Returns:
            Number of subscriptions updated (0 if absent).

        Raises:
            ValidationError: If a supplied name, URL or event set is invalid.
        """
        if isinstance(patch, dict):
            patch = SubscriptionPatch.model_validate(patch)

        changes = patch.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = validate_name(changes["name"])
        if "url" in changes:
            changes["url"] = validate_url(changes["url"])
        if "events" in changes:
            changes["events"] = validate_events(changes["events"])
        if "secret" in changes and not changes["secret"]:
            raise ValidationError("secret", "Secret must not be empty")
        if changes.get("is_active") is None:
            changes.pop("is_active", None)

        def _apply(subscription: Subscription) -> None:
            if changes.get("is_active") and not subscription.is_active:
                subscription.auto_disabled_at = None
            for field_name, value in changes.items():
                setattr(subscription, field_name, value)

        updated = await self._storage.update_subscription(subscription_id, project_id, _apply)
        if updated is None:
            return 0
        logger.info(
            "webhook_updated",
            subscription_id=subscription_id,
            project_id=project_id,
            fields=sorted(changes),
        )
        return 1

    async def delete(self, subscription_id: str, project_id: str) -> int:
        """Delete a subscription. Its delivery history is kept.

        Returns:
            Number of subscriptions deleted (0 if absent).
        """
        deleted = await self._storage.delete_subscription(subscription_id, project_id)
        if deleted:
            logger.info("webhook_deleted", subscription_id=subscription_id, project_id=project_id)
        return int(deleted)

    async def get_detail(
        self,
        subscription_id: str,
        project_id: str,
    ) -> tuple[Subscription, list[Delivery]]:
        """Get a subscription together with its most recent deliveries.

        Raises:
            NotFoundError: If absent or owned by another project.
        """
        subscription = await self.get(subscription_id, project_id)
        deliveries, _ = await self._storage.list_deliveries_for_subscription(
            subscription_id, project_id, skip=0, take=DETAIL_DELIVERY_LIMIT
        )
        return subscription, deliveries

    async def list_deliveries(
        self,
        subscription_id: str,
        project_id: str,
        skip: int = 0,
        take: int = 50,
    ) -> tuple[list[Delivery], int]:
        """Page through delivery history, newest first.

        Returns:
            (page of deliveries, total count).
        """
        return await self._storage.list_deliveries_for_subscription(
            subscription_id, project_id, skip=max(skip, 0), take=max(take, 0)
        )
