"""Authentication and role checks for the hookrelay API.

Provides:
- HMAC-signed Bearer tokens carrying a user id and a role
- FastAPI dependencies for route protection
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Iterable
from functools import lru_cache
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from hookrelay.exceptions import AuthenticationError, AuthorizationError
from hookrelay.logging import get_logger

if TYPE_CHECKING:
    from hookrelay.config import Settings

logger = get_logger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    """Represents an authenticated caller.

    Attributes:
        user_id: Unique identifier for the user.
        role: Platform role, e.g. ADMIN, DEVELOPER, TESTER.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(description="Unique identifier for the user")
    role: str = Field(description="Platform role")


class TokenValidator:
    """Validates Bearer tokens using HMAC-SHA256.

    Token format: user_id:role:expires_at:signature
    where signature = HMAC(secret, user_id:role:expires_at)
    """

    def __init__(self, secret_key: str) -> None:
        self.secret_key = secret_key.encode()

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key, payload.encode(), hashlib.sha256).hexdigest()

    def create_token(self, user_id: str, role: str, expire_minutes: int = 60) -> str:
        """Create a signed token for a user."""
        expires_at = int(time.time()) + (expire_minutes * 60)
        payload = f"{user_id}:{role.upper()}:{expires_at}"
        return f"{payload}:{self._sign(payload)}"

    def validate_token(self, token: str) -> AuthenticatedUser:
        """Validate a token and return the authenticated user.

        Raises:
            AuthenticationError: If token is malformed, forged or expired.
        """
        try:
            parts = token.split(":")
            if len(parts) != 4:
                raise AuthenticationError("Invalid token format")

            user_id, role, expires_at_str, signature = parts
            payload = f"{user_id}:{role}:{expires_at_str}"

            if not hmac.compare_digest(signature, self._sign(payload)):
                raise AuthenticationError("Invalid token signature")

            if time.time() > int(expires_at_str):
                raise AuthenticationError("Token has expired")

            return AuthenticatedUser(user_id=user_id, role=role)

        except ValueError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e


@lru_cache(maxsize=1)
def get_token_validator(secret_key: str) -> TokenValidator:
    """Get or create the token validator singleton for a secret."""
    return TokenValidator(secret_key)


def reset_auth_singletons() -> None:
    """Reset cached auth singletons (for testing)."""
    get_token_validator.cache_clear()


class AuthDependency:
    """FastAPI dependency for authentication.

    Returns None when auth is disabled, otherwise the validated caller.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def __call__(
        self,
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    ) -> AuthenticatedUser | None:
        if not self.settings.is_auth_enabled:
            return None

        if credentials is None:
            raise AuthenticationError("Missing authentication credentials")

        validator = get_token_validator(self.settings.effective_auth_secret_key)
        user = validator.validate_token(credentials.credentials)
        logger.debug("User authenticated", user_id=user.user_id, role=user.role)
        return user


class RoleGuard:
    """FastAPI dependency that restricts a route to a set of roles.

    Usage:
        @router.post("/projects/{project_id}/webhooks")
        async def create(user: Annotated[AuthenticatedUser | None, Depends(guard)]):
            ...
    """

    def __init__(self, settings: Settings, roles: Iterable[str] | None = None) -> None:
        self.settings = settings
        self.roles = frozenset(r.upper() for r in (roles or settings.auth_allowed_roles))
        self._authenticate = AuthDependency(settings)

    async def __call__(
        self,
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    ) -> AuthenticatedUser | None:
        user = await self._authenticate(credentials)
        if user is None:
            return None
        if user.role.upper() not in self.roles:
            logger.warning("Role not permitted", user_id=user.user_id, role=user.role)
            raise AuthorizationError(f"Role {user.role} may not manage webhooks")
        return user
