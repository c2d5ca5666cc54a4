"""FastAPI dependencies for request validation and common operations.

This module provides reusable FastAPI dependencies for:
- Access to the services built at startup (stored on app.state)
- Caller identity (X-User-Id) and admin authorization
- Dispatch secret validation for the processing endpoint
"""

import hmac
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from sigil.core.config import Settings
from sigil.services.generation.dispatch import HttpGenerationDispatcher
from sigil.services.generation.lifecycle import GenerationLifecycle
from sigil.services.models.registry import ModelRegistry


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded at startup."""
    return request.app.state.settings


def get_registry(request: Request) -> ModelRegistry:
    return request.app.state.registry


def get_lifecycle(request: Request) -> GenerationLifecycle:
    return request.app.state.lifecycle


def get_dispatcher(request: Request) -> HttpGenerationDispatcher:
    return request.app.state.dispatcher


def get_base_url(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Base URL the dispatcher posts back to (PUBLIC_BASE_URL, else the request origin)."""
    return settings.public_base_url or str(request.base_url)


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """Resolve the caller's user id from the X-User-Id header.

    The header is set by the upstream authentication layer.

    Raises:
        HTTPException: 401 Unauthorized if the header is missing or malformed
    """
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header"
        ) from None


async def require_admin(
    x_admin_token: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Allow the request only with a valid X-Admin-Token.

    Raises:
        HTTPException: 403 Forbidden if admin access is not configured or the token is wrong

    Security:
        - Uses constant-time comparison to prevent timing attacks
    """
    if not settings.admin_api_token or not x_admin_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    if not hmac.compare_digest(x_admin_token.encode(), settings.admin_api_token.encode()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


async def validate_dispatch_secret(
    x_dispatch_secret: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Check X-Dispatch-Secret when DISPATCH_SECRET is configured.

    Raises:
        HTTPException: 401 Unauthorized if the secret is missing or does not match
    """
    if not settings.dispatch_secret:
        return
    if not x_dispatch_secret or not hmac.compare_digest(
        x_dispatch_secret.encode(), settings.dispatch_secret.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid dispatch secret"
        )
