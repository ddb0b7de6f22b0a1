"""
Shared dependencies for the command API routes.
"""

import logging
import re
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from cmdengine.bootstrap import Engine
from cmdengine.core.types import User

logger = logging.getLogger(__name__)

_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]{1,64}$")


def get_engine(request: Request) -> Engine:
    """The engine built during application startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Command engine not ready",
        )
    return engine


EngineDep = Annotated[Engine, Depends(get_engine)]


async def require_api_key(
    request: Request,
    engine: EngineDep,
    x_api_key: Annotated[str | None, Header()] = None,
) -> bool:
    """
    Require an API key when configured.

    In production with api_key set, every request must send X-API-Key.
    Elsewhere only when api_key_required is on.

    Raises:
        HTTPException: If the key is required but missing or wrong
    """
    settings = engine.settings
    api_key = settings.api_key
    api_key_required = settings.api_key_required

    # Auto-enable in production if key is configured
    if settings.environment == "production" and api_key:
        api_key_required = True

    if not api_key_required or not api_key:
        return True

    client_ip = request.client.host if request.client else None

    if not x_api_key:
        engine.audit.log_auth_failure(ip=client_ip, reason="missing_api_key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    # Constant-time comparison
    if not secrets.compare_digest(x_api_key, api_key):
        logger.warning("Invalid API key attempt")
        engine.audit.log_auth_failure(ip=client_ip, reason="invalid_api_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return True


async def get_current_user(
    engine: EngineDep,
    x_user_id: Annotated[str | None, Header()] = None,
) -> User:
    """
    Build the caller from the X-User-ID header.

    Raises:
        HTTPException: 400 if the header is malformed
    """
    user_id = (x_user_id or engine.settings.default_user_id).strip()
    if not _USER_ID_PATTERN.match(user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID header",
        )
    return engine.users.get_user(user_id)


CurrentUser = Annotated[User, Depends(get_current_user)]
