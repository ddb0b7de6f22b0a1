"""
Caller permissions for the command engine.

The engine only consumes a PermissionChecker; where the grants come from
is a deployment concern. The default checker reads the grants carried
on the User, which the API builds from configured per-user grants.

Usage:
    checker = GrantPermissionChecker()
    require_permission(checker, user, "products.create")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Protocol, runtime_checkable

from cmdengine.core.errors import PermissionDenied
from cmdengine.core.types import User

logger = logging.getLogger(__name__)


@runtime_checkable
class PermissionChecker(Protocol):
    """Decides whether a user holds a permission."""

    def __call__(self, user: User, permission: str) -> bool:
        ...


class GrantPermissionChecker:
    """Checks the permissions granted on the User itself ("*" grants all)."""

    def __call__(self, user: User, permission: str) -> bool:
        return user.has_permission(permission)


def require_permission(checker: PermissionChecker, user: User, permission: str | None) -> None:
    """Require a user to hold a permission.

    Args:
        checker: Permission checker to consult
        user: Caller
        permission: Required permission (None = public)

    Raises:
        PermissionDenied: If the checker denies or fails
    """
    if permission is None:
        return

    try:
        allowed = checker(user, permission)
    except Exception as e:
        logger.error(f"Permission checker failed for '{permission}': {e}", exc_info=True)
        allowed = False

    if not allowed:
        raise PermissionDenied(user.id, permission)


class UserDirectory:
    """Builds Users from configured per-user permission grants."""

    def __init__(
        self,
        grants: Mapping[str, Iterable[str]] | None = None,
        roles: Mapping[str, Iterable[str]] | None = None,
    ):
        self._grants = {uid: frozenset(perms) for uid, perms in (grants or {}).items()}
        self._roles = {uid: frozenset(r) for uid, r in (roles or {}).items()}

    def get_user(self, user_id: str) -> User:
        """Unknown users get no permissions; they can still run public actions."""
        return User(
            id=user_id,
            permissions=self._grants.get(user_id, frozenset()),
            roles=self._roles.get(user_id, frozenset()),
        )
