"""
Action Framework for the command engine.

Defines the Action interface business modules implement, and the
registry the engine resolves action names against. Registration happens
during boot only; afterwards the registry is read-only.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Union

from cmdengine.core.errors import DuplicateActionError, RegistryFrozenError
from cmdengine.core.progress import ProgressSink
from cmdengine.core.schema import Schema, schema_to_list
from cmdengine.core.types import Result, User

logger = logging.getLogger(__name__)


# =============================================================================
# Action Interface
# =============================================================================


class Action:
    """
    A named, schema-described, permission-guarded operation.

    Subclasses set the class attributes and implement handle() and,
    when they report progress, handle_with_progress().
    """

    name: str = ""
    description: str = ""
    payload_schema: Schema = ()
    permission: str | None = None  # None = public

    def visible_to(self, user: User) -> bool:
        """Whether the user may see (and attempt) this action at all."""
        return True

    async def handle(self, payload: dict[str, Any]) -> Result:
        raise NotImplementedError(f"{type(self).__name__} does not implement handle()")

    async def handle_with_progress(self, payload: dict[str, Any], sink: ProgressSink) -> Result:
        """Execute while reporting Steps to sink (defaults to handle())."""
        return await self.handle(payload)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "permission": self.permission,
            "payload_schema": schema_to_list(self.payload_schema),
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


HandlerResult = Union[Result, Awaitable[Result]]
PlainHandler = Callable[[dict[str, Any]], HandlerResult]
ProgressHandler = Callable[[dict[str, Any], ProgressSink], HandlerResult]


class FunctionAction(Action):
    """
    Action backed by plain functions supplied by a business module.

    Handlers may be sync or async. Example:
        FunctionAction(
            name="shop.create_product",
            description="Create a product",
            handler=create_product,
            payload_schema=(FieldSpec("name", required=True),),
            permission="products.create",
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        handler: PlainHandler | None = None,
        payload_schema: Schema = (),
        permission: str | None = None,
        progress_handler: ProgressHandler | None = None,
        visibility: Callable[[User], bool] | None = None,
    ):
        if handler is None and progress_handler is None:
            raise ValueError(f"Action '{name}' needs a handler or a progress_handler")
        self.name = name
        self.description = description
        self.payload_schema = tuple(payload_schema)
        self.permission = permission
        self._handler = handler
        self._progress_handler = progress_handler
        self._visibility = visibility

    def visible_to(self, user: User) -> bool:
        if self._visibility is None:
            return True
        return bool(self._visibility(user))

    async def handle(self, payload: dict[str, Any]) -> Result:
        if self._handler is None:
            return await self.handle_with_progress(payload, _DISCARD)
        return await _resolve(self._handler(payload))

    async def handle_with_progress(self, payload: dict[str, Any], sink: ProgressSink) -> Result:
        if self._progress_handler is None:
            return await self.handle(payload)
        return await _resolve(self._progress_handler(payload, sink))


class _Discard:
    def emit(self, step) -> None:
        return None


_DISCARD = _Discard()


async def _resolve(value: HandlerResult) -> Result:
    if inspect.isawaitable(value):
        return await value
    return value


# =============================================================================
# Action Registry
# =============================================================================


class ActionRegistry:
    """
    Registry of invocable actions.

    Names are unique: a collision raises DuplicateActionError rather than
    overwriting, so resolution never depends on registration order.
    """

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}
        self._frozen = False

    def register(self, action: Action) -> None:
        """Register an action."""
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register '{action.name}' after boot")
        if not action.name:
            raise ValueError("Action name must not be empty")
        if action.name in self._actions:
            raise DuplicateActionError(action.name)
        self._actions[action.name] = action
        logger.debug(f"Registered action: {action.name}")

    def resolve(self, name: str) -> Action | None:
        """Get an action by name (None when unknown)."""
        return self._actions.get(name)

    def list_actions(self, predicate: Callable[[Action], bool] | None = None) -> list[Action]:
        """List actions in registration order, optionally filtered."""
        actions = list(self._actions.values())
        if predicate is None:
            return actions
        return [a for a in actions if predicate(a)]

    def names(self) -> list[str]:
        return list(self._actions)

    def freeze(self) -> None:
        """Mark the end of boot; the registry becomes read-only."""
        self._frozen = True
        logger.info(f"Action registry frozen with {len(self._actions)} actions")

    @property
    def frozen(self) -> bool:
        return self._frozen

    def clear(self) -> None:
        """Remove every action (tests only)."""
        self._actions.clear()
        self._frozen = False

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __len__(self) -> int:
        return len(self._actions)
