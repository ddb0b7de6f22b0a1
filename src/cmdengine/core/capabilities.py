"""
Capability registry.

A capability is a named bundle of actions that can be switched on and
off as a unit. Whether a capability is enabled is evaluated on every
call to active_actions(), never cached across commands.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from cmdengine.core.actions import Action, ActionRegistry
from cmdengine.core.errors import DuplicateCapabilityError, RegistryFrozenError
from cmdengine.core.feature_flags import FeatureFlags, FlagConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capability:
    """
    Named bundle of actions with an explicit enablement declaration.

    Attributes:
        name: Capability identifier
        actions: Actions this capability contributes
        description: Human-readable summary
        feature_flag: Flag that must be on (None = not flag-gated)
        requires: Extra runtime predicate, e.g. "image service configured"
    """

    name: str
    actions: tuple[Action, ...]
    description: str = ""
    feature_flag: str | None = None
    requires: Callable[[], bool] | None = None

    def action_names(self) -> list[str]:
        return [a.name for a in self.actions]


class CapabilityRegistry:
    """
    Groups actions into enable/disable-able capabilities.

    A capability whose enablement check raises is treated as disabled
    (fail-closed); the error goes to the log only.
    """

    def __init__(self, actions: ActionRegistry, flags: FeatureFlags | None = None):
        self.actions = actions
        self.flags = flags
        self._capabilities: dict[str, Capability] = {}
        self._owner: dict[str, str] = {}  # action name -> capability name

    def register_capability(self, capability: Capability) -> None:
        """Register a capability and, transitively, each of its actions."""
        if self.actions.frozen:
            raise RegistryFrozenError(f"Cannot register capability '{capability.name}' after boot")
        if capability.name in self._capabilities:
            raise DuplicateCapabilityError(capability.name)

        for action in capability.actions:
            self.actions.register(action)
            self._owner[action.name] = capability.name

        if capability.feature_flag and self.flags is not None:
            self.flags.register(
                capability.feature_flag,
                FlagConfig(enabled=True, description=capability.description),
            )

        self._capabilities[capability.name] = capability
        logger.info(
            f"Registered capability: {capability.name} "
            f"({len(capability.actions)} actions)"
        )

    def is_enabled(self, capability: Capability) -> bool:
        """Evaluate a capability's enablement right now."""
        try:
            if capability.feature_flag and self.flags is not None:
                if not self.flags.is_enabled(capability.feature_flag):
                    return False
            if capability.requires is not None:
                return bool(capability.requires())
            return True
        except Exception as e:
            logger.warning(
                f"Capability '{capability.name}' enablement check failed, treating as disabled: {e}",
                exc_info=True,
            )
            return False

    def active_actions(self) -> list[Action]:
        """Actions whose owning capability is enabled (unowned actions always are)."""
        enabled: dict[str, bool] = {}
        active = []
        for action in self.actions.list_actions():
            owner = self._owner.get(action.name)
            if owner is None:
                active.append(action)
                continue
            if owner not in enabled:
                enabled[owner] = self.is_enabled(self._capabilities[owner])
            if enabled[owner]:
                active.append(action)
        return active

    def capability_for(self, action_name: str) -> Capability | None:
        owner = self._owner.get(action_name)
        return self._capabilities.get(owner) if owner else None

    def list_capabilities(self) -> list[Capability]:
        return list(self._capabilities.values())

    def describe(self) -> list[dict]:
        """Current state of every capability."""
        return [
            {
                "name": cap.name,
                "description": cap.description,
                "enabled": self.is_enabled(cap),
                "feature_flag": cap.feature_flag,
                "actions": cap.action_names(),
            }
            for cap in self._capabilities.values()
        ]
