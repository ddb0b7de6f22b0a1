"""
Feature Flags for the command engine.

Capabilities declare the flag that gates them by name. Flags can be
toggled at runtime without restart, and every capability check reads the
current value, so a toggle takes effect on the next command.

Usage:
    flags = FeatureFlags({"content": FlagConfig(enabled=True)})

    if flags.is_enabled("content"):
        ...

    flags.set_enabled("shop", False)

Environment overrides: CMDENGINE_FLAG_<NAME>=true|false
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class FlagConfig:
    """Configuration for a single feature flag."""

    enabled: bool = False
    description: str = ""


class FeatureFlags:
    """
    Centralized feature flag manager.

    Unknown flags read as disabled. Reads and writes are guarded by a lock
    because flags may be toggled from an admin surface while commands run.
    """

    def __init__(
        self,
        defaults: dict[str, FlagConfig] | None = None,
        env_prefix: str = "CMDENGINE_FLAG_",
    ):
        """
        Initialize feature flags.

        Args:
            defaults: Default flag configurations keyed by flag name
            env_prefix: Environment variable prefix for overrides
        """
        self._lock = threading.RLock()
        self._flags: dict[str, FlagConfig] = {}
        self._env_prefix = env_prefix

        for name, config in (defaults or {}).items():
            self._flags[name] = FlagConfig(
                enabled=config.enabled,
                description=config.description,
            )

        self._apply_env_overrides()

        logger.info(f"FeatureFlags initialized with {len(self._flags)} flags")

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        for key, value in os.environ.items():
            if not key.startswith(self._env_prefix):
                continue
            name = key[len(self._env_prefix):].lower()
            enabled = value.lower() in ("true", "1", "yes", "on")
            self._flags.setdefault(name, FlagConfig()).enabled = enabled
            logger.debug(f"Flag {name} overridden to {enabled} via env")

    def register(self, name: str, config: FlagConfig | None = None) -> None:
        """Declare a flag if it is not already known (keeps current state)."""
        with self._lock:
            if name not in self._flags:
                self._flags[name] = config or FlagConfig(enabled=True)

    def is_enabled(self, name: str) -> bool:
        """
        Check if a feature flag is enabled.

        Args:
            name: Flag name

        Returns:
            True if enabled
        """
        with self._lock:
            config = self._flags.get(name)
            return config is not None and config.enabled

    def set_enabled(self, name: str, enabled: bool) -> None:
        """
        Enable or disable a feature flag at runtime.

        Args:
            name: Flag to modify
            enabled: New enabled state
        """
        with self._lock:
            if name not in self._flags:
                self._flags[name] = FlagConfig()

            old_enabled = self._flags[name].enabled
            self._flags[name].enabled = enabled

            logger.info(f"Flag {name} changed: {old_enabled} -> {enabled}")


def flags_from_settings(settings) -> FeatureFlags:
    """Build flags from the `feature_flags` mapping in Settings."""
    return FeatureFlags(
        {name: FlagConfig(enabled=bool(enabled)) for name, enabled in settings.feature_flags.items()}
    )


__all__ = [
    "FeatureFlags",
    "FlagConfig",
    "flags_from_settings",
]
