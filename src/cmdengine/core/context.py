"""
Context providers for AI-assisted command parsing.

Context only helps the structured parser pick an action and fill its
payload; it is never required for correctness. A failing provider is
therefore dropped from the snapshot instead of failing the command.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ContextProvider(Protocol):
    """Read-only, idempotent source of facts for the parser."""

    key: str

    def context(self) -> dict[str, Any]:
        ...


class ContextRegistry:
    """Holds context providers and merges their snapshots."""

    def __init__(self) -> None:
        self._providers: dict[str, ContextProvider] = {}

    def register_provider(self, provider: ContextProvider) -> None:
        """Register a provider under its key."""
        if provider.key in self._providers:
            raise ValueError(f"Context provider already registered: {provider.key}")
        self._providers[provider.key] = provider
        logger.debug(f"Registered context provider: {provider.key}")

    def collect(self) -> dict[str, dict[str, Any]]:
        """
        Snapshot every provider.

        Returns:
            Mapping of provider key to its snapshot; keys of failing
            providers are omitted
        """
        snapshot: dict[str, dict[str, Any]] = {}
        for key, provider in self._providers.items():
            try:
                snapshot[key] = provider.context()
            except Exception as e:
                logger.warning(f"Context provider '{key}' failed: {e}", exc_info=True)
        return snapshot

    def keys(self) -> list[str]:
        return list(self._providers)

    def __len__(self) -> int:
        return len(self._providers)


# =============================================================================
# Built-in Providers
# =============================================================================


class SiteContextProvider:
    """Static facts about the site the commands operate on."""

    key = "site"

    def __init__(self, name: str, locale: str = "en", timezone_name: str = "UTC"):
        self._facts = {"name": name, "locale": locale, "timezone": timezone_name}

    def context(self) -> dict[str, Any]:
        return dict(self._facts)


class ClockContextProvider:
    """Current date and time, so relative phrases like "tomorrow" can be resolved."""

    key = "clock"

    def context(self) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "utc_now": now.isoformat(timespec="seconds"),
            "weekday": now.strftime("%A"),
        }
