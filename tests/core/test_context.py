"""
Tests for ContextRegistry and the built-in providers.
"""

import pytest

from cmdengine.core.context import ClockContextProvider, ContextRegistry, SiteContextProvider


class StaticProvider:
    def __init__(self, key, facts):
        self.key = key
        self.facts = facts

    def context(self):
        return dict(self.facts)


class BrokenProvider:
    key = "broken"

    def context(self):
        raise RuntimeError("database unavailable")


class TestContextRegistry:
    """Tests for ContextRegistry."""

    def test_collect_merges_providers(self):
        registry = ContextRegistry()
        registry.register_provider(StaticProvider("site", {"name": "Demo"}))
        registry.register_provider(StaticProvider("shop", {"products": 3}))

        assert registry.collect() == {"site": {"name": "Demo"}, "shop": {"products": 3}}

    def test_failing_provider_omitted(self):
        registry = ContextRegistry()
        registry.register_provider(BrokenProvider())
        registry.register_provider(StaticProvider("site", {"name": "Demo"}))

        assert registry.collect() == {"site": {"name": "Demo"}}

    def test_duplicate_key_rejected(self):
        registry = ContextRegistry()
        registry.register_provider(StaticProvider("site", {}))
        with pytest.raises(ValueError):
            registry.register_provider(StaticProvider("site", {}))

    def test_keys(self):
        registry = ContextRegistry()
        registry.register_provider(StaticProvider("a", {}))
        assert registry.keys() == ["a"]
        assert len(registry) == 1


class TestBuiltinProviders:
    """Tests for site and clock providers."""

    def test_site(self):
        provider = SiteContextProvider("Demo Shop", locale="de", timezone_name="Europe/Berlin")
        assert provider.key == "site"
        assert provider.context() == {"name": "Demo Shop", "locale": "de", "timezone": "Europe/Berlin"}

    def test_clock(self):
        snapshot = ClockContextProvider().context()
        assert set(snapshot) == {"utc_now", "weekday"}
