"""
Tests for CapabilityRegistry enablement.
"""

import pytest

from cmdengine.core.actions import ActionRegistry, FunctionAction
from cmdengine.core.capabilities import Capability, CapabilityRegistry
from cmdengine.core.errors import DuplicateActionError, DuplicateCapabilityError, RegistryFrozenError
from cmdengine.core.feature_flags import FeatureFlags, FlagConfig
from cmdengine.core.types import Result


def action(name: str) -> FunctionAction:
    return FunctionAction(name=name, description=name, handler=lambda p: Result.ok())


@pytest.fixture
def registry():
    return ActionRegistry()


@pytest.fixture
def flags():
    return FeatureFlags()


class TestRegistration:
    """Tests for register_capability."""

    def test_registers_actions_transitively(self, registry):
        caps = CapabilityRegistry(registry)
        caps.register_capability(Capability("shop", (action("shop.a"), action("shop.b"))))

        assert registry.names() == ["shop.a", "shop.b"]
        assert caps.capability_for("shop.a").name == "shop"

    def test_duplicate_capability(self, registry):
        caps = CapabilityRegistry(registry)
        caps.register_capability(Capability("shop", (action("shop.a"),)))
        with pytest.raises(DuplicateCapabilityError):
            caps.register_capability(Capability("shop", (action("shop.b"),)))

    def test_duplicate_action_across_capabilities(self, registry):
        caps = CapabilityRegistry(registry)
        caps.register_capability(Capability("one", (action("x.a"),)))
        with pytest.raises(DuplicateActionError):
            caps.register_capability(Capability("two", (action("x.a"),)))

    def test_rejected_after_freeze(self, registry):
        caps = CapabilityRegistry(registry)
        registry.freeze()
        with pytest.raises(RegistryFrozenError):
            caps.register_capability(Capability("late", (action("late.a"),)))

    def test_declared_flag_defaults_on(self, registry, flags):
        caps = CapabilityRegistry(registry, flags)
        caps.register_capability(Capability("shop", (action("shop.a"),), feature_flag="shop"))
        assert flags.is_enabled("shop")

    def test_configured_flag_state_kept(self, registry):
        flags = FeatureFlags({"shop": FlagConfig(enabled=False)})
        caps = CapabilityRegistry(registry, flags)
        caps.register_capability(Capability("shop", (action("shop.a"),), feature_flag="shop"))
        assert caps.active_actions() == []


class TestActiveActions:
    """Tests for active_actions()."""

    def test_flag_toggle_takes_effect_immediately(self, registry, flags):
        caps = CapabilityRegistry(registry, flags)
        caps.register_capability(Capability("shop", (action("shop.a"),), feature_flag="shop"))
        assert [a.name for a in caps.active_actions()] == ["shop.a"]

        flags.set_enabled("shop", False)
        assert caps.active_actions() == []

        flags.set_enabled("shop", True)
        assert [a.name for a in caps.active_actions()] == ["shop.a"]

    def test_requires_predicate_evaluated_every_call(self, registry):
        state = {"ready": False}
        caps = CapabilityRegistry(registry)
        caps.register_capability(
            Capability("images", (action("image.make"),), requires=lambda: state["ready"])
        )
        assert caps.active_actions() == []
        state["ready"] = True
        assert [a.name for a in caps.active_actions()] == ["image.make"]

    def test_failing_check_is_disabled(self, registry):
        """An enablement check that raises hides the capability."""

        def broken():
            raise RuntimeError("config service unreachable")

        caps = CapabilityRegistry(registry)
        caps.register_capability(Capability("broken", (action("broken.a"),), requires=broken))
        caps.register_capability(Capability("fine", (action("fine.a"),)))

        assert [a.name for a in caps.active_actions()] == ["fine.a"]

    def test_unowned_actions_always_active(self, registry, flags):
        caps = CapabilityRegistry(registry, flags)
        registry.register(action("core.ping"))
        assert [a.name for a in caps.active_actions()] == ["core.ping"]

    def test_describe(self, registry, flags):
        caps = CapabilityRegistry(registry, flags)
        caps.register_capability(Capability("shop", (action("shop.a"),), "Shop", feature_flag="shop"))
        flags.set_enabled("shop", False)

        assert caps.describe() == [{
            "name": "shop",
            "description": "Shop",
            "enabled": False,
            "feature_flag": "shop",
            "actions": ["shop.a"],
        }]
