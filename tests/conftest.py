"""
Pytest configuration for command engine tests.

Provides isolated settings, fake generators for the content module and
factories for engines and processors built from fresh registries.
"""

import pytest

from cmdengine.actions.content import Draft
from cmdengine.bootstrap import build_engine
from cmdengine.core.actions import ActionRegistry
from cmdengine.core.capabilities import CapabilityRegistry
from cmdengine.core.config import Settings, reset_settings
from cmdengine.core.context import ContextRegistry
from cmdengine.core.errors import ProviderError
from cmdengine.core.types import User
from cmdengine.engine.matcher import PatternMatcher
from cmdengine.engine.processor import CommandProcessor
from cmdengine.observability.audit import InMemoryCommandLogStore


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep the developer's environment and config files out of tests."""
    for name in (
        "CMDENGINE_LLM_API_KEY",
        "CMDENGINE_API_KEY",
        "CMDENGINE_API_KEY_REQUIRED",
        "CMDENGINE_USER_PERMISSIONS",
        "CMDENGINE_FEATURE_FLAGS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CMDENGINE_CONFIG_FILE", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("CMDENGINE_ENVIRONMENT", "test")
    monkeypatch.setenv("CMDENGINE_COMMAND_LOG_PATH", ":memory:")
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# Fakes
# =============================================================================


class FakeTextGenerator:
    """Returns a fixed draft, or fails like a provider outage."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.topics: list[str] = []

    async def write_post(self, topic: str) -> Draft:
        self.topics.append(topic)
        if self.fail:
            raise ProviderError("text provider down", provider="fake")
        return Draft(title=f"All about {topic}", body=f"A post about {topic}.")


class FakeImageGenerator:
    """Returns numbered URLs; calls listed in fail_on raise ProviderError."""

    def __init__(self, fail_on: tuple[int, ...] = ()):
        self.fail_on = set(fail_on)
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        if self.calls in self.fail_on:
            raise ProviderError("image provider down", provider="fake")
        return f"https://img.test/{self.calls}.png"


@pytest.fixture
def fake_text():
    return FakeTextGenerator()


@pytest.fixture
def fake_images():
    return FakeImageGenerator()


# =============================================================================
# Settings and users
# =============================================================================


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        command_log_path=":memory:",
        llm_api_key=None,
        site_base_url="https://example.test",
        user_permissions={
            "admin": ["*"],
            "editor": ["posts.create"],
            "guest": [],
        },
    )


@pytest.fixture
def admin():
    return User(id="admin", permissions=frozenset({"*"}))


@pytest.fixture
def guest():
    return User(id="guest")


# =============================================================================
# Engine and processor factories
# =============================================================================


@pytest.fixture
def make_engine(settings):
    """Build an engine with fake generators; keyword arguments override."""

    def _make(**kwargs):
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("text_generator", FakeTextGenerator())
        kwargs.setdefault("image_generator", FakeImageGenerator())
        kwargs.setdefault("audit_store", InMemoryCommandLogStore())
        return build_engine(**kwargs)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def make_processor():
    """Build a processor over fresh registries holding the given actions."""

    def _make(*actions, rules=(), parser=None, checker=None, audit=None, context=None, timeout=1.0):
        registry = ActionRegistry()
        for action in actions:
            registry.register(action)
        registry.freeze()
        return CommandProcessor(
            capabilities=CapabilityRegistry(registry),
            context=context or ContextRegistry(),
            matcher=PatternMatcher(rules),
            parser=parser,
            permission_checker=checker,
            audit=audit,
            parse_timeout=timeout,
        )

    return _make
