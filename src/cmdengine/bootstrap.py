"""
Engine assembly.

Everything the processor needs is built here, once, from Settings:
registries are created, business modules are registered explicitly,
and the action registry is frozen before the first command runs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from cmdengine.actions.content import (
    ContentModule,
    ImageGenerator,
    LLMImageGenerator,
    LLMTextGenerator,
    PostRepository,
    TextGenerator,
)
from cmdengine.actions.shop import ProductRepository, ShopModule
from cmdengine.core.access_control import GrantPermissionChecker, UserDirectory
from cmdengine.core.actions import ActionRegistry
from cmdengine.core.capabilities import CapabilityRegistry
from cmdengine.core.config import Settings, get_settings
from cmdengine.core.context import ClockContextProvider, ContextRegistry, SiteContextProvider
from cmdengine.core.feature_flags import FeatureFlags, flags_from_settings
from cmdengine.engine.matcher import PatternMatcher
from cmdengine.engine.parser import LLMStructuredParser, StructuredParser
from cmdengine.engine.processor import CommandProcessor
from cmdengine.llm.client import LLMClient, client_from_settings
from cmdengine.observability.audit import AuditLogger, CommandLogStore, store_from_settings

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """Assembled engine; one per process (or per test)."""
    settings: Settings
    actions: ActionRegistry
    flags: FeatureFlags
    capabilities: CapabilityRegistry
    context: ContextRegistry
    matcher: PatternMatcher
    processor: CommandProcessor
    audit: AuditLogger
    users: UserDirectory
    llm: LLMClient | None = None
    modules: dict[str, Any] = field(default_factory=dict)

    @property
    def ai_configured(self) -> bool:
        return self.processor.parser is not None

    async def aclose(self) -> None:
        """Flush audit writes and release clients."""
        await self.audit.flush()
        if self.llm is not None:
            await self.llm.close()
        close = getattr(self.audit.store, "close", None)
        if close is not None:
            close()


def build_engine(
    settings: Settings | None = None,
    llm: LLMClient | None = None,
    parser: StructuredParser | None = None,
    text_generator: TextGenerator | None = None,
    image_generator: ImageGenerator | None = None,
    audit_store: CommandLogStore | None = None,
) -> Engine:
    """
    Build a ready-to-use engine.

    Args:
        settings: Settings (defaults to get_settings())
        llm: LLM client (built from settings when omitted)
        parser: AI stage override (defaults to the LLM parser when configured)
        text_generator: Post text generator override
        image_generator: Post image generator override
        audit_store: Command log store override

    Returns:
        Engine with frozen registries
    """
    settings = settings or get_settings()
    llm = llm or client_from_settings(settings)

    actions = ActionRegistry()
    flags = flags_from_settings(settings)
    capabilities = CapabilityRegistry(actions, flags)
    context = ContextRegistry()
    matcher = PatternMatcher()

    context.register_provider(
        SiteContextProvider(settings.site_name, settings.site_locale, settings.site_timezone)
    )
    context.register_provider(ClockContextProvider())

    # Business modules
    content_requires = None
    if text_generator is None:
        text_generator = LLMTextGenerator(llm, timeout=settings.text_timeout_seconds)
        content_requires = lambda: llm.configured  # noqa: E731
    if image_generator is None:
        image_generator = LLMImageGenerator(llm, timeout=settings.image_timeout_seconds)

    content = ContentModule(
        PostRepository(),
        text_generator,
        image_generator,
        base_url=settings.site_base_url,
        text_timeout=settings.text_timeout_seconds,
        image_timeout=settings.image_timeout_seconds,
    )
    shop = ShopModule(ProductRepository(), base_url=settings.site_base_url)

    capabilities.register_capability(content.capability(requires=content_requires))
    capabilities.register_capability(shop.capability())
    for module in (content, shop):
        matcher.add_rules(module.rules())
        for provider in module.context_providers():
            context.register_provider(provider)

    actions.freeze()

    if parser is None and llm.configured:
        parser = LLMStructuredParser(llm)
    if parser is None:
        logger.info("No LLM configured; AI fallback disabled, pattern rules only")

    store = audit_store if audit_store is not None else store_from_settings(settings)
    audit = AuditLogger(store, enabled=settings.audit_enabled)

    processor = CommandProcessor(
        capabilities=capabilities,
        context=context,
        matcher=matcher,
        parser=parser,
        permission_checker=GrantPermissionChecker(),
        audit=audit,
        parse_timeout=settings.parse_timeout_seconds,
    )

    logger.info(
        f"Engine ready: {len(actions)} actions, {len(matcher)} rules, "
        f"{len(context)} context providers"
    )

    return Engine(
        settings=settings,
        actions=actions,
        flags=flags,
        capabilities=capabilities,
        context=context,
        matcher=matcher,
        processor=processor,
        audit=audit,
        users=UserDirectory(settings.user_permissions),
        llm=llm,
        modules={"content": content, "shop": shop},
    )
