"""Built-in business modules registered at boot."""

from cmdengine.actions.content import (
    ContentModule,
    ContentStatsProvider,
    LLMImageGenerator,
    LLMTextGenerator,
    PostRepository,
)
from cmdengine.actions.shop import ProductRepository, ShopModule

__all__ = [
    "ContentModule",
    "ContentStatsProvider",
    "LLMImageGenerator",
    "LLMTextGenerator",
    "PostRepository",
    "ProductRepository",
    "ShopModule",
]
