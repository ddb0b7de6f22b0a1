"""LLM access for the command engine."""

from cmdengine.llm.client import LLMClient, client_from_settings, strip_code_fences

__all__ = ["LLMClient", "client_from_settings", "strip_code_fences"]
