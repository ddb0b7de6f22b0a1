"""
Tests for the LLM-backed structured parser.
"""

import json
from unittest.mock import AsyncMock

import pytest

from cmdengine.core.actions import FunctionAction
from cmdengine.core.errors import ProviderError
from cmdengine.core.schema import FieldKind, FieldSpec
from cmdengine.core.types import Intent, IntentSource, Result
from cmdengine.engine.parser import NO_MATCH, SYSTEM_PROMPT, LLMStructuredParser, build_prompt

CREATE_PRODUCT = FunctionAction(
    name="shop.create_product",
    description="Create a product in the shop",
    handler=lambda p: Result.ok(),
    payload_schema=(
        FieldSpec("name", required=True),
        FieldSpec("price", FieldKind.NUMBER, required=True),
    ),
)


def llm_returning(text: str) -> AsyncMock:
    llm = AsyncMock()
    llm.complete.return_value = text
    return llm


class TestBuildPrompt:
    """Tests for prompt construction."""

    def test_lists_actions_and_context(self):
        prompt = build_prompt("add a lamp for 12.50", [CREATE_PRODUCT], {"site": {"name": "Demo"}})

        assert '"add a lamp for 12.50"' in prompt
        assert "shop.create_product" in prompt
        assert "Create a product in the shop" in prompt
        assert '"price"' in prompt
        assert '"Demo"' in prompt


class TestLLMStructuredParser:
    """Tests for LLMStructuredParser.parse."""

    @pytest.mark.asyncio
    async def test_returns_intent(self):
        llm = llm_returning(json.dumps({
            "action": "shop.create_product",
            "payload": {"name": "Lamp", "price": "12.50"},
            "confidence": 0.85,
        }))
        parser = LLMStructuredParser(llm)

        intent = await parser.parse("add a lamp for 12.50", [CREATE_PRODUCT], {}, timeout=5.0)

        assert isinstance(intent, Intent)
        assert intent.action == "shop.create_product"
        assert intent.payload == {"name": "Lamp", "price": "12.50"}
        assert intent.source == IntentSource.AI
        assert intent.confidence == 0.85

        kwargs = llm.complete.call_args.kwargs
        assert kwargs["system"] == SYSTEM_PROMPT
        assert kwargs["json_mode"] is True
        assert kwargs["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_null_action_is_no_match(self):
        parser = LLMStructuredParser(llm_returning('{"action": null}'))
        assert await parser.parse("hello", [CREATE_PRODUCT], {}, timeout=1.0) is NO_MATCH

    @pytest.mark.asyncio
    async def test_invalid_json_is_no_match(self):
        parser = LLMStructuredParser(llm_returning("I think you want a product"))
        assert await parser.parse("hello", [CREATE_PRODUCT], {}, timeout=1.0) is NO_MATCH

    @pytest.mark.asyncio
    async def test_non_object_is_no_match(self):
        parser = LLMStructuredParser(llm_returning('["shop.create_product"]'))
        assert await parser.parse("hello", [CREATE_PRODUCT], {}, timeout=1.0) is NO_MATCH

    @pytest.mark.asyncio
    async def test_code_fences_stripped(self):
        text = '```json\n{"action": "shop.create_product", "payload": {"name": "Lamp"}}\n```'
        intent = await LLMStructuredParser(llm_returning(text)).parse("x", [CREATE_PRODUCT], {}, timeout=1.0)
        assert intent.payload == {"name": "Lamp"}
        assert intent.confidence == 0.7

    @pytest.mark.asyncio
    async def test_bad_payload_and_confidence_defaulted(self):
        text = json.dumps({"action": "shop.create_product", "payload": "Lamp", "confidence": "high"})
        intent = await LLMStructuredParser(llm_returning(text)).parse("x", [CREATE_PRODUCT], {}, timeout=1.0)
        assert intent.payload == {}
        assert intent.confidence == 0.7

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self):
        llm = AsyncMock()
        llm.complete.side_effect = ProviderError("rate limited", provider="openai", status_code=429)
        with pytest.raises(ProviderError):
            await LLMStructuredParser(llm).parse("x", [CREATE_PRODUCT], {}, timeout=1.0)

    def test_no_match_is_falsy(self):
        assert not NO_MATCH
        assert repr(NO_MATCH) == "NO_MATCH"
