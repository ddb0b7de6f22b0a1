"""
AI fallback stage of intent resolution.

A StructuredParser turns a command into {action, payload} by asking an
external model to choose among the candidate actions. It may raise or
run long; the processor bounds each call and treats any failure as
"no action matched".
"""

import json
import logging
from typing import Any, Protocol, Union, runtime_checkable

from cmdengine.core.actions import Action
from cmdengine.core.schema import schema_to_list
from cmdengine.core.types import Intent, IntentSource
from cmdengine.llm.client import strip_code_fences

logger = logging.getLogger(__name__)

AI_DEFAULT_CONFIDENCE = 0.7


class _NoMatch:
    """Sentinel returned when the parser found no suitable action."""

    def __repr__(self) -> str:
        return "NO_MATCH"

    def __bool__(self) -> bool:
        return False


NO_MATCH = _NoMatch()

ParseOutcome = Union[Intent, _NoMatch]


@runtime_checkable
class StructuredParser(Protocol):
    """Resolves a command against candidate actions using an external model."""

    async def parse(
        self,
        prompt: str,
        candidates: list[Action],
        context: dict[str, Any],
        timeout: float,
    ) -> ParseOutcome:
        ...


SYSTEM_PROMPT = (
    "You convert a user's command into exactly one action call. "
    "Only choose from the listed actions. Answer with a JSON object only."
)


def build_prompt(command: str, candidates: list[Action], context: dict[str, Any]) -> str:
    """
    Build the parsing prompt.

    Args:
        command: Raw user command
        candidates: Actions the user may invoke right now
        context: Snapshot from ContextRegistry.collect()

    Returns:
        Prompt text
    """
    actions = [
        {
            "name": action.name,
            "description": action.description,
            "payload": schema_to_list(action.payload_schema),
        }
        for action in candidates
    ]

    return f"""Parse this command into a structured action.

Command: {json.dumps(command)}

Available actions:
{json.dumps(actions, indent=2, default=str)}

Context:
{json.dumps(context, indent=2, default=str)}

Return a JSON object:
{{
    "action": "action.name" or null,
    "payload": {{"field": "value"}},
    "confidence": 0.0 to 1.0
}}

If no listed action fits the command, return {{"action": null}}."""


class LLMStructuredParser:
    """StructuredParser backed by an LLMClient in JSON mode."""

    def __init__(self, llm_client: Any):
        """
        Args:
            llm_client: Object with `async complete(prompt, system, json_mode, timeout)`
        """
        self.llm = llm_client

    async def parse(
        self,
        prompt: str,
        candidates: list[Action],
        context: dict[str, Any],
        timeout: float,
    ) -> ParseOutcome:
        """
        Ask the model to pick an action for the command in `prompt`.

        Raises:
            ProviderError: When the LLM call fails
        """
        response = await self.llm.complete(
            build_prompt(prompt, candidates, context),
            system=SYSTEM_PROMPT,
            json_mode=True,
            timeout=timeout,
        )

        try:
            result = json.loads(strip_code_fences(response))
        except json.JSONDecodeError:
            logger.warning(f"Could not parse LLM response: {response[:200]}")
            return NO_MATCH

        if not isinstance(result, dict) or not result.get("action"):
            return NO_MATCH

        payload = result.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        try:
            confidence = float(result.get("confidence", AI_DEFAULT_CONFIDENCE))
        except (TypeError, ValueError):
            confidence = AI_DEFAULT_CONFIDENCE

        return Intent(
            raw_text=prompt,
            action=str(result["action"]),
            payload=payload,
            source=IntentSource.AI,
            confidence=confidence,
        )
