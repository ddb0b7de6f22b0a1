"""
Deterministic pattern stage of intent resolution.

Rules are tried in registration order and the first rule that matches
(and whose action is currently a candidate) wins. The same text against
the same rules and candidates always yields the same intent.
"""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from cmdengine.core.types import Intent, IntentSource

logger = logging.getLogger(__name__)

PATTERN_CONFIDENCE = 0.9

Extractor = Callable[[re.Match], dict[str, Any]]


@dataclass
class PatternRule:
    """
    Regex rule mapping a command onto an action.

    Either name the capture groups with `params` (group 1 -> params[0], ...)
    or pass `extract` to build the payload from the match yourself.
    """
    pattern: str
    action: str
    params: tuple[str, ...] = ()
    extract: Extractor | None = None

    def __post_init__(self) -> None:
        self._compiled = re.compile(self.pattern, re.IGNORECASE)

    def match(self, text: str) -> dict[str, Any] | None:
        """Payload for text, or None when the rule does not apply."""
        found = self._compiled.match(text)
        if not found:
            return None

        if self.extract is not None:
            return self.extract(found)

        payload = {}
        for i, name in enumerate(self.params):
            if i < len(found.groups()) and found.group(i + 1):
                payload[name] = found.group(i + 1).strip()
        return payload


class PatternMatcher:
    """Ordered collection of PatternRules."""

    def __init__(self, rules: Iterable[PatternRule] = ()):
        self._rules: list[PatternRule] = list(rules)

    def add_rule(self, rule: PatternRule) -> None:
        self._rules.append(rule)
        logger.debug(f"Added pattern rule for {rule.action}: {rule.pattern}")

    def add_rules(self, rules: Iterable[PatternRule]) -> None:
        for rule in rules:
            self.add_rule(rule)

    @property
    def rules(self) -> list[PatternRule]:
        return list(self._rules)

    def match(self, text: str, candidates: Iterable[str]) -> Intent | None:
        """
        Run the pattern stage.

        Args:
            text: Raw command
            candidates: Names of actions the caller may currently invoke

        Returns:
            Intent from the first applicable rule, or None
        """
        text = text.strip()
        allowed = set(candidates)

        for rule in self._rules:
            if rule.action not in allowed:
                continue
            try:
                payload = rule.match(text)
            except Exception as e:
                logger.warning(f"Pattern rule for {rule.action} failed to extract: {e}")
                continue
            if payload is None:
                continue

            logger.debug(f"Pattern matched {rule.action}")
            return Intent(
                raw_text=text,
                action=rule.action,
                payload=payload,
                source=IntentSource.PATTERN,
                confidence=PATTERN_CONFIDENCE,
            )

        return None

    def __len__(self) -> int:
        return len(self._rules)
