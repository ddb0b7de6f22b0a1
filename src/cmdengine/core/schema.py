"""
Declarative payload schemas for actions.

An action's payload schema is an ordered tuple of FieldSpec descriptors.
validate_payload() is a pure function: it returns the coerced payload
or raises PayloadValidationError with one message per offending field.
"""

import logging
import math
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cmdengine.core.errors import PayloadValidationError

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "yes", "y", "1", "on"})
_FALSE_STRINGS = frozenset({"false", "no", "n", "0", "off"})


class FieldKind(str, Enum):
    """Value kinds a payload field may declare."""
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    LIST = "list"


@dataclass(frozen=True)
class FieldSpec:
    """Descriptor for one payload field."""
    name: str
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    default: Any = None
    description: str = ""

    # Constraints
    min_value: float | None = None
    max_value: float | None = None
    max_length: int | None = None  # Strings and lists
    choices: tuple[str, ...] = ()  # Enum values

    def to_dict(self) -> dict[str, Any]:
        """Describe the field for prompts and status listings."""
        spec: dict[str, Any] = {
            "name": self.name,
            "type": self.kind.value,
            "required": self.required,
        }
        if self.description:
            spec["description"] = self.description
        if self.default is not None:
            spec["default"] = self.default
        if self.min_value is not None:
            spec["min"] = self.min_value
        if self.max_value is not None:
            spec["max"] = self.max_value
        if self.max_length is not None:
            spec["max_length"] = self.max_length
        if self.choices:
            spec["choices"] = list(self.choices)
        return spec


Schema = tuple[FieldSpec, ...]


def schema_to_list(schema: Schema) -> list[dict[str, Any]]:
    """Serialize a schema in field order."""
    return [f.to_dict() for f in schema]


# =============================================================================
# Coercion
# =============================================================================


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_string(spec: FieldSpec, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValueError("must be a string")
    text = str(value).strip()
    if spec.max_length is not None and len(text) > spec.max_length:
        raise ValueError(f"must be at most {spec.max_length} characters")
    return text


def _coerce_integer(spec: FieldSpec, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("must be a whole number")
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise ValueError("must be an integer") from None
    raise ValueError("must be an integer")


def _coerce_number(spec: FieldSpec, value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().lstrip("$€£").replace(",", "")
        try:
            number = float(cleaned)
        except ValueError:
            raise ValueError("must be a number") from None
    else:
        raise ValueError("must be a number")
    if not math.isfinite(number):
        raise ValueError("must be a finite number")
    return number


def _coerce_boolean(spec: FieldSpec, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError("must be a boolean")


def _coerce_enum(spec: FieldSpec, value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"must be one of: {', '.join(spec.choices)}")
    lowered = value.strip().lower()
    for choice in spec.choices:
        if choice.lower() == lowered:
            return choice
    raise ValueError(f"must be one of: {', '.join(spec.choices)}")


def _coerce_list(spec: FieldSpec, value: Any) -> list[Any]:
    if isinstance(value, str):
        items: list[Any] = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValueError("must be a list")
    if spec.max_length is not None and len(items) > spec.max_length:
        raise ValueError(f"must have at most {spec.max_length} items")
    return items


_COERCERS = {
    FieldKind.STRING: _coerce_string,
    FieldKind.INTEGER: _coerce_integer,
    FieldKind.NUMBER: _coerce_number,
    FieldKind.BOOLEAN: _coerce_boolean,
    FieldKind.ENUM: _coerce_enum,
    FieldKind.LIST: _coerce_list,
}


def _check_range(spec: FieldSpec, value: float) -> None:
    if spec.min_value is not None and value < spec.min_value:
        raise ValueError(f"must be at least {spec.min_value:g}")
    if spec.max_value is not None and value > spec.max_value:
        raise ValueError(f"must be at most {spec.max_value:g}")


def validate_payload(schema: Schema, payload: dict[str, Any] | None) -> dict[str, Any]:
    """
    Validate and coerce a payload against a schema.

    Unknown keys are dropped. Missing optional fields take their default
    when one is declared.

    Args:
        schema: Ordered field descriptors
        payload: Raw payload from the pattern or AI stage

    Returns:
        Coerced payload in schema field order

    Raises:
        PayloadValidationError: If any field is missing or invalid
    """
    payload = payload or {}
    if not isinstance(payload, dict):
        raise PayloadValidationError({"payload": "must be an object"})

    cleaned: dict[str, Any] = {}
    errors: dict[str, str] = {}

    for spec in schema:
        raw = payload.get(spec.name)

        if _is_blank(raw):
            if spec.required:
                errors[spec.name] = "is required"
            elif spec.default is not None:
                cleaned[spec.name] = deepcopy(spec.default)
            continue

        try:
            value = _COERCERS[spec.kind](spec, raw)
            if spec.kind in (FieldKind.INTEGER, FieldKind.NUMBER):
                _check_range(spec, value)
        except ValueError as e:
            errors[spec.name] = str(e)
            continue

        cleaned[spec.name] = value

    if errors:
        raise PayloadValidationError(errors)

    dropped = set(payload) - {spec.name for spec in schema}
    if dropped:
        logger.debug(f"Dropped unknown payload keys: {sorted(dropped)}")

    return cleaned
