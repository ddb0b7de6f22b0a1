"""
Error taxonomy for the command engine.

Errors raised inside the engine are converted to failed or partial
Results at the CommandProcessor boundary. Only registry errors (raised at
boot) and genuine processor bugs propagate to callers.
"""

from typing import Any


class CommandEngineError(Exception):
    """Base class for command engine errors."""


# =============================================================================
# Registry Errors (boot time)
# =============================================================================


class DuplicateActionError(CommandEngineError):
    """Raised when an action name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Action already registered: {name}")


class DuplicateCapabilityError(CommandEngineError):
    """Raised when a capability name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Capability already registered: {name}")


class RegistryFrozenError(CommandEngineError):
    """Raised when registering into a registry after boot."""


# =============================================================================
# Command Errors (converted to Results)
# =============================================================================


class PayloadValidationError(CommandEngineError, ValueError):
    """Raised when a payload does not satisfy an action's schema."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(f"Invalid payload: {details}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to error response format."""
        return {
            "error": "validation_error",
            "fields": dict(self.errors),
        }


# Name used throughout the documentation of the error taxonomy
ValidationError = PayloadValidationError


class PermissionDenied(CommandEngineError, PermissionError):
    """Raised when a user lacks the permission an action declares."""

    def __init__(self, user_id: str, permission: str):
        self.user_id = user_id
        self.permission = permission
        super().__init__(
            f"Permission denied: user='{user_id}' lacks '{permission}'"
        )


class NoActionMatched(CommandEngineError):
    """Raised when neither the pattern nor the AI stage resolved an action."""

    def __init__(self, command: str):
        self.command = command
        super().__init__("no action matched")


class ProviderError(CommandEngineError):
    """An external service (LLM, image generation) failed or timed out."""

    def __init__(self, message: str, provider: str = "", status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class HandlerFault(CommandEngineError):
    """An unexpected exception escaped a business action handler."""

    def __init__(self, action: str, cause: BaseException):
        self.action = action
        self.cause = cause
        super().__init__(f"Handler for '{action}' failed: {type(cause).__name__}")


__all__ = [
    "CommandEngineError",
    "DuplicateActionError",
    "DuplicateCapabilityError",
    "HandlerFault",
    "NoActionMatched",
    "PayloadValidationError",
    "PermissionDenied",
    "ProviderError",
    "RegistryFrozenError",
    "ValidationError",
]
