"""Core types, registries and configuration for the command engine."""

from cmdengine.core.access_control import (
    GrantPermissionChecker,
    PermissionChecker,
    UserDirectory,
    require_permission,
)
from cmdengine.core.actions import Action, ActionRegistry, FunctionAction
from cmdengine.core.capabilities import Capability, CapabilityRegistry
from cmdengine.core.config import Settings, get_settings, reset_settings
from cmdengine.core.context import (
    ClockContextProvider,
    ContextProvider,
    ContextRegistry,
    SiteContextProvider,
)
from cmdengine.core.errors import (
    CommandEngineError,
    DuplicateActionError,
    DuplicateCapabilityError,
    HandlerFault,
    NoActionMatched,
    PayloadValidationError,
    PermissionDenied,
    ProviderError,
    RegistryFrozenError,
    ValidationError,
)
from cmdengine.core.feature_flags import FeatureFlags, FlagConfig
from cmdengine.core.progress import (
    BufferingSink,
    CallbackSink,
    NullSink,
    ProgressSink,
    QueueSink,
)
from cmdengine.core.schema import FieldKind, FieldSpec, validate_payload
from cmdengine.core.types import (
    CommandLogEntry,
    CommandTranscript,
    Intent,
    IntentSource,
    Plan,
    Result,
    ResultStatus,
    Step,
    StepStatus,
    User,
)

__all__ = [
    # Actions
    "Action",
    "ActionRegistry",
    "FunctionAction",
    "Capability",
    "CapabilityRegistry",
    # Context
    "ContextProvider",
    "ContextRegistry",
    "SiteContextProvider",
    "ClockContextProvider",
    # Access
    "PermissionChecker",
    "GrantPermissionChecker",
    "UserDirectory",
    "require_permission",
    # Config
    "Settings",
    "get_settings",
    "reset_settings",
    "FeatureFlags",
    "FlagConfig",
    # Schema
    "FieldKind",
    "FieldSpec",
    "validate_payload",
    # Progress
    "ProgressSink",
    "NullSink",
    "BufferingSink",
    "CallbackSink",
    "QueueSink",
    # Types
    "CommandLogEntry",
    "CommandTranscript",
    "Intent",
    "IntentSource",
    "Plan",
    "Result",
    "ResultStatus",
    "Step",
    "StepStatus",
    "User",
    # Errors
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
