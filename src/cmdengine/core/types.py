"""
Core data types for the command engine.

Intent, Step/Plan and Result are ephemeral and live for one command.
CommandLogEntry is the immutable record handed to the audit store.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class StepStatus(str, Enum):
    """Status of a reported progress step."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ResultStatus(str, Enum):
    """Terminal outcome of one command."""
    SUCCESS = "success"
    PARTIAL = "partial"    # Primary artifact kept, secondary sub-step failed
    FAILED = "failed"


class IntentSource(str, Enum):
    """Which resolution stage produced an intent."""
    PATTERN = "pattern"
    AI = "ai"
    NONE = "none"


# =============================================================================
# Caller
# =============================================================================


@dataclass(frozen=True)
class User:
    """Immutable identity of the caller issuing a command."""

    id: str
    permissions: frozenset[str] = frozenset()
    roles: frozenset[str] = frozenset()

    def has_permission(self, permission: str) -> bool:
        """Check if this user was granted a permission ("*" grants all)."""
        return "*" in self.permissions or permission in self.permissions


# =============================================================================
# Intent
# =============================================================================


@dataclass
class Intent:
    """Resolved {action, payload} pair for one raw command."""
    raw_text: str
    action: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    source: IntentSource = IntentSource.NONE
    confidence: float = 0.0

    @property
    def matched(self) -> bool:
        return self.action is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_text": self.raw_text,
            "action": self.action,
            "payload": dict(self.payload),
            "source": self.source.value,
            "confidence": self.confidence,
        }


# =============================================================================
# Progress
# =============================================================================


@dataclass(frozen=True)
class Step:
    """One progress report emitted by an action while it executes."""
    label: str
    status: StepStatus
    data: dict[str, Any] | None = None
    artifact: bool = False  # Step reports a persisted primary artifact
    message: str = ""
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (StepStatus.COMPLETED, StepStatus.FAILED)

    def to_event(self) -> dict[str, Any]:
        """Payload of a `progress` stream frame."""
        return {
            "step": self.label,
            "status": self.status.value,
            "data": self.data,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.to_event(),
            "artifact": self.artifact,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

    def describe(self) -> str:
        """Flattened human-readable log line."""
        text = f"{self.label}: {self.status.value}"
        if self.message:
            text += f" - {self.message}"
        return text


class Plan:
    """
    Append-only ordered log of Steps for one command.

    Keeps the per-phase ordering guarantee: for any label, an in_progress
    step is recorded before any completed/failed step with that label.
    A terminal step for a phase that was never started gets a synthetic
    in_progress step inserted ahead of it. An in_progress step for a phase
    that already finished is dropped.
    """

    def __init__(self) -> None:
        self._steps: list[Step] = []
        self._started: set[str] = set()
        self._finished: set[str] = set()

    def append(self, step: Step) -> list[Step]:
        """
        Record a step.

        Args:
            step: Step reported by an action

        Returns:
            Steps actually recorded, in order (synthetic start first if any).
            Empty when the step was dropped.
        """
        if not step.is_terminal and step.label in self._finished:
            logger.warning(f"Dropping late in_progress step for finished phase '{step.label}'")
            return []

        recorded: list[Step] = []
        if step.is_terminal and step.label not in self._started:
            logger.debug(f"Phase '{step.label}' finished without a start; inserting one")
            start = Step(label=step.label, status=StepStatus.IN_PROGRESS, timestamp=step.timestamp)
            self._steps.append(start)
            recorded.append(start)
        self._started.add(step.label)
        if step.is_terminal:
            self._finished.add(step.label)
        self._steps.append(step)
        recorded.append(step)
        return recorded

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self):
        return iter(list(self._steps))

    def artifact_data(self) -> dict[str, Any]:
        """Merged data of every completed artifact step."""
        merged: dict[str, Any] = {}
        for step in self._steps:
            if step.artifact and step.status == StepStatus.COMPLETED and step.data:
                merged.update(step.data)
        return merged

    def has_artifact(self) -> bool:
        return any(
            s.artifact and s.status == StepStatus.COMPLETED for s in self._steps
        )

    def describe(self) -> list[str]:
        """Flattened log of finished phases."""
        return [s.describe() for s in self._steps if s.is_terminal]

    def to_list(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self._steps]


# =============================================================================
# Result
# =============================================================================


@dataclass
class Result:
    """Terminal outcome of one command."""
    status: ResultStatus
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    actions: dict[str, str] = field(default_factory=dict)  # label -> follow-up reference
    completed_steps: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, message: str = "", **kwargs: Any) -> "Result":
        return cls(status=ResultStatus.SUCCESS, message=message, **kwargs)

    @classmethod
    def partial(cls, message: str = "", **kwargs: Any) -> "Result":
        return cls(status=ResultStatus.PARTIAL, message=message, **kwargs)

    @classmethod
    def fail(cls, message: str = "", **kwargs: Any) -> "Result":
        return cls(status=ResultStatus.FAILED, message=message, **kwargs)

    @property
    def succeeded(self) -> bool:
        """True unless the command failed outright (partial keeps user work)."""
        return self.status != ResultStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        """JSON envelope."""
        return {
            "status": self.status.value,
            "message": self.message,
            "data": dict(self.data),
            "actions": dict(self.actions),
            "completedSteps": list(self.completed_steps),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Result":
        return cls(
            status=ResultStatus(payload["status"]),
            message=payload.get("message", ""),
            data=dict(payload.get("data") or {}),
            actions=dict(payload.get("actions") or {}),
            completed_steps=list(payload.get("completedSteps") or []),
        )


# =============================================================================
# Transcript and Log Entry
# =============================================================================


@dataclass
class CommandTranscript:
    """Everything that happened while processing one command."""
    user: User
    command: str
    intent: Intent
    plan: Plan
    result: Result
    command_id: str = field(default_factory=lambda: uuid4().hex)
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime = field(default_factory=_utcnow)

    @property
    def execution_time_ms(self) -> float:
        return (self.finished_at - self.started_at).total_seconds() * 1000


@dataclass(frozen=True)
class CommandLogEntry:
    """Persisted, never-mutated record of a completed command."""
    id: str
    user_id: str
    command: str
    intent: dict[str, Any]
    plan: list[dict[str, Any]]
    result: dict[str, Any]
    status: str
    execution_time_ms: float
    started_at: str
    finished_at: str
    created_at: str = field(default_factory=lambda: _utcnow().isoformat())

    @classmethod
    def from_transcript(cls, transcript: CommandTranscript) -> "CommandLogEntry":
        return cls(
            id=transcript.command_id,
            user_id=transcript.user.id,
            command=transcript.command,
            intent=transcript.intent.to_dict(),
            plan=transcript.plan.to_list(),
            result=transcript.result.to_dict(),
            status=transcript.result.status.value,
            execution_time_ms=round(transcript.execution_time_ms, 2),
            started_at=transcript.started_at.isoformat(),
            finished_at=transcript.finished_at.isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "command": self.command,
            "intent": self.intent,
            "plan": self.plan,
            "result": self.result,
            "status": self.status,
            "execution_time_ms": self.execution_time_ms,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "created_at": self.created_at,
        }
