"""
Progress sinks.

Actions report Steps through a ProgressSink while they execute. The sink
is called synchronously from inside the handler, so steps arrive in the
order the handler emitted them. Sinks are interchangeable: action code
never knows whether it is being streamed, buffered or ignored.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from cmdengine.core.types import Step, StepStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressSink(Protocol):
    """Receives Steps emitted by an action."""

    def emit(self, step: Step) -> None:
        ...


class NullSink:
    """Discards every step."""

    def emit(self, step: Step) -> None:
        return None


class BufferingSink:
    """Keeps steps in memory (non-streaming transport, tests)."""

    def __init__(self) -> None:
        self.steps: list[Step] = []

    def emit(self, step: Step) -> None:
        self.steps.append(step)

    def labels(self) -> list[str]:
        return [s.label for s in self.steps]


class CallbackSink:
    """Forwards each step to a plain callable."""

    def __init__(self, callback: Callable[[Step], None]):
        self._callback = callback

    def emit(self, step: Step) -> None:
        self._callback(step)


class QueueSink:
    """Puts steps on an asyncio queue for a concurrent consumer."""

    def __init__(self, queue: asyncio.Queue):
        self._queue = queue

    def emit(self, step: Step) -> None:
        self._queue.put_nowait(step)


# =============================================================================
# Step constructors
# =============================================================================


def started(label: str, message: str = "", **data: Any) -> Step:
    """An in_progress step for a phase."""
    return Step(
        label=label,
        status=StepStatus.IN_PROGRESS,
        data=data or None,
        message=message,
    )


def completed(
    label: str,
    message: str = "",
    artifact: bool = False,
    **data: Any,
) -> Step:
    """A completed step; set artifact=True when it reports a persisted primary artifact."""
    return Step(
        label=label,
        status=StepStatus.COMPLETED,
        data=data or None,
        artifact=artifact,
        message=message,
    )


def failed(label: str, message: str = "", **data: Any) -> Step:
    """A failed step for a phase."""
    return Step(
        label=label,
        status=StepStatus.FAILED,
        data=data or None,
        message=message,
    )
