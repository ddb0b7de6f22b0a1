"""
Server-Sent-Events encoding of command execution.

A CommandExecution runs the processor in a background task and yields
progress events as they are produced, followed by exactly one terminal
event. If the client goes away the task keeps running to completion so
the command is still finished and audited.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from cmdengine.core.progress import QueueSink
from cmdengine.core.types import Step, User

logger = logging.getLogger(__name__)

PROGRESS = "progress"
COMPLETE = "complete"
ERROR = "error"

ERROR_MESSAGE = "Command processing failed"

# Strong references so running executions are not garbage-collected
_background_tasks: set[asyncio.Task] = set()


def format_frame(event: str, data: Any) -> str:
    """Serialize one SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class CommandExecution:
    """
    One command running in the background.

    Iterating yields ("progress", Step) pairs, then one ("complete", Result)
    or ("error", message).
    """

    def __init__(self, processor, command: str, user: User):
        self.processor = processor
        self.command = command
        self.user = user
        self._queue: asyncio.Queue = asyncio.Queue()
        self.task: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        """Start processing (idempotent)."""
        if self.task is None:
            self.task = asyncio.get_running_loop().create_task(self._run())
            _background_tasks.add(self.task)
            self.task.add_done_callback(_background_tasks.discard)
        return self.task

    async def _run(self) -> None:
        try:
            result = await self.processor.process(self.command, self.user, QueueSink(self._queue))
        except asyncio.CancelledError:
            self._queue.put_nowait((ERROR, ERROR_MESSAGE))
            raise
        except Exception as e:
            logger.error(f"Command processing raised: {e}", exc_info=True)
            self._queue.put_nowait((ERROR, ERROR_MESSAGE))
            return
        self._queue.put_nowait((COMPLETE, result))

    async def __aiter__(self) -> AsyncIterator[tuple[str, Any]]:
        self.start()
        while True:
            item = await self._queue.get()
            if isinstance(item, Step):
                yield PROGRESS, item
                continue
            yield item
            return


class StreamEncoder:
    """Turns a CommandExecution into SSE frames."""

    async def encode(self, execution: CommandExecution) -> AsyncIterator[str]:
        async for kind, payload in execution:
            if kind == PROGRESS:
                yield format_frame(PROGRESS, payload.to_event())
            elif kind == COMPLETE:
                yield format_frame(COMPLETE, payload.to_dict())
            else:
                yield format_frame(ERROR, {"message": payload})


async def drain_background_tasks(timeout: float | None = None) -> None:
    """Wait for running executions (shutdown)."""
    tasks = list(_background_tasks)
    if not tasks:
        return
    logger.info(f"Waiting for {len(tasks)} running command(s)")
    await asyncio.wait(tasks, timeout=timeout)
