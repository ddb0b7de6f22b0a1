"""
Command API routes.

Endpoints:
- POST /command/process          run a command, buffered JSON response
- POST /command/process-stream   run a command, Server-Sent-Events progress
- GET  /command/status           what the caller can run right now
- GET  /command/history          the caller's recent commands
"""

import asyncio
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator

from cmdengine.api.deps import CurrentUser, EngineDep, require_api_key
from cmdengine.bootstrap import Engine
from cmdengine.engine.stream import CommandExecution, StreamEncoder

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_api_key)])


# =============================================================================
# Request/Response Models
# =============================================================================


class CommandRequest(BaseModel):
    """A free-text command."""

    command: str = Field(..., min_length=1, description="Command text, e.g. 'list posts'")

    @field_validator("command")
    @classmethod
    def command_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("command must not be empty")
        return v


class CommandResponse(BaseModel):
    """Buffered command outcome."""

    success: bool
    message: str
    data: dict[str, Any]


class ActionSummary(BaseModel):
    name: str
    description: str


class StatusResponse(BaseModel):
    configured: bool
    provider: str
    actions_count: int
    actions: list[ActionSummary]


class HistoryResponse(BaseModel):
    entries: list[dict[str, Any]]


def _check_length(engine: Engine, command: str) -> None:
    limit = engine.settings.max_command_length
    if len(command) > limit:
        raise HTTPException(
            status_code=422,
            detail=f"Command exceeds maximum length of {limit} characters",
        )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/process", response_model=CommandResponse)
async def process_command(body: CommandRequest, engine: EngineDep, user: CurrentUser):
    """Run a command and return its Result."""
    _check_length(engine, body.command)
    result = await engine.processor.process(body.command, user)
    return CommandResponse(
        success=result.succeeded,
        message=result.message,
        data=result.to_dict(),
    )


@router.post("/process-stream")
async def process_command_stream(body: CommandRequest, engine: EngineDep, user: CurrentUser):
    """Run a command, streaming progress frames and one terminal frame."""
    _check_length(engine, body.command)
    execution = CommandExecution(engine.processor, body.command, user)
    return StreamingResponse(
        StreamEncoder().encode(execution),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/status", response_model=StatusResponse)
async def command_status(engine: EngineDep, user: CurrentUser):
    """AI configuration and the actions enabled and visible for the caller."""
    actions = engine.processor.visible_actions(user)
    return StatusResponse(
        configured=engine.ai_configured,
        provider=engine.settings.llm_provider,
        actions_count=len(actions),
        actions=[ActionSummary(name=a.name, description=a.description) for a in actions],
    )


@router.get("/history", response_model=HistoryResponse)
async def command_history(
    engine: EngineDep,
    user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    """The caller's most recent commands, newest first."""
    await engine.audit.flush()
    entries = await asyncio.to_thread(engine.audit.recent, limit, user.id)
    return HistoryResponse(entries=[e.to_dict() for e in entries])
