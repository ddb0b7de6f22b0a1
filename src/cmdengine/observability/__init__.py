"""Logging, tracing and audit for the command engine."""

from cmdengine.observability.audit import (
    AuditLogger,
    CommandLogStore,
    InMemoryCommandLogStore,
    SQLiteCommandLogStore,
)
from cmdengine.observability.logging import (
    OperationLogger,
    clear_context,
    configure_logging,
    set_context,
)
from cmdengine.observability.tracing import get_tracer, init_tracing, shutdown_tracing, trace_span

__all__ = [
    "AuditLogger",
    "CommandLogStore",
    "InMemoryCommandLogStore",
    "SQLiteCommandLogStore",
    "OperationLogger",
    "clear_context",
    "configure_logging",
    "set_context",
    "get_tracer",
    "init_tracing",
    "shutdown_tracing",
    "trace_span",
]
