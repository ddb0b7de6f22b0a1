"""
Structured logging for the command engine.

Provides JSON-structured logging with the command id and user id of
the command being processed attached to every line.
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

# Context variables for per-command tracking
_command_id: ContextVar[str] = ContextVar("command_id", default="")
_user_id: ContextVar[str] = ContextVar("user_id", default="")
_command_start: ContextVar[float] = ContextVar("command_start", default=0.0)

# CR, LF, null bytes and other control chars except tab
_CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _sanitize_log_message(message: str) -> str:
    """
    Escape line breaks and strip control characters.

    Raw commands are user input; unescaped newlines would let a command
    forge extra log entries.
    """
    if not isinstance(message, str):
        message = str(message)

    message = message.replace("\r\n", "\\r\\n")
    message = message.replace("\n", "\\n")
    message = message.replace("\r", "\\r")
    return _CONTROL_CHAR_PATTERN.sub("", message)


@dataclass
class LogContext:
    """Structured log context."""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    level: str = "INFO"
    logger: str = "cmdengine"
    message: str = ""
    command_id: str | None = None
    user_id: str | None = None
    duration_ms: float | None = None
    extra: dict = field(default_factory=dict)

    def to_json(self) -> str:
        """Convert to JSON string."""
        data = asdict(self)
        data = {k: v for k, v in data.items() if v is not None}
        extra = data.pop("extra", {})
        data.update(extra)
        return json.dumps(data, default=str)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        ctx = LogContext(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=record.levelname,
            logger=record.name,
            message=_sanitize_log_message(record.getMessage()),
            command_id=_command_id.get() or None,
            user_id=_sanitize_log_message(_user_id.get()) or None,
        )

        start = _command_start.get()
        if start > 0:
            ctx.duration_ms = round((time.time() - start) * 1000, 2)

        if hasattr(record, "extra_fields"):
            ctx.extra = dict(record.extra_fields)

        if record.exc_info:
            ctx.extra["exception"] = self.formatException(record.exc_info)

        return ctx.to_json()


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON format (default: True)
        log_file: Optional file path for logs
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    if json_output:
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("cmdengine").setLevel(numeric_level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def set_context(command_id: str, user_id: str) -> tuple[Token, Token, Token]:
    """
    Set logging context for the current async task.

    Args:
        command_id: Id of the command being processed
        user_id: Caller id

    Returns:
        Tokens to hand back to clear_context() to restore the outer context
    """
    return (
        _command_id.set(command_id),
        _user_id.set(user_id),
        _command_start.set(time.time()),
    )


def clear_context(tokens: tuple[Token, Token, Token] | None = None) -> None:
    """
    Clear logging context.

    Args:
        tokens: Tokens from set_context(); when given, the previous values
            are restored instead of blanked
    """
    if tokens is not None:
        for var, token in zip((_command_id, _user_id, _command_start), tokens):
            var.reset(token)
        return
    _command_id.set("")
    _user_id.set("")
    _command_start.set(0.0)


class OperationLogger:
    """
    Context manager for logging operations with timing.

    Example:
        async with OperationLogger("process_command", command_id=cid, user_id="bob") as log:
            result = await run()
            log.set_result(status=result.status.value)
    """

    def __init__(
        self,
        operation: str,
        command_id: str | None = None,
        user_id: str | None = None,
        **extra,
    ):
        self.operation = operation
        self.command_id = command_id or _command_id.get()
        self.user_id = user_id or _user_id.get()
        self.extra = extra
        self.result: dict = {}
        self.start_time = 0.0
        self.logger = logging.getLogger("cmdengine.operations")
        self._tokens: tuple[Token, Token, Token] | None = None

    async def __aenter__(self) -> "OperationLogger":
        self.start_time = time.time()
        self._tokens = set_context(self.command_id, self.user_id)
        self.logger.info(
            f"Starting {self.operation}",
            extra={"extra_fields": {"operation": self.operation, **self.extra}},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        duration_ms = (time.time() - self.start_time) * 1000
        fields = {
            "operation": self.operation,
            "duration_ms": round(duration_ms, 2),
            **self.extra,
            **self.result,
        }

        if exc_type:
            fields["error"] = str(exc_val)
            fields["error_type"] = exc_type.__name__
            self.logger.error(
                f"Failed {self.operation}: {exc_val}",
                extra={"extra_fields": fields},
            )
        else:
            self.logger.info(
                f"Completed {self.operation} in {duration_ms:.2f}ms",
                extra={"extra_fields": fields},
            )

        clear_context(self._tokens)
        self._tokens = None

    def set_result(self, **kwargs) -> None:
        """Set result fields to include in the completion line."""
        self.result.update(kwargs)
