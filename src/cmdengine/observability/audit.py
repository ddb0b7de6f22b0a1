"""
Audit trail for processed commands.

Every completed command produces one immutable CommandLogEntry. The
AuditLogger emits it as a structured `AUDIT:` log record and persists
it to a CommandLogStore in the background. Auditing is best-effort: a
failing store never changes the outcome the caller sees.
"""

import asyncio
import json
import logging
import sqlite3
import threading
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from cmdengine.core.types import CommandLogEntry, CommandTranscript

logger = logging.getLogger(__name__)


# =============================================================================
# Stores
# =============================================================================


@runtime_checkable
class CommandLogStore(Protocol):
    """Persistence for command log entries."""

    def append(self, entry: CommandLogEntry) -> None:
        ...

    def recent(self, limit: int = 20, user_id: str | None = None) -> list[CommandLogEntry]:
        ...


class InMemoryCommandLogStore:
    """Bounded in-process store (tests, CLI one-shots)."""

    def __init__(self, max_entries: int = 1000):
        self._entries: deque[CommandLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, entry: CommandLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def recent(self, limit: int = 20, user_id: str | None = None) -> list[CommandLogEntry]:
        with self._lock:
            entries = list(self._entries)
        if user_id is not None:
            entries = [e for e in entries if e.user_id == user_id]
        entries.reverse()
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteCommandLogStore:
    """
    SQLite-backed command log.

    One table, created on first use. Writes arrive from worker threads,
    so a single connection is shared behind a lock.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS command_log (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        command TEXT NOT NULL,
        intent TEXT NOT NULL,  -- JSON object
        plan TEXT NOT NULL,  -- JSON array of steps
        result TEXT NOT NULL,  -- JSON result envelope
        status TEXT NOT NULL,
        execution_time_ms REAL NOT NULL,
        started_at TEXT NOT NULL,
        finished_at TEXT NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_command_log_user ON command_log(user_id);
    CREATE INDEX IF NOT EXISTS idx_command_log_created ON command_log(created_at);
    """

    def __init__(self, db_path: str = "./data/command_log.db"):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database (":memory:" for a private in-memory db)
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        logger.info(f"SQLiteCommandLogStore initialized: {db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(self.SCHEMA)
            self._conn.commit()
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for transactions."""
        with self._lock:
            conn = self._get_conn()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def append(self, entry: CommandLogEntry) -> None:
        with self.transaction() as cursor:
            cursor.execute("""
                INSERT INTO command_log
                (id, user_id, command, intent, plan, result, status,
                 execution_time_ms, started_at, finished_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.id,
                entry.user_id,
                entry.command,
                json.dumps(entry.intent, default=str),
                json.dumps(entry.plan, default=str),
                json.dumps(entry.result, default=str),
                entry.status,
                entry.execution_time_ms,
                entry.started_at,
                entry.finished_at,
                entry.created_at,
            ))
        logger.debug(f"Stored command log entry: {entry.id}")

    def recent(self, limit: int = 20, user_id: str | None = None) -> list[CommandLogEntry]:
        """Most recent entries first, optionally for one user."""
        query = "SELECT * FROM command_log"
        params: tuple = ()
        if user_id is not None:
            query += " WHERE user_id = ?"
            params = (user_id,)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params += (limit,)

        with self.transaction() as cursor:
            rows = cursor.execute(query, params).fetchall()

        return [
            CommandLogEntry(
                id=row["id"],
                user_id=row["user_id"],
                command=row["command"],
                intent=json.loads(row["intent"]),
                plan=json.loads(row["plan"]),
                result=json.loads(row["result"]),
                status=row["status"],
                execution_time_ms=row["execution_time_ms"],
                started_at=row["started_at"],
                finished_at=row["finished_at"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


# =============================================================================
# Security Events
# =============================================================================


class AuditEventType:
    """Audit event types."""
    COMMAND_COMPLETED = "command.completed"
    AUTH_FAILURE = "auth.failure"
    PERMISSION_DENIED = "permission.denied"


@dataclass
class AuditEvent:
    """Structured audit event."""
    event_type: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    user_id: str | None = None
    ip_address: str | None = None
    details: dict = field(default_factory=dict)
    severity: str = "INFO"  # INFO, WARNING, ERROR, CRITICAL

    def to_dict(self) -> dict:
        return {
            "audit": True,  # Mark as audit log for filtering
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "severity": self.severity,
            **self.details,
        }


# =============================================================================
# Audit Logger
# =============================================================================


class AuditLogger:
    """
    Records command transcripts and security events.

    Usage:
        audit = AuditLogger(SQLiteCommandLogStore("./data/command_log.db"))
        audit.record(transcript)   # returns immediately
        await audit.flush()        # on shutdown
    """

    def __init__(
        self,
        store: CommandLogStore | None = None,
        enabled: bool = True,
        logger_name: str = "cmdengine.audit",
    ):
        self.store = store
        self.enabled = enabled
        self._logger = logging.getLogger(logger_name)
        self._pending: set[asyncio.Task] = set()

    def _log(self, event: AuditEvent) -> None:
        level = getattr(logging, event.severity.upper(), logging.INFO)
        self._logger.log(
            level,
            f"AUDIT: {event.event_type}",
            extra={"extra_fields": event.to_dict()},
        )

    def record(self, transcript: CommandTranscript) -> None:
        """
        Record a completed command without blocking the caller.

        Never raises.
        """
        if not self.enabled:
            return

        try:
            entry = CommandLogEntry.from_transcript(transcript)
            self._log(AuditEvent(
                event_type=AuditEventType.COMMAND_COMPLETED,
                user_id=entry.user_id,
                details={
                    "command_id": entry.id,
                    "action": entry.intent.get("action"),
                    "source": entry.intent.get("source"),
                    "status": entry.status,
                    "steps": len(entry.plan),
                    "execution_time_ms": entry.execution_time_ms,
                },
            ))
        except Exception as e:
            logger.error(f"Failed to build audit entry: {e}", exc_info=True)
            return

        if self.store is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._persist_now(entry)
            return

        task = loop.create_task(self._persist(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, entry: CommandLogEntry) -> None:
        try:
            await asyncio.to_thread(self.store.append, entry)
        except Exception as e:
            logger.error(f"Failed to persist command log entry {entry.id}: {e}", exc_info=True)

    def _persist_now(self, entry: CommandLogEntry) -> None:
        try:
            self.store.append(entry)
        except Exception as e:
            logger.error(f"Failed to persist command log entry {entry.id}: {e}", exc_info=True)

    async def flush(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def recent(self, limit: int = 20, user_id: str | None = None) -> list[CommandLogEntry]:
        """Recent entries from the store (empty when no store is attached)."""
        if self.store is None:
            return []
        return self.store.recent(limit=limit, user_id=user_id)

    def log_auth_failure(
        self,
        ip: str | None = None,
        reason: str = "unknown",
        user_id: str | None = None,
        **details,
    ) -> None:
        """Log authentication failure."""
        self._log(AuditEvent(
            event_type=AuditEventType.AUTH_FAILURE,
            user_id=user_id,
            ip_address=ip,
            severity="WARNING",
            details={"reason": reason, **details},
        ))

    def log_permission_denied(
        self,
        user_id: str | None,
        permission: str,
        action: str,
        ip: str | None = None,
        **details,
    ) -> None:
        """Log permission denied event."""
        self._log(AuditEvent(
            event_type=AuditEventType.PERMISSION_DENIED,
            user_id=user_id,
            ip_address=ip,
            severity="WARNING",
            details={"permission": permission, "action": action, **details},
        ))


def store_from_settings(settings) -> CommandLogStore:
    """Pick the command log store for the configured path."""
    if settings.command_log_path == ":memory:":
        return InMemoryCommandLogStore()
    return SQLiteCommandLogStore(settings.command_log_path)
