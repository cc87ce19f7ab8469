"""Decision audit trail.

Every routing and timing decision is recorded here. Routed requests
also become usage events, which is what closes the feedback loop: the
model router scores providers on their recorded history.

Recording is fire-and-forget. The decision is returned to the caller
before any write completes, and a failed write is logged, never raised.
Background writes are tracked so shutdown can drain them.

The audit log answers:
- Which model answered which conversation, and why?
- Which requests were rejected on budget?
- Which replies were delayed, by how much, and what did that save?
"""

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx

from claxis.usage import UsageRecord, UsageStore

logger = logging.getLogger(__name__)


class DecisionEventType(str, Enum):
    """Types of auditable decisions."""

    # Model router
    MODEL_SELECTED = "routing:model_selected"
    BUDGET_EXCEEDED = "routing:budget_exceeded"
    NO_MODEL_AVAILABLE = "routing:no_model_available"

    # Timing optimizer
    RESPONSE_IMMEDIATE = "timing:immediate"
    RESPONSE_OPTIMIZED = "timing:optimized"

    # Settings
    SETTINGS_UPDATED = "settings:updated"


@dataclass
class DecisionEvent:
    """A single decision event."""

    event_type: DecisionEventType
    salon_id: str
    conversation_id: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "salon_id": self.salon_id,
            "conversation_id": self.conversation_id,
            "execution_id": self.execution_id,
            "data": self.data,
        }


@runtime_checkable
class AnalyticsSink(Protocol):
    """Destination for decision events."""

    async def record(self, event: DecisionEvent) -> None: ...


class SQLiteAnalyticsSink:
    """Append-only decision log in SQLite, queryable for savings stats."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or (Path.home() / ".claxis" / "decisions.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS decision_events (
                event_id TEXT PRIMARY KEY,
                event_type TEXT NOT NULL,
                timestamp REAL NOT NULL,
                salon_id TEXT NOT NULL,
                conversation_id TEXT,
                execution_id TEXT,
                data TEXT
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_decision_salon_time
            ON decision_events(salon_id, timestamp)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_decision_conversation
            ON decision_events(conversation_id)
        """)

        conn.commit()
        conn.close()

    def _write_event(self, event: DecisionEvent) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """INSERT OR IGNORE INTO decision_events
                   (event_id, event_type, timestamp, salon_id,
                    conversation_id, execution_id, data)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.event_id,
                    event.event_type.value,
                    event.timestamp,
                    event.salon_id,
                    event.conversation_id,
                    event.execution_id,
                    json.dumps(event.data),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    async def record(self, event: DecisionEvent) -> None:
        await asyncio.to_thread(self._write_event, event)

    def _select(
        self,
        salon_id: str,
        event_types: list[DecisionEventType] | None,
        since: float | None,
        limit: int,
    ) -> list[dict[str, Any]]:
        query = "SELECT * FROM decision_events WHERE salon_id = ?"
        params: list[Any] = [salon_id]

        if event_types:
            query += f" AND event_type IN ({', '.join('?' for _ in event_types)})"
            params.extend(t.value for t in event_types)
        if since:
            query += " AND timestamp > ?"
            params.append(since)

        query += " ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(query, params)
            columns = [desc[0] for desc in cursor.description]
            results = [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            conn.close()

        for row in results:
            row["data"] = json.loads(row["data"] or "{}")
        return results

    async def query(
        self,
        salon_id: str,
        event_types: list[DecisionEventType] | None = None,
        since: float | None = None,
        limit: int = 1000,
    ) -> list[dict[str, Any]]:
        """Query decision events, newest first.

        Args:
            salon_id: Salon whose events to read.
            event_types: Restrict to these types.
            since: Only events after this epoch timestamp.
            limit: Max results.
        """
        return await asyncio.to_thread(self._select, salon_id, event_types, since, limit)


class WebhookAnalyticsSink:
    """Forwards decision events to an HTTP endpoint as JSON."""

    def __init__(self, url: str, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def record(self, event: DecisionEvent) -> None:
        resp = await self._client.post(self.url, json=event.to_dict())
        resp.raise_for_status()

    async def close(self) -> None:
        await self._client.aclose()


class DecisionAuditLogger:
    """Fire-and-forget recorder shared by both decision engines.

    Usage:
        audit = DecisionAuditLogger(sinks=[SQLiteAnalyticsSink()], usage_store=store)
        audit.emit(event)            # returns immediately
        await audit.drain()          # on shutdown
    """

    def __init__(
        self,
        sinks: list[AnalyticsSink] | None = None,
        usage_store: UsageStore | None = None,
    ):
        self.sinks = list(sinks or [])
        self.usage_store = usage_store
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _schedule(self, coro, label: str) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._guard(coro, label))
        except RuntimeError:
            # No running loop: nothing can await the write, drop it.
            coro.close()
            logger.warning(f"Dropped {label}: no running event loop")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @staticmethod
    async def _guard(coro, label: str) -> None:
        try:
            await coro
        except Exception as e:
            logger.warning(f"Failed to record {label}: {e}")

    def emit(self, event: DecisionEvent) -> None:
        """Send an event to every sink in the background."""
        for sink in self.sinks:
            self._schedule(sink.record(event), f"{event.event_type.value} via {type(sink).__name__}")

    def record_usage(self, record: UsageRecord) -> None:
        """Persist a usage event in the background."""
        if self.usage_store is None:
            return
        self._schedule(self.usage_store.insert_usage_event(record), f"usage event for {record.model}")

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                await close()
