"""AI usage tracking and the usage store boundary.

The decision engines read historical per-model performance and
per-conversation message timestamps from a UsageStore, and write one
usage event per routed request. The SQLite implementation here is the
one the CLI and the HTTP API use; anything satisfying the UsageStore
protocol can be injected instead.

Features:
- Per-request usage logging with model/cost/confidence/response time
- Inbound message log (service window and reply-gap prediction)
- Per-model aggregation and monthly AI budget status
"""

import asyncio
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from claxis.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass
class UsageRecord:
    """A single routed AI request."""
    salon_id: str
    model: str
    cost_euros: float
    confidence: float
    timestamp: float = field(default_factory=time.time)
    response_time_ms: float | None = None
    conversation_id: str | None = None
    request_type: str = "general_inquiry"
    optimization_mode: str = "balanced"
    reasoning: str = ""

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "salon_id": self.salon_id,
            "model": self.model,
            "cost_euros": self.cost_euros,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "created_at": self.created_at.isoformat(),
            "response_time_ms": self.response_time_ms,
            "conversation_id": self.conversation_id,
            "request_type": self.request_type,
            "optimization_mode": self.optimization_mode,
            "reasoning": self.reasoning,
        }


@runtime_checkable
class UsageStore(Protocol):
    """Read/write boundary for usage history and message timestamps."""

    async def query_history(
        self,
        salon_id: str,
        since: datetime,
        until: datetime | None = None,
        model: str | None = None,
    ) -> list[UsageRecord]: ...

    async def insert_usage_event(self, record: UsageRecord) -> None: ...

    async def last_inbound_message_timestamp(self, conversation_id: str) -> datetime | None: ...

    async def customer_message_history(self, customer_id: str, limit: int = 10) -> list[datetime]: ...

    async def record_inbound_message(
        self,
        conversation_id: str,
        customer_id: str | None = None,
        received_at: datetime | None = None,
    ) -> None: ...


@dataclass
class ModelUsage:
    """Aggregated usage of one model."""
    model: str
    requests: int = 0
    total_cost_euros: float = 0.0
    total_confidence: float = 0.0
    response_times: list[float] = field(default_factory=list)

    @property
    def avg_cost_euros(self) -> float:
        return self.total_cost_euros / self.requests if self.requests else 0.0

    @property
    def avg_confidence(self) -> float:
        return self.total_confidence / self.requests if self.requests else 0.0

    @property
    def avg_response_time_ms(self) -> float | None:
        if not self.response_times:
            return None
        return sum(self.response_times) / len(self.response_times)

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "cost_euros": round(self.total_cost_euros, 6),
            "avg_cost_euros": round(self.avg_cost_euros, 6),
            "avg_confidence": round(self.avg_confidence, 4),
            "avg_response_time_ms": self.avg_response_time_ms,
        }


def aggregate_by_model(records: list[UsageRecord]) -> dict[str, ModelUsage]:
    """Group usage records per model, in first-seen order."""
    by_model: dict[str, ModelUsage] = {}
    for record in records:
        usage = by_model.setdefault(record.model, ModelUsage(model=record.model))
        usage.requests += 1
        usage.total_cost_euros += record.cost_euros
        usage.total_confidence += record.confidence
        if record.response_time_ms is not None:
            usage.response_times.append(record.response_time_ms)
    return by_model


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLiteUsageStore:
    """UsageStore backed by SQLite.

    The sqlite3 calls are blocking, so every public method hops to a
    worker thread and opens its own connection.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or (Path.home() / ".claxis" / "usage.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ai_usage (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    salon_id TEXT NOT NULL,
                    model TEXT NOT NULL,
                    cost_euros REAL NOT NULL DEFAULT 0.0,
                    confidence REAL NOT NULL DEFAULT 0.0,
                    response_time_ms REAL,
                    conversation_id TEXT,
                    request_type TEXT,
                    optimization_mode TEXT,
                    reasoning TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_ai_usage_salon_time
                ON ai_usage(salon_id, timestamp)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS inbound_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    customer_id TEXT,
                    received_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_inbound_conversation
                ON inbound_messages(conversation_id, received_at)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_inbound_customer
                ON inbound_messages(customer_id, received_at)
            """)
            conn.commit()
        finally:
            conn.close()

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            logger.error(f"Usage store call {fn.__name__} failed: {e}")
            raise StoreError(f"Usage store failure: {e}", {"db_path": str(self.db_path)}) from e

    # ── usage events ─────────────────────────────────────────

    def _insert(self, record: UsageRecord) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO ai_usage
                   (timestamp, salon_id, model, cost_euros, confidence,
                    response_time_ms, conversation_id, request_type,
                    optimization_mode, reasoning)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.timestamp, record.salon_id, record.model,
                    record.cost_euros, record.confidence,
                    record.response_time_ms, record.conversation_id,
                    record.request_type, record.optimization_mode,
                    record.reasoning,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def _select(
        self,
        salon_id: str,
        since: float,
        until: float,
        model: str | None,
    ) -> list[UsageRecord]:
        query = """SELECT timestamp, salon_id, model, cost_euros, confidence,
                          response_time_ms, conversation_id, request_type,
                          optimization_mode, reasoning
                   FROM ai_usage
                   WHERE salon_id = ? AND timestamp >= ? AND timestamp <= ?"""
        params: list[Any] = [salon_id, since, until]
        if model:
            query += " AND model = ?"
            params.append(model)
        query += " ORDER BY timestamp ASC"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        return [
            UsageRecord(
                timestamp=row[0],
                salon_id=row[1],
                model=row[2],
                cost_euros=row[3],
                confidence=row[4],
                response_time_ms=row[5],
                conversation_id=row[6],
                request_type=row[7] or "general_inquiry",
                optimization_mode=row[8] or "balanced",
                reasoning=row[9] or "",
            )
            for row in rows
        ]

    async def insert_usage_event(self, record: UsageRecord) -> None:
        await self._run(self._insert, record)

    async def query_history(
        self,
        salon_id: str,
        since: datetime,
        until: datetime | None = None,
        model: str | None = None,
    ) -> list[UsageRecord]:
        end = _to_epoch(until) if until else time.time()
        return await self._run(self._select, salon_id, _to_epoch(since), end, model)

    # ── inbound messages ─────────────────────────────────────

    def _insert_inbound(self, conversation_id: str, customer_id: str | None, received_at: float) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO inbound_messages (conversation_id, customer_id, received_at)
                   VALUES (?, ?, ?)""",
                (conversation_id, customer_id, received_at),
            )
            conn.commit()
        finally:
            conn.close()

    def _last_inbound(self, conversation_id: str) -> float | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT MAX(received_at) FROM inbound_messages WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def _customer_history(self, customer_id: str, limit: int) -> list[float]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT received_at FROM inbound_messages
                   WHERE customer_id = ?
                   ORDER BY received_at DESC LIMIT ?""",
                (customer_id, limit),
            ).fetchall()
        finally:
            conn.close()
        return [row[0] for row in rows]

    async def record_inbound_message(
        self,
        conversation_id: str,
        customer_id: str | None = None,
        received_at: datetime | None = None,
    ) -> None:
        stamp = _to_epoch(received_at) if received_at else time.time()
        await self._run(self._insert_inbound, conversation_id, customer_id, stamp)

    async def last_inbound_message_timestamp(self, conversation_id: str) -> datetime | None:
        stamp = await self._run(self._last_inbound, conversation_id)
        return _from_epoch(stamp) if stamp is not None else None

    async def customer_message_history(self, customer_id: str, limit: int = 10) -> list[datetime]:
        """Most recent inbound message timestamps, newest first."""
        stamps = await self._run(self._customer_history, customer_id, limit)
        return [_from_epoch(s) for s in stamps]


async def get_usage_stats(
    store: UsageStore,
    salon_id: str,
    period_days: int = 30,
    monthly_budget_euros: float = 100.0,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Summarize AI usage over the last N days against the monthly AI budget."""
    now = now or datetime.now(timezone.utc)
    records = await store.query_history(salon_id, since=now - timedelta(days=period_days), until=now)
    by_model = aggregate_by_model(records)

    total_cost = sum(r.cost_euros for r in records)
    total_requests = len(records)

    return {
        "statistics_available": True,
        "calculation_period_days": period_days,
        "usage_summary": {
            "total_requests": total_requests,
            "total_cost_euros": round(total_cost, 6),
            "average_requests_per_day": total_requests / period_days,
            "average_cost_per_day_euros": total_cost / period_days,
            "is_calculated": total_requests > 0,
        },
        "model_breakdown": {model: usage.to_dict() for model, usage in by_model.items()},
        "budget_status": {
            "monthly_budget_euros": monthly_budget_euros,
            "budget_utilization_percentage": (
                total_cost / monthly_budget_euros * 100 if monthly_budget_euros > 0 else 0.0
            ),
            "remaining_budget_euros": monthly_budget_euros - total_cost,
        },
    }
