"""Shared fixtures: in-memory usage store, salon settings, contexts."""

from datetime import datetime, timezone

import pytest

from claxis.errors import StoreError
from claxis.models import AISettings, ConversationContext, SalonSettings
from claxis.usage import UsageRecord


class FakeUsageStore:
    """In-memory UsageStore.

    fail=True makes every call raise StoreError; an exception instance is
    raised as-is, for stores that fail with their own error types.
    """

    def __init__(self, records=None, fail=False):
        self.records: list[UsageRecord] = list(records or [])
        self.inbound: list[tuple[str, str | None, datetime]] = []
        self.fail = fail

    def _check(self):
        if isinstance(self.fail, Exception):
            raise self.fail
        if self.fail:
            raise StoreError("store unavailable")

    async def query_history(self, salon_id, since, until=None, model=None):
        self._check()
        lo = since.timestamp()
        hi = until.timestamp() if until else float("inf")
        return [
            r for r in self.records
            if r.salon_id == salon_id and lo <= r.timestamp <= hi and (model is None or r.model == model)
        ]

    async def insert_usage_event(self, record):
        self._check()
        self.records.append(record)

    async def last_inbound_message_timestamp(self, conversation_id):
        self._check()
        stamps = [at for conv, _, at in self.inbound if conv == conversation_id]
        return max(stamps) if stamps else None

    async def customer_message_history(self, customer_id, limit=10):
        self._check()
        stamps = sorted((at for _, cust, at in self.inbound if cust == customer_id), reverse=True)
        return stamps[:limit]

    async def record_inbound_message(self, conversation_id, customer_id=None, received_at=None):
        self._check()
        self.inbound.append((conversation_id, customer_id, received_at or datetime.now(timezone.utc)))


class RecordingSink:
    """AnalyticsSink that keeps events in a list."""

    def __init__(self):
        self.events = []

    async def record(self, event):
        self.events.append(event)


class FailingSink:
    async def record(self, event):
        raise RuntimeError("analytics endpoint down")


@pytest.fixture
def now():
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return FakeUsageStore()


@pytest.fixture
def salon():
    """All three providers enabled."""
    return SalonSettings(
        salon_id="salon-1",
        business_name="Studio Nord",
        ai_settings=AISettings(deepseek_enabled=True, elevenlabs_enabled=True),
    )


@pytest.fixture
def gemini_only():
    return SalonSettings(salon_id="salon-1")


@pytest.fixture
def context():
    return ConversationContext(id="conv-1", salon_id="salon-1", customer_id="cust-1")
