"""Tests for usage aggregation, the SQLite usage store and usage analytics."""

import asyncio
import time
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeUsageStore


def _record(model, cost, confidence=0.9, ago=60.0, response_time_ms=None, salon_id="salon-1"):
    from claxis.usage import UsageRecord
    return UsageRecord(
        salon_id=salon_id,
        model=model,
        cost_euros=cost,
        confidence=confidence,
        timestamp=time.time() - ago,
        response_time_ms=response_time_ms,
    )


# ═══════════════════════════════════════════════════════════════
# 1. AGGREGATION
# ═══════════════════════════════════════════════════════════════

class TestAggregation:

    def test_three_records_two_models(self):
        from claxis.usage import aggregate_by_model
        records = [
            _record("gemini_flash", 0.002, confidence=0.8, response_time_ms=400),
            _record("gemini_flash", 0.002, confidence=0.6, response_time_ms=600),
            _record("deepseek_r1", 0.007, confidence=0.9),
        ]
        by_model = aggregate_by_model(records)

        gemini = by_model["gemini_flash"]
        assert gemini.requests == 2
        assert gemini.total_cost_euros == pytest.approx(0.004)
        assert gemini.avg_cost_euros == pytest.approx(0.002)
        assert gemini.avg_confidence == pytest.approx(0.7)
        assert gemini.avg_response_time_ms == pytest.approx(500)

        deepseek = by_model["deepseek_r1"]
        assert deepseek.requests == 1
        assert deepseek.total_cost_euros == pytest.approx(0.007)
        assert deepseek.avg_response_time_ms is None

    def test_usage_stats(self):
        from claxis.usage import get_usage_stats
        store = FakeUsageStore([
            _record("gemini_flash", 1.0),
            _record("gemini_flash", 1.0),
            _record("deepseek_r1", 3.0),
            _record("deepseek_r1", 3.0, ago=40 * 86400),
            _record("deepseek_r1", 3.0, salon_id="salon-2"),
        ])
        stats = asyncio.run(get_usage_stats(store, "salon-1", 10, monthly_budget_euros=50.0))
        summary = stats["usage_summary"]
        assert summary["total_requests"] == 3
        assert summary["total_cost_euros"] == pytest.approx(5.0)
        assert summary["average_requests_per_day"] == pytest.approx(0.3)
        assert stats["model_breakdown"]["gemini_flash"]["requests"] == 2
        assert stats["budget_status"]["budget_utilization_percentage"] == pytest.approx(10.0)
        assert stats["budget_status"]["remaining_budget_euros"] == pytest.approx(45.0)


# ═══════════════════════════════════════════════════════════════
# 2. SQLITE STORE
# ═══════════════════════════════════════════════════════════════

class TestSQLiteUsageStore:

    @pytest.fixture
    def sqlite_store(self, tmp_path):
        from claxis.usage import SQLiteUsageStore
        return SQLiteUsageStore(db_path=tmp_path / "usage.db")

    def test_satisfies_protocol(self, sqlite_store):
        from claxis.usage import UsageStore
        assert isinstance(sqlite_store, UsageStore)

    def test_usage_events_persist(self, sqlite_store, tmp_path):
        from claxis.usage import SQLiteUsageStore

        async def run():
            await sqlite_store.insert_usage_event(_record("gemini_flash", 0.001, response_time_ms=150))
            await sqlite_store.insert_usage_event(_record("deepseek_r1", 0.005))
            await sqlite_store.insert_usage_event(_record("deepseek_r1", 0.005, salon_id="other"))
            reopened = SQLiteUsageStore(db_path=tmp_path / "usage.db")
            since = datetime.now(timezone.utc) - timedelta(days=1)
            return (
                await reopened.query_history("salon-1", since),
                await reopened.query_history("salon-1", since, model="deepseek_r1"),
            )

        everything, deepseek = asyncio.run(run())
        assert [r.model for r in everything] == ["gemini_flash", "deepseek_r1"]
        assert everything[0].response_time_ms == 150
        assert len(deepseek) == 1

    def test_query_window(self, sqlite_store):
        async def run():
            await sqlite_store.insert_usage_event(_record("gemini_flash", 0.001, ago=3 * 86400))
            since = datetime.now(timezone.utc) - timedelta(days=1)
            return await sqlite_store.query_history("salon-1", since)

        assert asyncio.run(run()) == []

    def test_inbound_messages(self, sqlite_store):
        base = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

        async def run():
            await sqlite_store.record_inbound_message("conv-1", "cust-1", base - timedelta(hours=5))
            await sqlite_store.record_inbound_message("conv-1", "cust-1", base - timedelta(hours=1))
            await sqlite_store.record_inbound_message("conv-2", "cust-1", base - timedelta(hours=3))
            return (
                await sqlite_store.last_inbound_message_timestamp("conv-1"),
                await sqlite_store.last_inbound_message_timestamp("conv-missing"),
                await sqlite_store.customer_message_history("cust-1", limit=2),
            )

        last, missing, history = asyncio.run(run())
        assert last == base - timedelta(hours=1)
        assert missing is None
        assert history == [base - timedelta(hours=1), base - timedelta(hours=3)]

    def test_sqlite_failure_becomes_store_error(self, sqlite_store):
        import sqlite3
        from claxis.errors import StoreError

        def broken(*args):
            raise sqlite3.OperationalError("database is locked")

        with pytest.raises(StoreError):
            asyncio.run(sqlite_store._run(broken))


# ═══════════════════════════════════════════════════════════════
# 3. MODEL ANALYTICS
# ═══════════════════════════════════════════════════════════════

class TestModelAnalytics:

    def test_performance_report(self):
        from claxis.routing.analytics import analyze_model_performance
        store = FakeUsageStore([
            _record("deepseek_r1", 0.005, response_time_ms=900),
            _record("deepseek_r1", 0.005, response_time_ms=1100),
            _record("gemini_flash", 0.001, response_time_ms=200),
        ])
        report = asyncio.run(analyze_model_performance(store, "salon-1", 30))
        assert report["total_requests"] == 3
        assert report["model_metrics"]["deepseek_r1"]["avg_response_time_ms"] == pytest.approx(1000)
        assert report["response_times"]["p50"] == 900
        assert report["response_times"]["p99"] == 1100
        assert any("Gemini Flash" in o for o in report["optimization_opportunities"])

    def test_performance_without_data(self):
        from claxis.routing.analytics import analyze_model_performance
        report = asyncio.run(analyze_model_performance(FakeUsageStore(), "salon-1", 30))
        assert report["total_requests"] == 0
        assert report["response_times"] == {"p50": 650, "p95": 1200, "p99": 2000}
        assert report["optimization_opportunities"] == [
            "Start using AI automation to reduce costs and improve efficiency"]

    def test_allocation_uses_actual_spend(self):
        from claxis.routing.analytics import optimize_budget_allocation
        store = FakeUsageStore([
            _record("gemini_flash", 3.0),
            _record("deepseek_r1", 1.0),
        ])
        report = asyncio.run(optimize_budget_allocation(store, "salon-1", "cost_efficiency"))
        assert report["current_allocation"] == {"gemini_flash": 0.75, "deepseek_r1": 0.25}
        assert report["recommended_allocation"]["gemini_flash"] == pytest.approx(0.8)
        assert report["projected_savings"] == pytest.approx(1.0)
        assert report["quality_impact"] == "slightly_reduced"

    def test_allocation_without_spend(self):
        from claxis.routing.analytics import DEFAULT_ALLOCATION, optimize_budget_allocation
        report = asyncio.run(optimize_budget_allocation(FakeUsageStore(), "salon-1", "quality"))
        assert report["current_allocation"] == DEFAULT_ALLOCATION
        assert report["projected_savings"] == 0.0
        assert report["quality_impact"] == "improved"
