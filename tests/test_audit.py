"""Tests for the decision audit trail, analytics sinks and output channels."""

import asyncio
import json
import time

import pytest

from conftest import FakeUsageStore, RecordingSink


def _event(event_type=None, salon_id="salon-1", **data):
    from claxis.audit import DecisionEvent, DecisionEventType
    return DecisionEvent(
        event_type=event_type or DecisionEventType.MODEL_SELECTED,
        salon_id=salon_id,
        conversation_id="conv-1",
        data=data,
    )


# ═══════════════════════════════════════════════════════════════
# 1. SQLITE SINK
# ═══════════════════════════════════════════════════════════════

class TestSQLiteSink:

    def test_record_and_query(self, tmp_path):
        from claxis.audit import DecisionEventType, SQLiteAnalyticsSink
        sink = SQLiteAnalyticsSink(tmp_path / "decisions.db")

        async def run():
            await sink.record(_event(selected_model="gemini_flash"))
            await sink.record(_event(DecisionEventType.RESPONSE_OPTIMIZED, delay_minutes=120))
            await sink.record(_event(salon_id="salon-2"))
            return (
                await sink.query("salon-1"),
                await sink.query("salon-1", [DecisionEventType.RESPONSE_OPTIMIZED]),
            )

        everything, timing = asyncio.run(run())
        assert len(everything) == 2
        assert everything[0]["event_type"] == "timing:optimized"  # newest first
        assert timing[0]["data"] == {"delay_minutes": 120}

    def test_since_filter(self, tmp_path):
        from claxis.audit import SQLiteAnalyticsSink
        sink = SQLiteAnalyticsSink(tmp_path / "decisions.db")
        old = _event()
        old.timestamp = time.time() - 86400

        async def run():
            await sink.record(old)
            await sink.record(_event())
            return await sink.query("salon-1", since=time.time() - 3600)

        assert len(asyncio.run(run())) == 1


# ═══════════════════════════════════════════════════════════════
# 2. WEBHOOK SINK
# ═══════════════════════════════════════════════════════════════

class TestWebhookSink:

    def test_posts_event_json(self):
        import httpx
        from claxis.audit import WebhookAnalyticsSink

        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(204)

        async def run():
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            sink = WebhookAnalyticsSink("https://analytics.example/events", client=client)
            await sink.record(_event(selected_model="deepseek_r1"))
            await sink.close()

        asyncio.run(run())
        assert received[0]["event_type"] == "routing:model_selected"
        assert received[0]["data"]["selected_model"] == "deepseek_r1"

    def test_http_error_raises(self):
        import httpx
        from claxis.audit import WebhookAnalyticsSink

        async def run():
            client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
            sink = WebhookAnalyticsSink("https://analytics.example/events", client=client)
            try:
                await sink.record(_event())
            finally:
                await sink.close()

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(run())


# ═══════════════════════════════════════════════════════════════
# 3. FIRE-AND-FORGET LOGGER
# ═══════════════════════════════════════════════════════════════

class TestAuditLogger:

    def test_emit_fans_out_and_drains(self):
        from claxis.audit import DecisionAuditLogger
        first, second = RecordingSink(), RecordingSink()
        audit = DecisionAuditLogger(sinks=[first, second])

        async def run():
            audit.emit(_event())
            assert audit.pending == 2
            await audit.drain()

        asyncio.run(run())
        assert len(first.events) == len(second.events) == 1

    def test_record_usage(self):
        from claxis.audit import DecisionAuditLogger
        from claxis.usage import UsageRecord
        store = FakeUsageStore()
        audit = DecisionAuditLogger(usage_store=store)

        async def run():
            audit.record_usage(UsageRecord(salon_id="salon-1", model="gemini_flash",
                                           cost_euros=0.001, confidence=1.0))
            await audit.close()

        asyncio.run(run())
        assert len(store.records) == 1

    def test_no_running_loop_drops_write(self, caplog):
        from claxis.audit import DecisionAuditLogger
        sink = RecordingSink()
        audit = DecisionAuditLogger(sinks=[sink])
        with caplog.at_level("WARNING", logger="claxis.audit"):
            audit.emit(_event())
        assert audit.pending == 0
        assert sink.events == []
        assert "no running event loop" in caplog.text

    def test_failure_is_logged(self, caplog):
        from claxis.audit import DecisionAuditLogger
        from conftest import FailingSink
        audit = DecisionAuditLogger(sinks=[FailingSink()])

        async def run():
            audit.emit(_event())
            await audit.drain()

        with caplog.at_level("WARNING", logger="claxis.audit"):
            asyncio.run(run())
        assert "analytics endpoint down" in caplog.text


# ═══════════════════════════════════════════════════════════════
# 4. CHANNELS
# ═══════════════════════════════════════════════════════════════

class TestChannels:

    def test_routing_channels(self):
        from claxis.channels import OutputChannel, channel_for_routing
        from claxis.routing.decision import RoutingDecision, RoutingOutcome, StrategyName

        def decision(outcome, model):
            return RoutingDecision(outcome, model, 1.0, "", 0.0, StrategyName.DIRECT_MAPPING, "balanced")

        assert channel_for_routing(decision(RoutingOutcome.MODEL_SELECTED, "gemini_flash")) == OutputChannel.FAST
        assert channel_for_routing(decision(RoutingOutcome.MODEL_SELECTED, "elevenlabs")) == OutputChannel.VOICE
        assert channel_for_routing(decision(RoutingOutcome.BUDGET_EXCEEDED, "none")) == OutputChannel.DEFAULT

    def test_unwired_channel_returns_none(self):
        from claxis.channels import ChannelDispatcher, OutputChannel
        dispatcher = ChannelDispatcher()
        assert asyncio.run(dispatcher.dispatch(OutputChannel.VOICE, {})) is None
        assert dispatcher.has_handler(OutputChannel.VOICE) is False
