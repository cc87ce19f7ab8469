"""Tests for the model router: direct mapping, weighted scoring, budgets, feedback."""

import asyncio
import time

import pytest

from conftest import FailingSink, FakeUsageStore, RecordingSink


def _route(router, message, request_type, context, settings, budget=None, mode="balanced"):
    from claxis.models import BudgetConstraints
    return asyncio.run(router.route(
        message, request_type, "normal", context,
        budget or BudgetConstraints(), mode, settings,
    ))


# ═══════════════════════════════════════════════════════════════
# 1. DIRECT MAPPING
# ═══════════════════════════════════════════════════════════════

class TestDirectMapping:

    def test_complex_problem_goes_to_deepseek(self, salon, context):
        from claxis.routing import ModelRouter
        decision = _route(ModelRouter(), "My color went wrong", "complex_problem_solving", context, salon)
        assert decision.selected_model == "deepseek_r1"
        assert decision.confidence == 1.0
        assert decision.strategy.value == "direct_mapping"
        assert decision.estimated_cost == pytest.approx(0.005)
        assert "DeepSeek R1" in decision.reasoning

    def test_voice_response_goes_to_elevenlabs(self, salon, context):
        from claxis.routing import ModelRouter
        decision = _route(ModelRouter(), "Read me my booking", "voice_response", context, salon)
        assert decision.selected_model == "elevenlabs"
        assert decision.estimated_cost == pytest.approx(0.003)

    def test_disabled_mapping_falls_back_to_scoring(self, gemini_only, context):
        from claxis.routing import ModelRouter
        decision = _route(ModelRouter(), "My color went wrong", "complex_problem_solving",
                          context, gemini_only)
        assert decision.strategy.value == "weighted_score"
        assert decision.selected_model == "gemini_flash"

    def test_select_strategy_is_pure_lookup(self, salon, gemini_only):
        from claxis.routing.strategies import DirectMapStrategy, WeightedScoreStrategy, select_strategy
        assert isinstance(select_strategy("booking_request", salon), DirectMapStrategy)
        assert isinstance(select_strategy("product_question", salon), WeightedScoreStrategy)
        assert isinstance(select_strategy("voice_response", gemini_only), WeightedScoreStrategy)


# ═══════════════════════════════════════════════════════════════
# 2. WEIGHTED SCORING
# ═══════════════════════════════════════════════════════════════

class TestWeightedScoring:

    def test_single_enabled_model(self, gemini_only, context):
        from claxis.routing import ModelRouter
        decision = _route(ModelRouter(), "Do you sell shampoo?", "product_question", context, gemini_only)
        assert decision.selected_model == "gemini_flash"
        # 0.8*0.3 + 0.95*0.3 + 0.95*0.2 + 0.94*0.2
        assert decision.confidence == pytest.approx(0.903)
        assert decision.alternatives == []
        assert decision.ensemble_available is False

    def test_balanced_prefers_gemini_with_close_runner_up(self, salon, context):
        from claxis.routing import ModelRouter
        decision = _route(ModelRouter(), "Do you sell shampoo?", "product_question", context, salon)
        assert decision.selected_model == "gemini_flash"
        assert [a["model"] for a in decision.alternatives] == ["deepseek_r1", "elevenlabs"]
        # 0.903 vs 0.817
        assert decision.ensemble_available is True
        assert len(decision.candidates) == 3

    def test_reasoning_boost_in_quality_mode(self, salon, context):
        from claxis.routing import ModelRouter
        message = "The system error on the website and the app bug"
        decision = _route(ModelRouter(), message, "technical_support", context, salon, mode="quality")
        assert decision.selected_model == "deepseek_r1"
        assert "complex reasoning required" in decision.reasoning

    def test_complexity_scales_estimated_cost(self, gemini_only, context):
        from claxis.routing import ModelRouter
        decision = _route(ModelRouter(), "The system error on the website", "technical_support",
                          context, gemini_only)
        assert decision.estimated_cost > 0.001

    def test_unknown_mode_uses_balanced_weights(self):
        from claxis.routing.catalog import MODE_WEIGHTS, weights_for
        assert weights_for("turbo") == MODE_WEIGHTS["balanced"]

    def test_ties_keep_catalog_order(self):
        from claxis.routing.decision import ModelCandidate
        from claxis.routing.strategies import WeightedScoreStrategy
        a = ModelCandidate("gemini_flash", 0, 0, 0, 0, total_score=0.5)
        b = ModelCandidate("deepseek_r1", 0, 0, 0, 0, total_score=0.5)
        assert WeightedScoreStrategy.pick_best([a, b]) is a

    def test_every_mode_weights_sum_to_one(self):
        from claxis.routing.catalog import MODE_WEIGHTS
        for weights in MODE_WEIGHTS.values():
            assert sum(weights.values()) == pytest.approx(1.0)


# ═══════════════════════════════════════════════════════════════
# 3. NO MODEL / MISUSE
# ═══════════════════════════════════════════════════════════════

class TestUnavailable:

    def test_no_enabled_models(self, context):
        from claxis.models import AISettings, SalonSettings
        from claxis.routing import ModelRouter
        settings = SalonSettings(salon_id="salon-1", ai_settings=AISettings(gemini_enabled=False))
        decision = _route(ModelRouter(), "hello", "general_inquiry", context, settings)
        assert decision.outcome.value == "no_model_available"
        assert decision.selected_model == "none"
        assert decision.estimated_cost == 0.0

    def test_unknown_model_is_disabled(self, salon):
        from claxis.routing.catalog import is_model_enabled
        assert is_model_enabled("gpt_foo", salon.ai_settings) is False
        assert is_model_enabled("deepseek_r1", salon.ai_settings) is True

    def test_bad_request_type(self, salon, context):
        from claxis.errors import MisuseError
        from claxis.routing import ModelRouter
        with pytest.raises(MisuseError):
            _route(ModelRouter(), "hello", "Bad-Type", context, salon)


# ═══════════════════════════════════════════════════════════════
# 4. BUDGET
# ═══════════════════════════════════════════════════════════════

class TestBudget:

    def test_ceiling_rejects_repeated_text(self, gemini_only, context):
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter
        budget = BudgetConstraints(max_cost_euros=0.001, enforce_limit=True)
        decision = _route(ModelRouter(), "my appointment " * 200, "general_inquiry",
                          context, gemini_only, budget)
        assert decision.outcome.value == "budget_exceeded"
        assert decision.selected_model == "none"
        assert "exceeds budget limit" in decision.reasoning
        assert decision.alternatives[0]["model"] == "gemini_flash"

    def test_ceiling_not_enforced(self, gemini_only, context):
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter
        budget = BudgetConstraints(max_cost_euros=0.001, enforce_limit=False)
        decision = _route(ModelRouter(), "my appointment " * 200, "general_inquiry",
                          context, gemini_only, budget)
        assert decision.outcome.value == "model_selected"

    def test_weighted_selection_rechecked_against_ceiling(self, gemini_only, context):
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter
        budget = BudgetConstraints(max_cost_euros=0.001, enforce_limit=True)
        decision = _route(ModelRouter(), "Do you sell shampoo?", "product_question",
                          context, gemini_only, budget)
        assert decision.outcome.value == "budget_exceeded"
        assert decision.strategy.value == "weighted_score"

    def test_daily_budget_breach(self, gemini_only, context):
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter
        from claxis.usage import UsageRecord
        store = FakeUsageStore([
            UsageRecord(salon_id="salon-1", model="gemini_flash", cost_euros=49.9995,
                        confidence=0.9, timestamp=time.time() - 1),
        ])
        budget = BudgetConstraints(enforce_limit=True, daily_budget_euros=50.0)
        decision = _route(ModelRouter(usage_store=store), "hello", "general_inquiry",
                          context, gemini_only, budget)
        assert decision.outcome.value == "budget_exceeded"
        assert "daily budget" in decision.reasoning

    def test_check_budget_reasons(self):
        from claxis.models import BudgetConstraints
        from claxis.routing.budget import BudgetState, check_budget
        enforced = BudgetConstraints(max_cost_euros=0.01, enforce_limit=True, monthly_budget_euros=10)
        assert check_budget(0.005, enforced, BudgetState()) is None
        assert check_budget(0.01, enforced, BudgetState()) is not None
        assert "monthly" in check_budget(0.005, enforced, BudgetState(monthly_spent=10.0))
        assert check_budget(5.0, BudgetConstraints(), BudgetState(daily_spent=1000)) is None

    def test_budget_status_shape(self):
        from claxis.models import BudgetConstraints
        from claxis.routing.budget import BudgetState, budget_status
        status = budget_status(BudgetState(daily_spent=5, monthly_spent=100), BudgetConstraints(), 0.002)
        assert status["daily_utilization"] == pytest.approx(0.1)
        assert status["monthly_utilization_percentage"] == pytest.approx(20.0)
        assert status["remaining_monthly_budget"] == pytest.approx(400.0)
        assert status["projected_monthly_spend"] == pytest.approx(110.0)

    def test_zero_budgets_never_reach_status(self):
        import pydantic
        from claxis.models import BudgetConstraints
        with pytest.raises(pydantic.ValidationError):
            BudgetConstraints(daily_budget_euros=0)
        with pytest.raises(pydantic.ValidationError):
            BudgetConstraints(monthly_budget_euros=0)


# ═══════════════════════════════════════════════════════════════
# 5. HISTORY FEEDBACK & AUDIT
# ═══════════════════════════════════════════════════════════════

class TestFeedback:

    def test_history_replaces_priors(self, gemini_only, context):
        from claxis.routing import ModelRouter
        from claxis.usage import UsageRecord
        store = FakeUsageStore([
            UsageRecord(salon_id="salon-1", model="gemini_flash", cost_euros=0.001,
                        confidence=0.5, timestamp=time.time() - 60, response_time_ms=300),
        ])
        decision = _route(ModelRouter(usage_store=store), "Do you sell shampoo?", "product_question",
                          context, gemini_only)
        assert decision.candidates[0].historical_score == pytest.approx(0.5)
        assert decision.performance_metrics["response_time_ms"] == pytest.approx(300)

    def test_store_failure_uses_priors(self, gemini_only, context):
        from claxis.routing import ModelRouter
        decision = _route(ModelRouter(usage_store=FakeUsageStore(fail=True)), "Do you sell shampoo?",
                          "product_question", context, gemini_only)
        assert decision.selected_model == "gemini_flash"
        assert decision.candidates[0].historical_score == pytest.approx(0.94)

    def test_foreign_store_error_routes_with_zero_spend(self, gemini_only, context):
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter
        store = FakeUsageStore(fail=ConnectionError("db down"))
        decision = _route(ModelRouter(usage_store=store), "Do you sell shampoo?", "product_question", context, gemini_only,
                          budget=BudgetConstraints(enforce_limit=True, daily_budget_euros=0.01))
        assert decision.selected_model == "gemini_flash"
        assert decision.candidates[0].historical_score == pytest.approx(0.94)

    def test_selected_route_records_usage_and_event(self, gemini_only, context):
        from claxis.audit import DecisionAuditLogger
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter

        store = FakeUsageStore()
        sink = RecordingSink()
        audit = DecisionAuditLogger(sinks=[sink], usage_store=store)
        router = ModelRouter(usage_store=store, audit=audit)

        async def run():
            decision = await router.route(
                "Can I book a cut?", "booking_request", "normal", context,
                BudgetConstraints(), "balanced", gemini_only, execution_id="exec-1")
            await audit.drain()
            return decision

        decision = asyncio.run(run())
        assert decision.selected_model == "gemini_flash"
        assert [r.model for r in store.records] == ["gemini_flash"]
        assert store.records[0].conversation_id == "conv-1"
        assert sink.events[0].event_type.value == "routing:model_selected"
        assert sink.events[0].execution_id == "exec-1"

    def test_rejected_route_records_no_usage(self, gemini_only, context):
        from claxis.audit import DecisionAuditLogger
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter

        store = FakeUsageStore()
        sink = RecordingSink()
        audit = DecisionAuditLogger(sinks=[sink], usage_store=store)
        router = ModelRouter(usage_store=store, audit=audit)
        budget = BudgetConstraints(max_cost_euros=0.0005, enforce_limit=True)

        async def run():
            await router.route("hi", "general_inquiry", "normal", context, budget, "balanced", gemini_only)
            await audit.drain()

        asyncio.run(run())
        assert store.records == []
        assert sink.events[0].event_type.value == "routing:budget_exceeded"

    def test_failed_sink_does_not_affect_decision(self, gemini_only, context):
        from claxis.audit import DecisionAuditLogger
        from claxis.models import BudgetConstraints
        from claxis.routing import ModelRouter

        audit = DecisionAuditLogger(sinks=[FailingSink()], usage_store=FakeUsageStore(fail=True))
        router = ModelRouter(audit=audit)

        async def run():
            decision = await router.route(
                "hello", "general_inquiry", "normal", context,
                BudgetConstraints(), "balanced", gemini_only)
            await audit.drain()
            return decision

        decision = asyncio.run(run())
        assert decision.selected_model == "gemini_flash"
        assert audit.pending == 0
