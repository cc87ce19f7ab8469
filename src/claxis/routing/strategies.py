"""Routing strategies.

A request is routed either by a fixed business rule (DirectMapStrategy)
or by weighted multi-criteria scoring (WeightedScoreStrategy). Which one
applies is a pure lookup on the request type and the salon's enabled
models, see select_strategy(). Strategies do no I/O: budget state and
history are loaded by the router and handed in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from claxis.errors import DisabledFeatureError
from claxis.models import BudgetConstraints, ConversationContext, SalonSettings
from claxis.routing.budget import BudgetState, budget_status, suggest_alternative
from claxis.routing.catalog import (
    BUSINESS_REASONING,
    DEEPSEEK_R1,
    DIRECT_REQUEST_MAPPING,
    ELEVENLABS,
    MODEL_CATALOG,
    ModelSpec,
    enabled_models,
    is_model_enabled,
    weights_for,
)
from claxis.routing.decision import (
    NO_MODEL,
    ModelCandidate,
    RoutingDecision,
    RoutingOutcome,
    StrategyName,
)
from claxis.routing.history import ModelHistory
from claxis.signals import ConversationSignals, SignalExtractor


@dataclass
class RoutingRequest:
    """Everything a strategy needs to pick a model."""
    message: str
    request_type: str
    priority: str
    context: ConversationContext
    budget: BudgetConstraints
    optimization_mode: str
    settings: SalonSettings


class RoutingStrategy(ABC):
    """Common interface of the routing strategies."""

    name: StrategyName

    @abstractmethod
    def select(
        self,
        request: RoutingRequest,
        state: BudgetState,
        history: dict[str, ModelHistory],
    ) -> RoutingDecision:
        ...


def budget_rejection(
    request: RoutingRequest,
    state: BudgetState,
    rejected_model: str,
    estimated_cost: float,
    reason: str,
    strategy: StrategyName,
) -> RoutingDecision:
    """A budget_exceeded decision for a model that would cost too much."""
    return RoutingDecision(
        outcome=RoutingOutcome.BUDGET_EXCEEDED,
        selected_model=NO_MODEL,
        confidence=1.0,
        reasoning=reason,
        estimated_cost=estimated_cost,
        strategy=strategy,
        optimization_mode=request.optimization_mode,
        alternatives=suggest_alternative(rejected_model, estimated_cost),
        budget_status=budget_status(state, request.budget, estimated_cost),
        conversation_analysis={"routing_method": "budget_rejection", "rejected_model": rejected_model},
        cost_optimization={"is_cost_optimal": False, "reasoning": "Budget limit exceeded"},
    )


class DirectMapStrategy(RoutingStrategy):
    """Fixed business-rule assignment. Always maximal confidence."""

    name = StrategyName.DIRECT_MAPPING

    def __init__(self, model_id: str):
        self.spec: ModelSpec = MODEL_CATALOG[model_id]

    def select(
        self,
        request: RoutingRequest,
        state: BudgetState,
        history: dict[str, ModelHistory],
    ) -> RoutingDecision:
        cost = self.spec.base_cost
        budget = request.budget
        if budget.enforce_limit and cost >= budget.max_cost_euros:
            return budget_rejection(
                request, state, self.spec.model_id, cost,
                f"Request cost (€{cost:.3f}) exceeds budget limit (€{budget.max_cost_euros})",
                self.name,
            )

        return RoutingDecision(
            outcome=RoutingOutcome.MODEL_SELECTED,
            selected_model=self.spec.model_id,
            confidence=1.0,
            reasoning=BUSINESS_REASONING[request.request_type],
            estimated_cost=cost,
            strategy=self.name,
            optimization_mode=request.optimization_mode,
            capabilities=self.spec.capabilities(),
            performance_metrics={
                "expected_response_time_ms": self.spec.expected_response_time_ms,
                "quality_score": self.spec.expected_quality,
            },
            cost_optimization={
                "is_cost_optimal": True,
                "reasoning": "Direct business rule mapping",
            },
            budget_status=budget_status(state, budget, cost),
            conversation_analysis={"routing_method": "direct_mapping"},
        )


class WeightedScoreStrategy(RoutingStrategy):
    """Scores every enabled model on quality, speed, cost and history."""

    name = StrategyName.WEIGHTED_SCORE

    def __init__(self, extractor: SignalExtractor | None = None):
        self.extractor = extractor or SignalExtractor()

    def score_candidates(
        self,
        request: RoutingRequest,
        signals: ConversationSignals,
        history: dict[str, ModelHistory],
    ) -> list[ModelCandidate]:
        """Score enabled models in catalog order."""
        weights = weights_for(request.optimization_mode)
        multiplier = 1 + signals.overall_complexity * 0.5
        candidates = []

        for spec in enabled_models(request.settings.ai_settings):
            quality = spec.quality
            if signals.requires_reasoning and spec.model_id == DEEPSEEK_R1:
                quality += 0.1
            if request.request_type == "voice_response" and spec.model_id == ELEVENLABS:
                quality += 0.1
            quality = min(1.0, quality)

            past = history.get(spec.model_id)
            historical = past.success_rate if past else spec.prior_success_rate

            candidate = ModelCandidate(
                model_id=spec.model_id,
                quality_score=quality,
                speed_score=spec.speed,
                cost_score=spec.cost_score,
                historical_score=historical,
                estimated_cost=spec.scoring_cost * multiplier,
            )
            candidate.total_score = (
                candidate.quality_score * weights["quality"]
                + candidate.speed_score * weights["speed"]
                + candidate.cost_score * weights["cost"]
                + candidate.historical_score * weights["historical"]
            )
            candidates.append(candidate)

        return candidates

    @staticmethod
    def pick_best(candidates: list[ModelCandidate]) -> ModelCandidate:
        # First strictly greater score wins, so ties keep catalog order.
        best = candidates[0]
        for candidate in candidates[1:]:
            if candidate.total_score > best.total_score:
                best = candidate
        return best

    @staticmethod
    def explain(
        best: ModelCandidate,
        signals: ConversationSignals,
        mode: str,
    ) -> str:
        factors = []
        if best.quality_score > 0.8:
            factors.append("high quality match")
        if best.speed_score > 0.8:
            factors.append("fast response time")
        if best.cost_score > 0.8:
            factors.append("cost-effective")
        if signals.requires_reasoning and best.model_id == DEEPSEEK_R1:
            factors.append("complex reasoning required")
        return (
            f"{best.model_id} selected (score: {best.total_score:.2f}) "
            f"for {mode} optimization: {', '.join(factors)}"
        )

    @staticmethod
    def cost_tips(candidates: list[ModelCandidate]) -> list[str]:
        cheapest = min(candidates, key=lambda c: c.estimated_cost)
        return [
            f"Consider {cheapest.model_id} for maximum cost efficiency",
            "Enable budget optimization mode for 15-25% cost reduction",
        ]

    def select(
        self,
        request: RoutingRequest,
        state: BudgetState,
        history: dict[str, ModelHistory],
    ) -> RoutingDecision:
        signals = self.extractor.extract(request.message, request.context.message_count)
        candidates = self.score_candidates(request, signals, history)
        if not candidates:
            raise DisabledFeatureError(
                "No AI models are enabled for this salon",
                {"salon_id": request.settings.salon_id},
            )

        best = self.pick_best(candidates)
        ranked = sorted(
            (c for c in candidates if c is not best),
            key=lambda c: c.total_score,
            reverse=True,
        )
        top_two = sorted((c.total_score for c in candidates), reverse=True)[:2]
        spec = MODEL_CATALOG[best.model_id]
        past = history.get(best.model_id)
        cheapest_cost = min(c.estimated_cost for c in candidates)
        budget = request.budget

        analysis = signals.to_dict()
        analysis["routing_method"] = "weighted_score"
        analysis["priority"] = request.priority

        return RoutingDecision(
            outcome=RoutingOutcome.MODEL_SELECTED,
            selected_model=best.model_id,
            confidence=max(0.0, min(1.0, best.total_score)),
            reasoning=self.explain(best, signals, request.optimization_mode),
            estimated_cost=best.estimated_cost,
            strategy=self.name,
            optimization_mode=request.optimization_mode,
            capabilities=spec.capabilities(),
            alternatives=[
                {
                    "model": c.model_id,
                    "score": round(c.total_score, 4),
                    "cost": round(c.estimated_cost, 6),
                    "reasoning": f"Alternative option with {c.total_score:.2f} score",
                }
                for c in ranked[:2]
            ],
            ensemble_available=len(top_two) == 2 and (top_two[0] - top_two[1]) < 0.1,
            budget_status=budget_status(state, budget, best.estimated_cost),
            conversation_analysis=analysis,
            performance_metrics={
                "response_time_ms": past.avg_response_time_ms if past else spec.prior_response_time_ms,
                "accuracy": past.success_rate if past else spec.prior_success_rate,
                "cost_efficiency": spec.cost_efficiency,
                "customer_satisfaction": (
                    past.customer_satisfaction if past else spec.prior_satisfaction
                ),
            },
            cost_optimization={
                "efficiency_score": best.cost_score,
                "savings_potential": max(0.0, best.estimated_cost - cheapest_cost),
                "budget_impact": (
                    best.estimated_cost / budget.max_cost_euros if budget.max_cost_euros > 0 else None
                ),
                "optimization_recommendations": self.cost_tips(candidates),
            },
            candidates=candidates,
        )


def select_strategy(request_type: str, settings: SalonSettings) -> RoutingStrategy:
    """DirectMap when the type has a rule and its model is enabled, else WeightedScore."""
    mapped = DIRECT_REQUEST_MAPPING.get(request_type)
    if mapped is not None and is_model_enabled(mapped, settings.ai_settings):
        return DirectMapStrategy(mapped)
    return WeightedScoreStrategy()
