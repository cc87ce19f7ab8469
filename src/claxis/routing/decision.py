"""Routing decision records."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

NO_MODEL = "none"


class RoutingOutcome(str, Enum):
    MODEL_SELECTED = "model_selected"
    BUDGET_EXCEEDED = "budget_exceeded"
    NO_MODEL_AVAILABLE = "no_model_available"


class StrategyName(str, Enum):
    DIRECT_MAPPING = "direct_mapping"
    WEIGHTED_SCORE = "weighted_score"


@dataclass
class ModelCandidate:
    """One enabled model scored on the four axes."""
    model_id: str
    quality_score: float
    speed_score: float
    cost_score: float
    historical_score: float
    total_score: float = 0.0
    estimated_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model_id,
            "quality_score": round(self.quality_score, 4),
            "speed_score": self.speed_score,
            "cost_score": self.cost_score,
            "historical_score": round(self.historical_score, 4),
            "total_score": round(self.total_score, 4),
            "estimated_cost": round(self.estimated_cost, 6),
        }


@dataclass
class RoutingDecision:
    """The result of routing one request."""
    outcome: RoutingOutcome
    selected_model: str
    confidence: float
    reasoning: str
    estimated_cost: float
    strategy: StrategyName
    optimization_mode: str
    capabilities: dict[str, Any] = field(default_factory=dict)
    alternatives: list[dict[str, Any]] = field(default_factory=list)
    ensemble_available: bool = False
    budget_status: dict[str, Any] = field(default_factory=dict)
    conversation_analysis: dict[str, Any] = field(default_factory=dict)
    performance_metrics: dict[str, Any] = field(default_factory=dict)
    cost_optimization: dict[str, Any] = field(default_factory=dict)
    candidates: list[ModelCandidate] = field(default_factory=list)

    @property
    def is_selected(self) -> bool:
        return self.outcome == RoutingOutcome.MODEL_SELECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "routing_decision": self.outcome.value,
            "selected_model": self.selected_model,
            "reasoning": self.reasoning,
            "confidence_score": round(self.confidence, 4),
            "estimated_cost_euros": round(self.estimated_cost, 6),
            "strategy": self.strategy.value,
            "optimization_mode": self.optimization_mode,
            "model_capabilities": self.capabilities,
            "performance_metrics": self.performance_metrics,
            "cost_optimization": self.cost_optimization,
            "alternatives": self.alternatives,
            "ensemble_available": self.ensemble_available,
            "budget_status": self.budget_status,
            "conversation_analysis": self.conversation_analysis,
            "candidates": [c.to_dict() for c in self.candidates],
        }
