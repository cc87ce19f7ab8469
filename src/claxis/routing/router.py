"""Model router.

Selects the AI provider for each customer message based on:
- Fixed business rules for known request types
- Weighted quality/speed/cost/history scoring otherwise
- The salon's enabled providers
- A hard per-request ceiling plus daily and monthly budgets

Every selected request is recorded as a usage event, which feeds the
historical score of future routing decisions.
"""

import asyncio
import logging
import re

from claxis.audit import DecisionAuditLogger, DecisionEvent, DecisionEventType
from claxis.errors import DisabledFeatureError, MisuseError
from claxis.models import BudgetConstraints, ConversationContext, SalonSettings
from claxis.routing.budget import BudgetState, budget_status, check_budget, load_budget_state
from claxis.routing.decision import NO_MODEL, RoutingDecision, RoutingOutcome, StrategyName
from claxis.routing.history import load_historical_performance, prior_history
from claxis.routing.strategies import (
    RoutingRequest,
    WeightedScoreStrategy,
    budget_rejection,
    select_strategy,
)
from claxis.usage import UsageRecord, UsageStore

logger = logging.getLogger(__name__)

REQUEST_TYPE_PATTERN = re.compile(r'^[a-z][a-z0-9_]*$')

OUTCOME_EVENTS = {
    RoutingOutcome.MODEL_SELECTED: DecisionEventType.MODEL_SELECTED,
    RoutingOutcome.BUDGET_EXCEEDED: DecisionEventType.BUDGET_EXCEEDED,
    RoutingOutcome.NO_MODEL_AVAILABLE: DecisionEventType.NO_MODEL_AVAILABLE,
}


class ModelRouter:
    """Routes customer messages to AI providers.

    Usage:
        router = ModelRouter(usage_store=store, audit=audit)
        decision = await router.route(
            "My booking app shows an error", "technical_support", "normal",
            context, BudgetConstraints(), "balanced", salon_settings,
        )
        # decision.selected_model = "gemini_flash"
    """

    def __init__(
        self,
        usage_store: UsageStore | None = None,
        audit: DecisionAuditLogger | None = None,
        history_days: int = 30,
    ):
        self.usage_store = usage_store
        self.audit = audit
        self.history_days = history_days

    async def route(
        self,
        message: str,
        request_type: str,
        priority: str,
        context: ConversationContext,
        budget: BudgetConstraints,
        optimization_mode: str,
        settings: SalonSettings,
        execution_id: str = "",
    ) -> RoutingDecision:
        """Route one request to a model.

        Args:
            message: Customer message text.
            request_type: snake_case request type, e.g. "booking_request".
            priority: Caller-assigned priority, carried into the analysis.
            context: Conversation snapshot.
            budget: Per-request ceiling and running budgets.
            optimization_mode: Weighting preset for scored routing.
            settings: The salon's settings.
            execution_id: Correlation id for the audit trail.

        Returns:
            Exactly one RoutingDecision.

        Raises:
            MisuseError: request_type is not a snake_case identifier.
        """
        if not REQUEST_TYPE_PATTERN.match(request_type or ""):
            raise MisuseError(
                f"Unsupported request type: {request_type!r}",
                {"request_type": request_type},
            )

        request = RoutingRequest(
            message=message,
            request_type=request_type,
            priority=priority,
            context=context,
            budget=budget,
            optimization_mode=optimization_mode,
            settings=settings,
        )
        strategy = select_strategy(request_type, settings)

        if isinstance(strategy, WeightedScoreStrategy):
            state, history = await asyncio.gather(
                load_budget_state(self.usage_store, settings.salon_id),
                load_historical_performance(self.usage_store, settings.salon_id, self.history_days),
            )
        else:
            state = await load_budget_state(self.usage_store, settings.salon_id)
            history = prior_history()

        try:
            decision = strategy.select(request, state, history)
        except DisabledFeatureError as e:
            logger.info(f"Salon {settings.salon_id}: {e.message}")
            decision = self._no_model(request, state, e.message)

        if decision.is_selected:
            reason = check_budget(decision.estimated_cost, budget, state)
            if reason:
                decision = budget_rejection(
                    request, state, decision.selected_model,
                    decision.estimated_cost, reason, decision.strategy,
                )

        logger.debug(
            f"Routed {request_type} for conversation {context.id}: "
            f"{decision.outcome.value} -> {decision.selected_model} "
            f"({decision.strategy.value}, €{decision.estimated_cost:.4f})"
        )
        self._record(request, decision, execution_id)
        return decision

    @staticmethod
    def _no_model(request: RoutingRequest, state: BudgetState, reason: str) -> RoutingDecision:
        return RoutingDecision(
            outcome=RoutingOutcome.NO_MODEL_AVAILABLE,
            selected_model=NO_MODEL,
            confidence=1.0,
            reasoning=reason,
            estimated_cost=0.0,
            strategy=StrategyName.WEIGHTED_SCORE,
            optimization_mode=request.optimization_mode,
            budget_status=budget_status(state, request.budget),
            conversation_analysis={"routing_method": "no_model_available"},
        )

    def _record(self, request: RoutingRequest, decision: RoutingDecision, execution_id: str) -> None:
        if self.audit is None:
            return

        self.audit.emit(DecisionEvent(
            event_type=OUTCOME_EVENTS[decision.outcome],
            salon_id=request.settings.salon_id,
            conversation_id=request.context.id,
            execution_id=execution_id,
            data={
                "selected_model": decision.selected_model,
                "estimated_cost_euros": decision.estimated_cost,
                "confidence": decision.confidence,
                "reasoning": decision.reasoning,
                "strategy": decision.strategy.value,
                "request_type": request.request_type,
                "optimization_mode": request.optimization_mode,
            },
        ))

        if decision.is_selected:
            self.audit.record_usage(UsageRecord(
                salon_id=request.settings.salon_id,
                model=decision.selected_model,
                cost_euros=decision.estimated_cost,
                confidence=decision.confidence,
                response_time_ms=decision.performance_metrics.get(
                    "expected_response_time_ms",
                    decision.performance_metrics.get("response_time_ms"),
                ),
                conversation_id=request.context.id,
                request_type=request.request_type,
                optimization_mode=request.optimization_mode,
                reasoning=decision.reasoning,
            ))
