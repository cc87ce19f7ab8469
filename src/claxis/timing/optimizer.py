"""Response timing optimizer.

Decides whether a reply outside the free-messaging window should be
held back until the customer is likely to write again (so the reply
goes out free) or sent immediately as a paid template.

Evaluation moves strictly forward through three stages:

    EVALUATING_WINDOW        already inside the free window?
    EVALUATING_SAFETY_GATES  anything that forbids a delay?
    EVALUATING_RISK          is the scenario low-risk enough?

and ends in DECIDED with exactly one outcome: immediate or optimized.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from claxis.audit import DecisionAuditLogger, DecisionEvent, DecisionEventType
from claxis.errors import ValidationError
from claxis.models import ConversationContext, Sentiment, ServiceWindowSettings, Urgency
from claxis.signals import is_booking_related
from claxis.timing.window import ServiceWindowStatus, check_service_window
from claxis.usage import UsageStore

logger = logging.getLogger(__name__)

MIN_DELAY_MINUTES = 60
MAX_DELAY_MINUTES = 240
DEFAULT_GAP_HOURS = 4.0
GAP_HISTORY_LIMIT = 10


class TimingStage(str, Enum):
    EVALUATING_WINDOW = "evaluating_window"
    EVALUATING_SAFETY_GATES = "evaluating_safety_gates"
    EVALUATING_RISK = "evaluating_risk"
    DECIDED = "decided"


# Business-readable reasons
REASON_FREE_WINDOW = "Already within free messaging window"
REASON_DISABLED = "Service window optimization is disabled for this salon"
REASON_HIGH_BOOKING = (
    "High booking probability detected - immediate response recommended to capture sale opportunity"
)
REASON_NEGATIVE = "negative sentiment detected - requires immediate human review"
REASON_URGENT = "Urgent customer message - immediate response required"
REASON_BOOKING_RELATED = (
    "Booking-related inquiry detected - immediate response to secure appointment"
)
REASON_MODERATE_RISK = "Moderate risk scenario - immediate response recommended"


@dataclass
class TimingDecision:
    """Outcome of one timing evaluation."""
    should_optimize: bool
    reasoning: str
    decided_in: TimingStage
    delay_minutes: int = 0
    estimated_savings: float = 0.0
    confidence: float = 0.0
    risk_factors: list[str] = field(default_factory=list)
    alternative_actions: list[str] = field(default_factory=list)
    window: ServiceWindowStatus | None = None
    predicted_gap_hours: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_optimize": self.should_optimize,
            "delay_minutes": self.delay_minutes,
            "estimated_savings_euros": round(self.estimated_savings, 4),
            "optimization_confidence": round(self.confidence, 4),
            "reasoning": self.reasoning,
            "risk_factors": self.risk_factors,
            "alternative_actions": self.alternative_actions,
            "decided_in": self.decided_in.value,
            "service_window": self.window.to_dict() if self.window else None,
            "predicted_gap_hours": self.predicted_gap_hours,
        }


def immediate(
    stage: TimingStage,
    reasoning: str,
    risk_factors: list[str],
    alternative_actions: list[str],
    confidence: float = 0.0,
) -> TimingDecision:
    return TimingDecision(
        should_optimize=False,
        reasoning=reasoning,
        decided_in=stage,
        confidence=confidence,
        risk_factors=risk_factors,
        alternative_actions=alternative_actions,
    )


def predict_gap_hours(timestamps: list[datetime]) -> float:
    """Conservative estimate of hours until the customer writes again.

    Averages the gaps between consecutive inbound messages, ignoring
    gaps outside (0, 72) hours, then scales by 0.7 and clamps to
    [1, 12]. Fewer than two messages means 4 hours; two or more with
    no usable gap average to 4 hours before scaling.
    """
    if len(timestamps) < 2:
        return DEFAULT_GAP_HOURS

    ordered = sorted(timestamps, reverse=True)
    gaps = []
    for newer, older in zip(ordered, ordered[1:]):
        gap = (newer - older).total_seconds() / 3600
        if 0 < gap < 72:
            gaps.append(gap)

    average = sum(gaps) / len(gaps) if gaps else DEFAULT_GAP_HOURS
    return max(1.0, min(average * 0.7, 12.0))


def parse_urgency(value: str | Urgency) -> Urgency:
    try:
        return Urgency(value)
    except ValueError:
        allowed = ", ".join(u.value for u in Urgency)
        raise ValidationError(
            f"Invalid customer urgency: {value!r}",
            [f"customer_urgency: must be one of {allowed}"],
        ) from None


class ResponseTimingOptimizer:
    """Decides between an immediate reply and a delayed free reply.

    Usage:
        optimizer = ResponseTimingOptimizer(usage_store=store, audit=audit)
        decision = await optimizer.optimize(
            context, "Thanks, see you then", "low", 0.2, False, settings)
    """

    def __init__(
        self,
        usage_store: UsageStore | None = None,
        audit: DecisionAuditLogger | None = None,
    ):
        self.usage_store = usage_store
        self.audit = audit

    async def predict_next_activity(self, context: ConversationContext) -> float:
        """Predicted hours until the customer's next inbound message."""
        customer_key = context.customer_id or context.customer_phone
        if self.usage_store is None or not customer_key:
            return DEFAULT_GAP_HOURS
        try:
            history = await self.usage_store.customer_message_history(customer_key, GAP_HISTORY_LIMIT)
        except Exception as e:
            logger.warning(f"Message history lookup failed for customer {customer_key}: {e}")
            return DEFAULT_GAP_HOURS
        return predict_gap_hours(history)

    async def optimize(
        self,
        context: ConversationContext,
        message: str,
        customer_urgency: str | Urgency,
        booking_probability: float | None,
        override_safety: bool,
        settings: ServiceWindowSettings,
        execution_id: str = "",
        now: datetime | None = None,
    ) -> TimingDecision:
        """Evaluate one pending reply.

        Args:
            context: Conversation snapshot.
            message: The customer's message being answered.
            customer_urgency: low, medium, high or urgent.
            booking_probability: [0, 1]; defaults to the context's value.
            override_safety: Lets urgent messages through to risk evaluation.
                Never bypasses the high booking probability gate.
            settings: The salon's service window settings.
            execution_id: Correlation id for the audit trail.
            now: Evaluation time, for tests.
        """
        urgency = parse_urgency(customer_urgency)
        if booking_probability is None:
            booking_probability = context.booking_probability
        if (isinstance(booking_probability, bool)
                or not isinstance(booking_probability, (int, float))
                or not 0.0 <= booking_probability <= 1.0):
            raise ValidationError(
                f"Invalid booking probability: {booking_probability}",
                ["booking_probability: must be between 0 and 1"],
            )

        decision = await self._evaluate(
            context, message, urgency, booking_probability, override_safety, settings, now)

        logger.debug(
            f"Timing for conversation {context.id}: "
            f"{'optimize' if decision.should_optimize else 'immediate'} "
            f"({decision.decided_in.value}) {decision.reasoning}"
        )
        self._record(context, decision, settings, execution_id)
        return decision

    async def _evaluate(
        self,
        context: ConversationContext,
        message: str,
        urgency: Urgency,
        p: float,
        override_safety: bool,
        settings: ServiceWindowSettings,
        now: datetime | None,
    ) -> TimingDecision:
        # 1. Window
        stage = TimingStage.EVALUATING_WINDOW
        window = await check_service_window(
            self.usage_store, context.id, settings.free_window_hours, now)
        if window.is_active:
            decision = immediate(
                stage, REASON_FREE_WINDOW, [], ["Send message immediately"], confidence=1.0)
            decision.window = window
            return decision

        # 2. Safety gates, in priority order
        stage = TimingStage.EVALUATING_SAFETY_GATES
        booking_related = is_booking_related(message)
        decision = self._safety_gates(stage, context, urgency, p, override_safety, settings, booking_related)
        if decision is not None:
            decision.window = window
            return decision

        # 3. Risk
        stage = TimingStage.EVALUATING_RISK
        gap = await self.predict_next_activity(context)
        low_risk = (
            p < 0.5
            and urgency in (Urgency.LOW, Urgency.MEDIUM)
            and gap > 2
            and (not booking_related or p < 0.4)
        )
        if low_risk:
            delay = int(round(min(max(gap * 30, MIN_DELAY_MINUTES), MAX_DELAY_MINUTES)))
            decision = TimingDecision(
                should_optimize=True,
                reasoning=f"Safe to delay response by {delay} minutes",
                decided_in=stage,
                delay_minutes=delay,
                estimated_savings=settings.template_cost_euros,
                confidence=max(0.6, 0.9 - p),
                alternative_actions=[
                    f"Schedule response in {delay} minutes",
                    "Use free messaging when customer replies",
                ],
            )
        else:
            decision = immediate(
                stage, REASON_MODERATE_RISK,
                ["Moderate urgency or booking probability"],
                ["Send immediate response", "Monitor customer response time"],
            )
        decision.window = window
        decision.predicted_gap_hours = round(gap, 3)
        return decision

    @staticmethod
    def _safety_gates(
        stage: TimingStage,
        context: ConversationContext,
        urgency: Urgency,
        p: float,
        override_safety: bool,
        settings: ServiceWindowSettings,
        booking_related: bool,
    ) -> TimingDecision | None:
        if not settings.enabled:
            return immediate(
                stage, REASON_DISABLED, ["Service window disabled"],
                ["Send immediate response", "Enable service window optimization in settings"],
            )
        if p > 0.8:
            return immediate(
                stage, REASON_HIGH_BOOKING, ["High booking probability customer"],
                ["Send immediate response", "Use personalized template"],
            )
        if context.customer_sentiment == Sentiment.NEGATIVE:
            return immediate(
                stage, REASON_NEGATIVE, ["Negative customer sentiment"],
                ["Escalate to staff", "Send empathetic immediate response"],
            )
        if urgency == Urgency.URGENT and not override_safety:
            return immediate(
                stage, REASON_URGENT, ["Customer urgency level: urgent"],
                ["Send immediate response", "Use personalized template"],
            )
        if booking_related and p > 0.5:
            return immediate(
                stage, REASON_BOOKING_RELATED, ["Booking-related message content"],
                ["Send immediate response", "Provide availability information"],
            )
        return None

    def _record(
        self,
        context: ConversationContext,
        decision: TimingDecision,
        settings: ServiceWindowSettings,
        execution_id: str,
    ) -> None:
        if self.audit is None:
            return
        self.audit.emit(DecisionEvent(
            event_type=(
                DecisionEventType.RESPONSE_OPTIMIZED if decision.should_optimize
                else DecisionEventType.RESPONSE_IMMEDIATE
            ),
            salon_id=context.salon_id,
            conversation_id=context.id,
            execution_id=execution_id,
            data={
                "should_optimize": decision.should_optimize,
                "delay_minutes": decision.delay_minutes,
                "confidence": decision.confidence,
                "reasoning": decision.reasoning,
                "estimated_savings_euros": decision.estimated_savings,
                "decided_in": decision.decided_in.value,
                "in_free_window": bool(decision.window and decision.window.is_active),
                "template_cost_euros": settings.template_cost_euros,
            },
        ))
