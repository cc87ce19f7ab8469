"""Response timing: service window cost optimization.

Replies inside the provider's free-messaging window are free; outside
it each reply is a paid template. The optimizer holds back low-risk
replies until the customer is likely to write again, and never delays
anything revenue- or relationship-critical.
"""

from claxis.timing.optimizer import ResponseTimingOptimizer, TimingDecision, TimingStage
from claxis.timing.window import ServiceWindowStatus, analyze_message_cost, check_service_window

__all__ = [
    "ResponseTimingOptimizer",
    "TimingDecision",
    "TimingStage",
    "ServiceWindowStatus",
    "analyze_message_cost",
    "check_service_window",
]
