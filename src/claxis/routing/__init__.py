"""Model routing engine.

Picks which AI provider answers a customer message:
- Business rules for known request types (maximal confidence)
- Weighted quality/speed/cost/history scoring for everything else
- Hard budget ceiling with daily and monthly budgets
- Feedback from recorded usage into future scores

Most salon messages do not need the reasoning model. Routing them to
the cheapest capable provider keeps the per-conversation cost low.
"""

from claxis.routing.catalog import MODEL_CATALOG, ModelSpec
from claxis.routing.decision import ModelCandidate, RoutingDecision, RoutingOutcome
from claxis.routing.router import ModelRouter
from claxis.routing.strategies import DirectMapStrategy, RoutingStrategy, WeightedScoreStrategy

__all__ = [
    "MODEL_CATALOG",
    "ModelSpec",
    "ModelCandidate",
    "RoutingDecision",
    "RoutingOutcome",
    "ModelRouter",
    "RoutingStrategy",
    "DirectMapStrategy",
    "WeightedScoreStrategy",
]
