"""Budget state and budget checks for routed requests.

Spend is read fresh from the usage store for every decision. A store
failure reads as zero spend, so the per-request ceiling still applies
while the daily/monthly checks are skipped for that request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from claxis.models import BudgetConstraints
from claxis.routing.catalog import CHEAPEST_MODEL, MODEL_CATALOG
from claxis.usage import UsageStore

logger = logging.getLogger(__name__)


@dataclass
class BudgetState:
    """Current spend of a salon."""
    daily_spent: float = 0.0
    monthly_spent: float = 0.0
    request_count_today: int = 0
    request_count_month: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "daily_spent": round(self.daily_spent, 6),
            "monthly_spent": round(self.monthly_spent, 6),
            "request_count_today": self.request_count_today,
            "request_count_month": self.request_count_month,
        }


async def load_budget_state(
    store: UsageStore | None,
    salon_id: str,
    now: datetime | None = None,
) -> BudgetState:
    """Sum today's and this month's recorded spend (UTC calendar)."""
    if store is None:
        return BudgetState()

    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    try:
        records = await store.query_history(salon_id, since=month_start, until=now)
    except Exception as e:
        logger.warning(f"Budget lookup failed for salon {salon_id}, assuming no spend: {e}")
        return BudgetState()

    day_floor = day_start.timestamp()
    today = [r for r in records if r.timestamp >= day_floor]
    return BudgetState(
        daily_spent=sum(r.cost_euros for r in today),
        monthly_spent=sum(r.cost_euros for r in records),
        request_count_today=len(today),
        request_count_month=len(records),
    )


def budget_status(
    state: BudgetState,
    constraints: BudgetConstraints,
    estimated_cost: float = 0.0,
) -> dict[str, Any]:
    """Utilization and headroom against the daily and monthly budgets."""
    # BudgetConstraints requires both budgets > 0, so the divisions are safe.
    daily = state.daily_spent / constraints.daily_budget_euros
    monthly = state.monthly_spent / constraints.monthly_budget_euros
    return {
        "daily_utilization": daily,
        "monthly_utilization": monthly,
        "daily_utilization_percentage": round(daily * 100, 2),
        "monthly_utilization_percentage": round(monthly * 100, 2),
        "remaining_daily_budget": constraints.daily_budget_euros - state.daily_spent,
        "remaining_monthly_budget": constraints.monthly_budget_euros - state.monthly_spent,
        "projected_monthly_spend": state.monthly_spent * 1.1,
        "budget_limit_euros": constraints.max_cost_euros,
        "estimated_cost_euros": estimated_cost,
    }


def check_budget(
    estimated_cost: float,
    constraints: BudgetConstraints,
    state: BudgetState,
) -> str | None:
    """Return the rejection reason, or None when the request fits.

    Nothing is ever rejected unless enforce_limit is set.
    """
    if not constraints.enforce_limit:
        return None
    if estimated_cost >= constraints.max_cost_euros:
        return (
            f"Request cost (€{estimated_cost:.3f}) exceeds budget limit "
            f"(€{constraints.max_cost_euros})"
        )
    if state.daily_spent + estimated_cost > constraints.daily_budget_euros:
        return (
            f"Request cost (€{estimated_cost:.3f}) would exceed daily budget "
            f"(€{state.daily_spent:.2f} of €{constraints.daily_budget_euros} spent)"
        )
    if state.monthly_spent + estimated_cost > constraints.monthly_budget_euros:
        return (
            f"Request cost (€{estimated_cost:.3f}) would exceed monthly budget "
            f"(€{state.monthly_spent:.2f} of €{constraints.monthly_budget_euros} spent)"
        )
    return None


def suggest_alternative(rejected_model: str, estimated_cost: float) -> list[dict[str, Any]]:
    """One lower-cost option for a rejected request."""
    cheapest = MODEL_CATALOG[CHEAPEST_MODEL]
    return [{
        "model": cheapest.model_id,
        "estimated_cost": cheapest.base_cost,
        "savings": max(0.0, estimated_cost - cheapest.base_cost),
        "replaces": rejected_model,
        "trade_offs": ["Faster response", "Lower complexity handling"],
    }]
