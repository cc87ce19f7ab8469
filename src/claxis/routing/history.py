"""Historical per-model performance, the router's feedback loop."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from claxis.routing.catalog import MODEL_CATALOG
from claxis.usage import UsageStore, aggregate_by_model

logger = logging.getLogger(__name__)


@dataclass
class ModelHistory:
    """Observed (or assumed) performance of one model."""
    model_id: str
    success_rate: float
    avg_cost: float
    avg_response_time_ms: float
    customer_satisfaction: float
    requests: int = 0

    @property
    def from_priors(self) -> bool:
        return self.requests == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success_rate": round(self.success_rate, 4),
            "avg_cost": round(self.avg_cost, 6),
            "avg_response_time_ms": round(self.avg_response_time_ms, 1),
            "customer_satisfaction": round(self.customer_satisfaction, 4),
            "requests": self.requests,
            "from_priors": self.from_priors,
        }


def prior_history() -> dict[str, ModelHistory]:
    """Catalog priors for a salon with no usage yet."""
    return {
        spec.model_id: ModelHistory(
            model_id=spec.model_id,
            success_rate=spec.prior_success_rate,
            avg_cost=spec.scoring_cost,
            avg_response_time_ms=spec.prior_response_time_ms,
            customer_satisfaction=spec.prior_satisfaction,
        )
        for spec in MODEL_CATALOG.values()
    }


async def load_historical_performance(
    store: UsageStore | None,
    salon_id: str,
    days: int = 30,
    now: datetime | None = None,
) -> dict[str, ModelHistory]:
    """Per-model performance over a trailing window.

    Success rate is the mean recorded confidence. Models without
    records in the window keep their catalog priors.
    """
    history = prior_history()
    if store is None:
        return history

    now = now or datetime.now(timezone.utc)
    try:
        records = await store.query_history(salon_id, since=now - timedelta(days=days), until=now)
    except Exception as e:
        logger.warning(f"History lookup failed for salon {salon_id}, using priors: {e}")
        return history

    for model_id, usage in aggregate_by_model(records).items():
        prior = history.get(model_id)
        if prior is None:
            continue  # model no longer in the catalog
        avg_time = usage.avg_response_time_ms
        history[model_id] = ModelHistory(
            model_id=model_id,
            success_rate=usage.avg_confidence,
            avg_cost=usage.avg_cost_euros,
            avg_response_time_ms=avg_time if avg_time is not None else prior.avg_response_time_ms,
            customer_satisfaction=usage.avg_confidence,
            requests=usage.requests,
        )
    return history
