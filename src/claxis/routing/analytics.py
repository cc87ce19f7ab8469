"""Model performance analytics and budget allocation advice."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from claxis.routing.catalog import DEEPSEEK_R1, ELEVENLABS, GEMINI_FLASH, MODEL_CATALOG
from claxis.usage import UsageStore, aggregate_by_model

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_TIME_MS = 500

# Reported when there are no recorded response times
DEFAULT_PERCENTILES = {"p50": 650, "p95": 1200, "p99": 2000}

# Recommended share of requests per model, and the expected change in
# monthly spend (positive = savings).
ALLOCATION_PRESETS: dict[str, tuple[dict[str, float], float]] = {
    "cost_efficiency": ({GEMINI_FLASH: 0.8, DEEPSEEK_R1: 0.15, ELEVENLABS: 0.05}, 0.25),
    "quality": ({GEMINI_FLASH: 0.4, DEEPSEEK_R1: 0.5, ELEVENLABS: 0.1}, -0.10),
    "speed": ({GEMINI_FLASH: 0.9, DEEPSEEK_R1: 0.05, ELEVENLABS: 0.05}, 0.15),
    "balanced": ({GEMINI_FLASH: 0.65, DEEPSEEK_R1: 0.25, ELEVENLABS: 0.1}, 0.12),
}

# Assumed split for a salon with no spend yet
DEFAULT_ALLOCATION = {GEMINI_FLASH: 0.6, DEEPSEEK_R1: 0.3, ELEVENLABS: 0.1}


def percentile(sorted_values: list[float], q: float, default: float) -> float:
    """Nearest-rank percentile on an ascending list."""
    if not sorted_values:
        return default
    return sorted_values[min(len(sorted_values) - 1, int(len(sorted_values) * q))]


def optimization_opportunities(request_counts: dict[str, int], total_cost: float) -> list[str]:
    total = sum(request_counts.values())
    if total == 0:
        return ["Start using AI automation to reduce costs and improve efficiency"]

    share = {model: count / total for model, count in request_counts.items()}
    opportunities = []
    if share.get(DEEPSEEK_R1, 0) > 0.4:
        opportunities.append(
            "Increase Gemini Flash usage for simple queries (potential 20% cost reduction)")
    if share.get(ELEVENLABS, 0) > 0.2:
        opportunities.append("Optimize voice response usage for cost efficiency")
    if share.get(GEMINI_FLASH, 0) > 0.8:
        opportunities.append("Consider DeepSeek for complex queries to improve quality")
    if total_cost > 10:
        opportunities.append(
            "Enable real-time budget optimization (potential 10% cost reduction)")
    opportunities.append(
        "Implement ensemble routing for complex queries (potential 15% quality improvement)")
    return opportunities


async def analyze_model_performance(
    store: UsageStore,
    salon_id: str,
    days: int = 30,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Per-model metrics and latency percentiles over the last N days."""
    now = now or datetime.now(timezone.utc)
    records = await store.query_history(salon_id, since=now - timedelta(days=days), until=now)
    by_model = aggregate_by_model(records)

    model_metrics = {}
    for model, usage in by_model.items():
        spec = MODEL_CATALOG.get(model)
        avg_time = usage.avg_response_time_ms
        model_metrics[model] = {
            "total_requests": usage.requests,
            "total_cost_euros": round(usage.total_cost_euros, 6),
            "avg_cost_euros": round(usage.avg_cost_euros, 6),
            "avg_response_time_ms": avg_time if avg_time is not None else DEFAULT_RESPONSE_TIME_MS,
            "success_rate": round(usage.avg_confidence, 4),
            "cost_efficiency": spec.cost_efficiency if spec else None,
        }

    times = sorted(
        r.response_time_ms if r.response_time_ms is not None else DEFAULT_RESPONSE_TIME_MS
        for r in records
    )
    total_cost = sum(r.cost_euros for r in records)
    total_requests = len(records)

    return {
        "analysis_period_days": days,
        "total_requests": total_requests,
        "total_cost": round(total_cost, 6),
        "avg_cost_per_request": total_cost / total_requests if total_requests else 0.0,
        "model_metrics": model_metrics,
        "response_times": {
            name: percentile(times, q, DEFAULT_PERCENTILES[name])
            for name, q in (("p50", 0.5), ("p95", 0.95), ("p99", 0.99))
        },
        "optimization_opportunities": optimization_opportunities(
            {model: usage.requests for model, usage in by_model.items()}, total_cost),
    }


async def optimize_budget_allocation(
    store: UsageStore,
    salon_id: str,
    mode: str = "balanced",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Recommend a per-model split for a mode and project the savings."""
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    records = await store.query_history(salon_id, since=month_start, until=now)
    total_cost = sum(r.cost_euros for r in records)

    if total_cost > 0:
        current = {
            model: round(usage.total_cost_euros / total_cost, 4)
            for model, usage in aggregate_by_model(records).items()
        }
    else:
        current = dict(DEFAULT_ALLOCATION)

    recommended, savings_rate = ALLOCATION_PRESETS.get(mode, ALLOCATION_PRESETS["balanced"])
    projected_savings = total_cost * savings_rate

    if mode == "quality":
        quality_impact = "improved"
    elif mode == "cost_efficiency":
        quality_impact = "slightly_reduced"
    else:
        quality_impact = "minimal"

    logger.debug(f"Budget allocation for salon {salon_id} ({mode}): spend €{total_cost:.4f}")

    return {
        "optimization_completed": True,
        "optimization_mode": mode,
        "current_allocation": current,
        "recommended_allocation": dict(recommended),
        "projected_savings": max(0.0, projected_savings),
        "quality_impact": quality_impact,
        "implementation_priority": "high" if projected_savings > total_cost * 0.1 else "medium",
        "analysis": {
            "current_monthly_cost": round(total_cost, 6),
            "projected_monthly_cost": max(0.0, total_cost - projected_savings),
            "efficiency_improvement": (
                projected_savings / total_cost * 100 if total_cost > 0 else 0.0
            ),
        },
    }
