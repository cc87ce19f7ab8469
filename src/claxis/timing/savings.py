"""Savings reporting over recorded timing decisions.

Both functions work on decision events as returned by
SQLiteAnalyticsSink.query(): dicts with a "data" mapping holding
should_optimize, delay_minutes, confidence, estimated_savings_euros,
in_free_window and template_cost_euros.
"""

from typing import Any


def _paid_or_saved(events: list[dict[str, Any]]) -> tuple[list[dict], list[dict]]:
    """Split outside-window decisions into optimized and paid templates."""
    optimized, paid = [], []
    for event in events:
        data = event.get("data", {})
        if data.get("should_optimize"):
            optimized.append(data)
        elif not data.get("in_free_window"):
            paid.append(data)
    return optimized, paid


def calculate_savings_potential(
    events: list[dict[str, Any]],
    period_days: int,
    template_cost: float,
) -> dict[str, Any]:
    """Template spend avoided by delaying replies, projected to a month."""
    optimized, paid = _paid_or_saved(events)

    potential = sum(d.get("estimated_savings_euros", template_cost) for d in optimized)
    # What the same replies would have cost without any optimization
    current = potential + sum(d.get("template_cost_euros", template_cost) for d in paid)
    monthly = potential / period_days * 30
    roi = potential / current * 100 if current > 0 else 0.0

    recommendations = []
    if not events:
        recommendations.append("No timing decisions recorded yet for this period")
    elif roi < 20:
        recommendations.append(
            "Most replies go out as paid templates - review safety gate thresholds")
    else:
        recommendations.append("Optimization is capturing a meaningful share of template spend")
    if paid:
        recommendations.append(
            f"{len(paid)} replies were sent as paid templates outside the free window")

    return {
        "calculation_period_days": period_days,
        "optimization_opportunities": len(optimized),
        "paid_templates": len(paid),
        "current_template_cost": round(current, 2),
        "potential_savings_euros": round(potential, 2),
        "projected_template_cost": round(current - potential, 2),
        "monthly_savings_euros": round(monthly, 2),
        "roi_percentage": round(roi, 1),
        "recommendations": recommendations,
    }


def get_optimization_stats(events: list[dict[str, Any]], period_days: int) -> dict[str, Any]:
    """Totals and averages of timing decisions over a period."""
    total = len(events)
    optimized = [e["data"] for e in events if e.get("data", {}).get("should_optimize")]
    savings = sum(d.get("estimated_savings_euros", 0.0) for d in optimized)
    rate = len(optimized) / total if total else 0.0

    return {
        "calculation_period_days": period_days,
        "total_decisions": total,
        "messages_optimized": len(optimized),
        "optimization_rate": round(rate * 100, 1),
        "total_savings_euros": round(savings, 2),
        "average_delay_minutes": (
            round(sum(d.get("delay_minutes", 0) for d in optimized) / len(optimized), 1)
            if optimized else 0.0
        ),
        "average_confidence": (
            round(sum(e.get("data", {}).get("confidence", 0.0) for e in events) / total, 3)
            if total else 0.0
        ),
        "roi_metrics": {
            "savings_per_optimization": savings / len(optimized) if optimized else 0.0,
            "monthly_projection": round(savings / period_days * 30, 2),
        },
    }
