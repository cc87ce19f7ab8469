"""Usage and savings reporting API routes."""

from fastapi import APIRouter, Depends, Query

from claxis.engine import DecisionEngine
from claxis.web.app import get_engine, unwrap

router = APIRouter()


@router.get("/salons/{salon_id}/usage")
async def usage_stats(
    salon_id: str,
    days: int = Query(30, ge=1, le=365),
    engine: DecisionEngine = Depends(get_engine),
):
    """AI usage per model against the monthly budget."""
    result = await engine.execute("get_ai_usage_stats", salon_id, {"calculation_period": days})
    return unwrap(result)


@router.get("/salons/{salon_id}/usage/performance")
async def model_performance(
    salon_id: str,
    days: int = Query(30, ge=1, le=365),
    engine: DecisionEngine = Depends(get_engine),
):
    """Per-model metrics and latency percentiles."""
    result = await engine.execute("analyze_model_performance", salon_id, {"calculation_period": days})
    return unwrap(result)


@router.get("/salons/{salon_id}/usage/allocation")
async def budget_allocation(
    salon_id: str,
    mode: str | None = Query(None, description="cost_efficiency|quality|balanced|speed|premium"),
    engine: DecisionEngine = Depends(get_engine),
):
    """Recommended per-model budget split."""
    result = await engine.execute("optimize_ai_budget", salon_id, {"optimization_mode": mode})
    return unwrap(result)


@router.get("/salons/{salon_id}/savings")
async def savings_potential(
    salon_id: str,
    days: int = Query(30, ge=1, le=365),
    engine: DecisionEngine = Depends(get_engine),
):
    """Template spend avoided by delayed replies."""
    result = await engine.execute("calculate_savings_potential", salon_id, {"calculation_period": days})
    return unwrap(result)


@router.get("/salons/{salon_id}/savings/stats")
async def optimization_stats(
    salon_id: str,
    days: int = Query(30, ge=1, le=365),
    engine: DecisionEngine = Depends(get_engine),
):
    """Timing decision totals and averages."""
    result = await engine.execute("get_optimization_stats", salon_id, {"calculation_period": days})
    return unwrap(result)
