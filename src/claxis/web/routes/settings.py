"""Salon settings API routes."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from claxis.engine import DecisionEngine
from claxis.web.app import get_engine, unwrap

router = APIRouter()


@router.get("/salons/{salon_id}/settings")
async def get_settings(salon_id: str, engine: DecisionEngine = Depends(get_engine)):
    """Current salon settings."""
    settings = await engine.config_provider.get(salon_id)
    if settings is None:
        raise HTTPException(status_code=404, detail=f"Salon not found: {salon_id}")
    return settings.model_dump(mode="json")


@router.patch("/salons/{salon_id}/settings/ai")
async def patch_ai_settings(
    salon_id: str,
    changes: dict[str, Any] = Body(...),
    engine: DecisionEngine = Depends(get_engine),
):
    """Update AI provider settings."""
    result = await engine.execute("update_ai_settings", salon_id, {"new_settings": changes})
    return unwrap(result)


@router.patch("/salons/{salon_id}/settings/service-window")
async def patch_service_window_settings(
    salon_id: str,
    changes: dict[str, Any] = Body(...),
    engine: DecisionEngine = Depends(get_engine),
):
    """Update service window optimization settings."""
    result = await engine.execute("update_optimization_settings", salon_id, {"new_settings": changes})
    return unwrap(result)
