"""Decision API routes: model routing, response timing, message cost."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from claxis.engine import DecisionEngine
from claxis.web.app import get_engine, unwrap

router = APIRouter()


class RouteRequest(BaseModel):
    """Request to route a customer message to an AI provider."""
    message_content: str
    request_type: str = "general_inquiry"
    priority: str = "normal"
    conversation_context: dict[str, Any]
    budget_constraints: dict[str, Any] = Field(default_factory=dict)
    optimization_mode: str | None = None  # engine default when omitted


class TimingRequest(BaseModel):
    """Request to decide when to send a reply."""
    message_content: str = ""
    conversation_context: dict[str, Any]
    customer_urgency: str = "medium"  # low, medium, high, urgent
    booking_probability: float | None = None
    override_safety_checks: bool = False


class CostRequest(BaseModel):
    conversation_context: dict[str, Any]


class InboundMessage(BaseModel):
    """A customer message arriving on a conversation."""
    conversation_id: str
    customer_id: str | None = None
    received_at: str | None = None  # ISO 8601, defaults to now


@router.post("/salons/{salon_id}/route")
async def route_request(salon_id: str, req: RouteRequest, engine: DecisionEngine = Depends(get_engine)):
    """Choose the AI provider for a message."""
    result = await engine.execute("route_ai_request", salon_id, req.model_dump())
    return unwrap(result)


@router.post("/salons/{salon_id}/timing")
async def optimize_timing(salon_id: str, req: TimingRequest, engine: DecisionEngine = Depends(get_engine)):
    """Decide whether to delay a reply into the free window."""
    result = await engine.execute("optimize_response_timing", salon_id, req.model_dump())
    return unwrap(result)


@router.post("/salons/{salon_id}/message-cost")
async def message_cost(salon_id: str, req: CostRequest, engine: DecisionEngine = Depends(get_engine)):
    """What a reply sent now would cost."""
    result = await engine.execute("analyze_message_cost", salon_id, req.model_dump())
    return unwrap(result)


@router.post("/salons/{salon_id}/inbound")
async def record_inbound(salon_id: str, req: InboundMessage, engine: DecisionEngine = Depends(get_engine)):
    """Record an inbound customer message (opens the free window)."""
    result = await engine.execute("record_inbound_message", salon_id, req.model_dump())
    return unwrap(result)
