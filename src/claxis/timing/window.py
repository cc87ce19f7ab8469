"""Service window status and message cost.

Replies sent within the free-messaging window after a customer's last
inbound message cost nothing; outside it every reply is a paid
template. The last inbound timestamp in the usage store is the only
source for the window. No record, or a failed lookup, means the
window is closed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from claxis.models import ConversationContext, ServiceWindowSettings
from claxis.usage import UsageStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceWindowStatus:
    """Free-messaging window of one conversation."""
    is_active: bool
    expires_at: datetime | None = None
    hours_remaining: float = 0.0
    last_inbound_message_at: datetime | None = None
    hours_since_last_message: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_active": self.is_active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "hours_remaining": round(self.hours_remaining, 3),
            "last_inbound_message_at": (
                self.last_inbound_message_at.isoformat() if self.last_inbound_message_at else None
            ),
            "hours_since_last_message": (
                round(self.hours_since_last_message, 3)
                if self.hours_since_last_message is not None else None
            ),
        }


async def check_service_window(
    store: UsageStore | None,
    conversation_id: str,
    free_window_hours: float = 24.0,
    now: datetime | None = None,
) -> ServiceWindowStatus:
    """Look up the last inbound message and derive the window."""
    if store is None:
        return ServiceWindowStatus(is_active=False)

    try:
        last_inbound = await store.last_inbound_message_timestamp(conversation_id)
    except Exception as e:
        logger.warning(f"Window lookup failed for conversation {conversation_id}: {e}")
        return ServiceWindowStatus(is_active=False)

    if last_inbound is None:
        return ServiceWindowStatus(is_active=False)

    if last_inbound.tzinfo is None:
        last_inbound = last_inbound.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    elapsed = (now - last_inbound).total_seconds() / 3600

    return ServiceWindowStatus(
        is_active=elapsed < free_window_hours,
        expires_at=last_inbound + timedelta(hours=free_window_hours),
        hours_remaining=max(0.0, free_window_hours - elapsed),
        last_inbound_message_at=last_inbound,
        hours_since_last_message=elapsed,
    )


async def analyze_message_cost(
    store: UsageStore | None,
    context: ConversationContext,
    settings: ServiceWindowSettings,
    now: datetime | None = None,
) -> dict[str, Any]:
    """What sending a reply right now would cost."""
    status = await check_service_window(store, context.id, settings.free_window_hours, now)
    template_cost = settings.template_cost_euros
    final_cost = 0.0 if status.is_active else template_cost

    return {
        "message_will_incur_cost": not status.is_active,
        "template_cost_euros": final_cost,
        "service_window_active": status.is_active,
        "window_expires_at": status.expires_at.isoformat() if status.expires_at else None,
        "hours_remaining": round(status.hours_remaining, 3),
        "hours_since_last_message": (
            round(status.hours_since_last_message, 3)
            if status.hours_since_last_message is not None else None
        ),
        "last_customer_message_at": (
            status.last_inbound_message_at.isoformat() if status.last_inbound_message_at else None
        ),
        "cost_breakdown": {
            "base_template_cost": template_cost,
            "service_window_discount": template_cost if status.is_active else 0.0,
            "final_cost": final_cost,
        },
    }
