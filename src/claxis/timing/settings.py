"""Service window settings updates."""

import logging
from typing import Any

from claxis.config import SalonConfigProvider
from claxis.models import SalonSettings, SettingsUpdate, load_json_object, merge_record

logger = logging.getLogger(__name__)


def _number(changes: dict[str, Any], key: str) -> float | None:
    value = changes.get(key)
    if isinstance(value, bool) or value is None:
        return None
    # Numeric strings are coerced the same way the record coerces them.
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_window_changes(changes: dict[str, Any]) -> list[str]:
    """Business rules for service window settings. Every violation is listed."""
    errors = []

    threshold = _number(changes, "cost_threshold_euros")
    if threshold is not None and threshold < 0.01:
        errors.append("Cost threshold must be at least €0.01")

    template_cost = _number(changes, "template_cost_euros")
    if template_cost is not None and template_cost <= 0:
        errors.append("Template cost must be greater than 0")

    percentage = _number(changes, "max_optimization_percentage")
    if percentage is not None and not 0 <= percentage <= 100:
        errors.append("Max optimization percentage must be between 0-100")

    hours = _number(changes, "free_window_hours")
    if hours is not None and not 0 < hours <= 72:
        errors.append("Free window hours must be greater than 0 and at most 72")

    return errors


def estimate_impact(old: Any, new: Any) -> dict[str, Any]:
    """Qualitative effect of a settings change on optimization."""
    if new.enabled and not old.enabled:
        rate_change = "Optimization enabled - delayed replies become possible"
    elif old.enabled and not new.enabled:
        rate_change = "Optimization disabled - every reply outside the window is a paid template"
    elif new.max_optimization_percentage > old.max_optimization_percentage:
        rate_change = "More replies may be optimized"
    elif new.max_optimization_percentage < old.max_optimization_percentage:
        rate_change = "Fewer replies will be optimized"
    else:
        rate_change = "No change in optimization rate expected"

    if new.free_window_hours > 24 or new.max_optimization_percentage > 90:
        risk_level = "Medium - review customer response times"
    else:
        risk_level = "Low - settings within safe parameters"

    return {
        "savings_per_optimized_message_euros": new.template_cost_euros,
        "template_cost_change_euros": new.template_cost_euros - old.template_cost_euros,
        "optimization_rate_change": rate_change,
        "risk_level": risk_level,
    }


async def update_optimization_settings(
    provider: SalonConfigProvider,
    settings: SalonSettings,
    changes: str | dict[str, Any],
) -> SettingsUpdate:
    """Validate and persist a partial service window settings change.

    Raises:
        ValidationError: listing every violated field; nothing is saved.
    """
    changes = load_json_object(changes, "service_window_settings")
    errors = validate_window_changes(changes)

    old = settings.service_window_settings
    new = merge_record(old, changes, "service_window_settings", errors)

    await provider.save(settings.model_copy(update={"service_window_settings": new}))
    logger.info(f"Service window settings updated for salon {settings.salon_id}: {sorted(changes)}")

    return SettingsUpdate(
        old_settings=old.model_dump(mode="json"),
        new_settings=new.model_dump(mode="json"),
        changes_applied=list(changes),
        estimated_impact=estimate_impact(old, new),
    )
