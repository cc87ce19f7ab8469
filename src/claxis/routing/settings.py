"""AI settings updates."""

import logging
from typing import Any

from claxis.config import SalonConfigProvider
from claxis.models import SalonSettings, SettingsUpdate, load_json_object, merge_record
from claxis.routing.catalog import MODEL_CATALOG

logger = logging.getLogger(__name__)


async def update_ai_settings(
    provider: SalonConfigProvider,
    settings: SalonSettings,
    changes: str | dict[str, Any],
) -> SettingsUpdate:
    """Validate and persist a partial AI settings change.

    Raises:
        ValidationError: listing every rejected field.
    """
    changes = load_json_object(changes, "ai_settings")
    errors = []

    budget = changes.get("cost_budget_monthly_euros")
    if isinstance(budget, (int, float)) and budget < 0:
        errors.append("Monthly cost budget must be non-negative")
    threshold = changes.get("confidence_threshold")
    if isinstance(threshold, (int, float)) and not 0 <= threshold <= 1:
        errors.append("Confidence threshold must be between 0 and 1")

    old = settings.ai_settings
    new = merge_record(old, changes, "ai_settings", errors)

    await provider.save(settings.model_copy(update={"ai_settings": new}))

    enabled = [
        spec.model_id for spec in MODEL_CATALOG.values()
        if getattr(new, spec.settings_flag) and not getattr(old, spec.settings_flag)
    ]
    disabled = [
        spec.model_id for spec in MODEL_CATALOG.values()
        if getattr(old, spec.settings_flag) and not getattr(new, spec.settings_flag)
    ]
    if enabled or disabled:
        performance_impact = "Model availability changed - routing will rebalance"
    else:
        performance_impact = "Minimal impact expected"

    logger.info(f"AI settings updated for salon {settings.salon_id}: {sorted(changes)}")

    return SettingsUpdate(
        old_settings=old.model_dump(mode="json"),
        new_settings=new.model_dump(mode="json"),
        changes_applied=list(changes),
        estimated_impact={
            "monthly_budget_change_euros": (
                new.cost_budget_monthly_euros - old.cost_budget_monthly_euros
            ),
            "models_enabled": enabled,
            "models_disabled": disabled,
            "performance_impact": performance_impact,
        },
    )
