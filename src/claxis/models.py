"""Validated input records for the decision engines.

Callers hand us loosely-typed JSON (strings or dicts). Everything is
parsed into one of these records at the boundary; malformed shapes and
unknown fields are rejected with a ValidationError listing every
field-level problem. Settings records are frozen so a decision can
never mutate the salon configuration it was given.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from claxis.errors import ValidationError


class Channel(str, Enum):
    WHATSAPP = "whatsapp"
    INSTAGRAM = "instagram"
    WEB = "web"
    VOICE = "voice"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    ESCALATED = "escalated"
    ARCHIVED = "archived"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    UNKNOWN = "unknown"


class Urgency(str, Enum):
    """Customer urgency as detected upstream."""
    LOW = "low"          # General inquiry
    MEDIUM = "medium"    # Service question
    HIGH = "high"        # Booking intent
    URGENT = "urgent"    # Complaint or emergency


class OptimizationMode(str, Enum):
    """Weighting presets for the model router."""
    COST_EFFICIENCY = "cost_efficiency"
    QUALITY = "quality"
    BALANCED = "balanced"
    SPEED = "speed"
    PREMIUM = "premium"


class ConversationContext(BaseModel):
    """Per-call conversation snapshot. Never persisted by the engine."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    salon_id: str = Field(min_length=1)
    customer_id: str | None = None
    customer_phone: str | None = None
    external_id: str | None = None
    channel: Channel = Channel.WHATSAPP
    status: ConversationStatus = ConversationStatus.ACTIVE
    last_message_at: datetime | None = None
    message_count: int = Field(0, ge=0)
    customer_sentiment: Sentiment = Sentiment.UNKNOWN
    intent_detected: str | None = None
    booking_probability: float = Field(0.0, ge=0.0, le=1.0)


class BudgetConstraints(BaseModel):
    """Per-request budget ceiling and the salon's running budgets."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_cost_euros: float = Field(1.0, ge=0.0)
    enforce_limit: bool = False
    daily_budget_euros: float = Field(50.0, gt=0.0)
    monthly_budget_euros: float = Field(500.0, gt=0.0)


class TimingOptions(BaseModel):
    """Per-call knobs for response timing. Other operation params are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    booking_probability: float | None = Field(None, ge=0.0, le=1.0)
    override_safety_checks: bool = False


class AISettings(BaseModel):
    """Which AI providers a salon has switched on, and its AI budget."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    gemini_enabled: bool = True
    deepseek_enabled: bool = False
    elevenlabs_enabled: bool = False
    preferred_language: str = Field("en", min_length=2, max_length=5)
    fallback_language: str = Field("en", min_length=2, max_length=5)
    confidence_threshold: float = Field(0.7, ge=0.0, le=1.0)
    cost_budget_monthly_euros: float = Field(100.0, ge=0.0)


class ServiceWindowSettings(BaseModel):
    """Free-messaging window configuration for template cost optimization."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    cost_threshold_euros: float = Field(0.10, ge=0.01)
    template_cost_euros: float = Field(0.05, gt=0.0)
    free_window_hours: float = Field(24.0, gt=0.0, le=72.0)
    max_optimization_percentage: float = Field(80.0, ge=0.0, le=100.0)


class SalonSettings(BaseModel):
    """Immutable per-salon configuration passed into every decision."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    salon_id: str = Field(min_length=1)
    business_name: str = ""
    ai_settings: AISettings = Field(default_factory=AISettings)
    service_window_settings: ServiceWindowSettings = Field(
        default_factory=ServiceWindowSettings)


@dataclass
class SettingsUpdate:
    """Outcome of a validated settings change."""
    old_settings: dict[str, Any]
    new_settings: dict[str, Any]
    changes_applied: list[str] = field(default_factory=list)
    estimated_impact: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "settings_updated": True,
            "old_settings": self.old_settings,
            "new_settings": self.new_settings,
            "changes_applied": self.changes_applied,
            "validation_errors": [],
            "estimated_impact": self.estimated_impact,
        }


Record = TypeVar("Record", bound=BaseModel)


def load_json_object(payload: str | bytes | dict[str, Any] | None, label: str) -> dict[str, Any]:
    """Decode a JSON object from a string, or pass a dict through."""
    if payload is None:
        return {}
    if isinstance(payload, (str, bytes)):
        if not payload.strip():
            return {}
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Invalid JSON in {label}",
                [f"{label}: {e.msg} (line {e.lineno}, column {e.colno})"],
            ) from e
    else:
        data = payload
    if not isinstance(data, dict):
        raise ValidationError(
            f"Invalid {label}: expected a JSON object",
            [f"{label}: expected object, got {type(data).__name__}"],
        )
    return data


def format_field_errors(exc: pydantic.ValidationError, label: str) -> list[str]:
    """Flatten pydantic errors into 'label.path: message' strings."""
    errors = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"])
        errors.append(f"{label}.{path}: {err['msg']}" if path else f"{label}: {err['msg']}")
    return errors


def parse_record(
    model_cls: type[Record],
    payload: str | bytes | dict[str, Any] | None,
    label: str,
) -> Record:
    """Parse a loosely-typed payload into a validated record."""
    data = load_json_object(payload, label)
    try:
        return model_cls.model_validate(data)
    except pydantic.ValidationError as e:
        errors = format_field_errors(e, label)
        raise ValidationError(f"Invalid {label}: {', '.join(errors)}", errors) from e


def merge_record(
    current: Record,
    changes: dict[str, Any],
    label: str,
    errors: list[str] | None = None,
) -> Record:
    """Apply a partial update to a frozen record, validating the result.

    Unknown keys and invalid values are reported together with any
    errors the caller already collected.
    """
    errors = list(errors or [])
    known = set(type(current).model_fields)
    for key in changes:
        if key not in known:
            errors.append(f"{label}.{key}: unknown setting")

    merged = None
    try:
        merged = type(current).model_validate(
            {**current.model_dump(), **{k: v for k, v in changes.items() if k in known}})
    except pydantic.ValidationError as e:
        errors.extend(format_field_errors(e, label))

    if errors or merged is None:
        raise ValidationError(f"Invalid {label}: {', '.join(errors)}", errors)
    return merged


def parse_conversation_context(payload: str | bytes | dict[str, Any] | None) -> ConversationContext:
    return parse_record(ConversationContext, payload, "conversation_context")


def parse_budget_constraints(payload: str | bytes | dict[str, Any] | None) -> BudgetConstraints:
    return parse_record(BudgetConstraints, payload, "budget_constraints")


def parse_salon_settings(payload: str | bytes | dict[str, Any] | None) -> SalonSettings:
    return parse_record(SalonSettings, payload, "salon_settings")


def parse_timing_options(params: dict[str, Any]) -> TimingOptions:
    options = {k: params[k] for k in TimingOptions.model_fields if params.get(k) is not None}
    return parse_record(TimingOptions, options, "timing_options")
