"""Configuration: engine settings and per-salon settings.

Engine settings live in ~/.claxis/config.yaml, salon settings in
~/.claxis/salons.yaml (one mapping per salon id). Environment variables
override the engine file:

    CLAXIS_HOME               config directory (default ~/.claxis)
    CLAXIS_DB_PATH            usage database path
    CLAXIS_ANALYTICS_WEBHOOK  forward decision events to this URL
    CLAXIS_LOG_LEVEL          logging level name
"""

import logging
import os
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from claxis.errors import ValidationError
from claxis.models import OptimizationMode, SalonSettings, format_field_errors, parse_salon_settings

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Get the Claxis config directory."""
    config_dir = Path(os.environ.get("CLAXIS_HOME") or (Path.home() / ".claxis"))
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Get the engine config file path."""
    return get_config_dir() / "config.yaml"


def get_salons_path() -> Path:
    """Get the salon settings file path."""
    return get_config_dir() / "salons.yaml"


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load existing configuration."""
    config_path = path or get_config_path()
    if config_path.exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    return {}


def save_config(config: dict[str, Any], path: Path | None = None) -> None:
    """Save configuration to file."""
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(config, f, default_flow_style=False)


class EngineConfig(BaseModel):
    """Process-level settings for the decision engine."""

    model_config = ConfigDict(extra="ignore")

    db_path: Path | None = None
    decisions_db_path: Path | None = None
    analytics_webhook_url: str | None = None
    log_level: str = "WARNING"
    default_optimization_mode: OptimizationMode = OptimizationMode.BALANCED
    history_days: int = Field(30, ge=1, le=365)

    def resolved_db_path(self) -> Path:
        return self.db_path or (get_config_dir() / "usage.db")

    def resolved_decisions_db_path(self) -> Path:
        return self.decisions_db_path or (get_config_dir() / "decisions.db")


ENV_OVERRIDES = {
    "CLAXIS_DB_PATH": "db_path",
    "CLAXIS_ANALYTICS_WEBHOOK": "analytics_webhook_url",
    "CLAXIS_LOG_LEVEL": "log_level",
}


def load_engine_config(path: Path | None = None) -> EngineConfig:
    """Read config.yaml and apply environment overrides."""
    data = load_config(path)
    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data[key] = value
    try:
        return EngineConfig.model_validate(data)
    except pydantic.ValidationError as e:
        errors = format_field_errors(e, "config")
        raise ValidationError(f"Invalid engine configuration: {', '.join(errors)}", errors) from e


@runtime_checkable
class SalonConfigProvider(Protocol):
    """Lookup and persistence of per-salon settings."""

    async def get(self, salon_id: str) -> SalonSettings | None: ...

    async def save(self, settings: SalonSettings) -> None: ...


class InMemorySalonConfigProvider:
    """Salon settings held in a dict. Used by tests and embedding callers."""

    def __init__(self, salons: list[SalonSettings] | None = None):
        self._salons: dict[str, SalonSettings] = {s.salon_id: s for s in salons or []}

    async def get(self, salon_id: str) -> SalonSettings | None:
        return self._salons.get(salon_id)

    async def save(self, settings: SalonSettings) -> None:
        self._salons[settings.salon_id] = settings


class YamlSalonConfigProvider:
    """Salon settings stored in salons.yaml, keyed by salon id.

    File layout:

        salon-123:
          business_name: Studio Nord
          ai_settings:
            deepseek_enabled: true
          service_window_settings:
            template_cost_euros: 0.05
    """

    def __init__(self, path: Path | None = None):
        self.path = path or get_salons_path()

    def _load_all(self) -> dict[str, Any]:
        return load_config(self.path)

    async def get(self, salon_id: str) -> SalonSettings | None:
        entry = self._load_all().get(salon_id)
        if entry is None:
            return None
        if not isinstance(entry, dict):
            raise ValidationError(
                f"Invalid salon_settings for {salon_id} in {self.path}",
                [f"salon_settings: expected mapping, got {type(entry).__name__}"],
            )
        return parse_salon_settings({**entry, "salon_id": salon_id})

    async def save(self, settings: SalonSettings) -> None:
        salons = self._load_all()
        entry = settings.model_dump(mode="json")
        entry.pop("salon_id")
        salons[settings.salon_id] = entry
        save_config(salons, self.path)
        logger.info(f"Saved settings for salon {settings.salon_id} to {self.path}")
