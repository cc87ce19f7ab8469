"""Model catalog.

One ModelSpec per AI provider. Every per-model number the router
uses (costs, axis scores, history priors, expected latency) lives on
its ModelSpec, so adding a provider means adding one entry here.
"""

from dataclasses import dataclass, field
from typing import Any

GEMINI_FLASH = "gemini_flash"
DEEPSEEK_R1 = "deepseek_r1"
ELEVENLABS = "elevenlabs"


@dataclass(frozen=True)
class ModelSpec:
    """A routable model with its cost and quality profile."""
    model_id: str
    display_name: str
    settings_flag: str          # AISettings field that enables it
    base_cost: float            # Flat per-request cost (direct mapping, EUR)
    scoring_cost: float         # Cost basis for weighted scoring (EUR)
    quality: float
    speed: float
    cost_score: float
    cost_efficiency: float
    prior_success_rate: float   # Used when there is no usage history
    prior_satisfaction: float
    prior_response_time_ms: float
    expected_response_time_ms: float
    expected_quality: float
    strengths: tuple[str, ...] = ()
    limitations: tuple[str, ...] = ()
    use_cases: tuple[str, ...] = ()
    features: dict[str, bool] = field(default_factory=dict)

    def capabilities(self) -> dict[str, Any]:
        return {
            "strengths": list(self.strengths),
            "limitations": list(self.limitations),
            "use_cases": list(self.use_cases),
            "features": dict(self.features),
            "performance_metrics": {
                "avg_response_time_ms": self.prior_response_time_ms,
                "success_rate": self.prior_success_rate,
                "customer_satisfaction": self.prior_satisfaction,
                "cost_efficiency_score": self.cost_efficiency,
            },
        }


# Iteration order matters: ties in weighted scoring keep the earlier entry.
MODEL_CATALOG: dict[str, ModelSpec] = {
    GEMINI_FLASH: ModelSpec(
        model_id=GEMINI_FLASH,
        display_name="Gemini Flash",
        settings_flag="gemini_enabled",
        base_cost=0.001,
        scoring_cost=0.001,
        quality=0.8,
        speed=0.95,
        cost_score=0.95,
        cost_efficiency=0.95,
        prior_success_rate=0.94,
        prior_satisfaction=0.87,
        prior_response_time_ms=450,
        expected_response_time_ms=150,
        expected_quality=0.85,
        strengths=(
            "Fast response time (<500ms)",
            "Highly cost-effective",
            "Strong multilingual support",
        ),
        limitations=(
            "Limited complex reasoning depth",
            "No voice synthesis capability",
        ),
        use_cases=(
            "General customer inquiries",
            "Basic appointment scheduling",
            "FAQ automation",
        ),
        features={"real_time_optimization": True, "cost_prediction": True},
    ),
    DEEPSEEK_R1: ModelSpec(
        model_id=DEEPSEEK_R1,
        display_name="DeepSeek R1",
        settings_flag="deepseek_enabled",
        base_cost=0.005,
        scoring_cost=0.005,
        quality=0.95,
        speed=0.7,
        cost_score=0.7,
        cost_efficiency=0.78,
        prior_success_rate=0.91,
        prior_satisfaction=0.92,
        prior_response_time_ms=1200,
        expected_response_time_ms=800,
        expected_quality=0.95,
        strengths=(
            "Advanced reasoning and problem-solving",
            "Complex conversation understanding",
            "Excellent for technical inquiries",
        ),
        limitations=(
            "Higher cost per request",
            "Slower response time (1-2s)",
            "Overkill for simple queries",
        ),
        use_cases=(
            "Complex problem resolution",
            "Technical support",
            "Booking conflict resolution",
        ),
        features={"advanced_reasoning": True, "context_retention": True},
    ),
    ELEVENLABS: ModelSpec(
        model_id=ELEVENLABS,
        display_name="ElevenLabs",
        settings_flag="elevenlabs_enabled",
        base_cost=0.003,
        scoring_cost=0.01,
        quality=0.9,
        speed=0.6,
        cost_score=0.5,
        cost_efficiency=0.65,
        prior_success_rate=0.89,
        prior_satisfaction=0.95,
        prior_response_time_ms=2000,
        expected_response_time_ms=2000,
        expected_quality=0.90,
        strengths=(
            "Natural voice synthesis",
            "Multiple language support",
        ),
        limitations=(
            "Voice-only responses",
            "Highest cost per request",
        ),
        use_cases=(
            "Voice responses for accessibility",
            "Audio confirmations",
        ),
        features={"voice_cloning": True, "multi_language": True},
    ),
}

CHEAPEST_MODEL = GEMINI_FLASH

# Request types with a fixed business-rule assignment
DIRECT_REQUEST_MAPPING: dict[str, str] = {
    "complex_problem_solving": DEEPSEEK_R1,
    "voice_response": ELEVENLABS,
    "general_inquiry": GEMINI_FLASH,
    "booking_request": GEMINI_FLASH,
}

BUSINESS_REASONING: dict[str, str] = {
    "complex_problem_solving": (
        "Complex problem solving request - DeepSeek R1 selected for advanced reasoning capabilities"
    ),
    "voice_response": "Voice response requested",
    "general_inquiry": "General inquiry - Gemini Flash selected for fast, cost-effective response",
    "booking_request": "Booking request - Gemini Flash selected for reliable booking assistance",
}

# Axis weights per optimization mode: quality, speed, cost, historical
MODE_WEIGHTS: dict[str, dict[str, float]] = {
    "cost_efficiency": {"quality": 0.2, "speed": 0.3, "cost": 0.4, "historical": 0.1},
    "quality": {"quality": 0.5, "speed": 0.2, "cost": 0.1, "historical": 0.2},
    "balanced": {"quality": 0.3, "speed": 0.3, "cost": 0.2, "historical": 0.2},
    "speed": {"quality": 0.2, "speed": 0.5, "cost": 0.2, "historical": 0.1},
    "premium": {"quality": 0.4, "speed": 0.2, "cost": 0.1, "historical": 0.3},
}


def weights_for(mode: str) -> dict[str, float]:
    """Weight vector for a mode; unknown modes get the balanced preset."""
    return MODE_WEIGHTS.get(mode, MODE_WEIGHTS["balanced"])


def is_model_enabled(model_id: str, ai_settings: Any) -> bool:
    """Whether the salon has this model switched on. Unknown ids never are."""
    spec = MODEL_CATALOG.get(model_id)
    if spec is None:
        return False
    return bool(getattr(ai_settings, spec.settings_flag, False))


def enabled_models(ai_settings: Any) -> list[ModelSpec]:
    """Enabled models in catalog order."""
    return [spec for spec in MODEL_CATALOG.values() if is_model_enabled(spec.model_id, ai_settings)]
