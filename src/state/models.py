"""
Registration state, classifier verdict and extraction payload models.
One active state record per citizen; history is kept as inactive records.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.schemas.contract import GeocodeOutcome


class RegistrationStateId(str, Enum):
    INITIAL = "initial"
    AWAITING_NAME = "awaiting_name"
    AWAITING_VILLAGE = "awaiting_village"
    COMPLETED = "completed"


class UserIntent(str, Enum):
    PROVIDING_INFO = "providing_info"
    ASKING_QUESTION = "asking_question"
    GREETING = "greeting"
    CONFUSED = "confused"
    OTHER = "other"


def clamp_confidence(value: Any) -> float:
    """Self-reported confidences are advisory; coerce into [0, 1]."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, value))


class RegistrationState(BaseModel):
    """One row of a citizen's state history. Only one may be active."""

    id: int | None = None
    citizen_id: str
    state_id: RegistrationStateId
    state_name: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
    is_active: bool = True
    attempts: int = 0
    validation_failures: int = 0
    last_attempt_at: str | None = None
    last_function_call_result: dict[str, Any] | None = None
    completed_at: str | None = None
    extracted_data: dict[str, Any] | None = None
    final_confidence: float | None = None
    transitioned_from: str | None = None


class StateAnalysis(BaseModel):
    """Classifier verdict: should we act on this message, and where to next."""

    current_state: RegistrationStateId
    user_intent: UserIntent = UserIntent.OTHER
    has_required_data: bool = False
    next_state: RegistrationStateId
    confidence: float = 0.0
    reason: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_unit_interval(cls, v: Any) -> float:
        return clamp_confidence(v)


class NameExtraction(BaseModel):
    full_name: str
    confidence: float = 0.0

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_unit_interval(cls, v: Any) -> float:
        return clamp_confidence(v)


class VillageExtraction(BaseModel):
    village_name: str
    confidence: float = 0.0
    needs_geocoding: bool = True
    # Attached by the orchestrator after validation
    geocode: GeocodeOutcome | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_unit_interval(cls, v: Any) -> float:
        return clamp_confidence(v)


ExtractionResult = NameExtraction | VillageExtraction
