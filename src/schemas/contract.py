"""
Unit of truth for a citizen: the citizen record, per-turn chat log entries,
and the geocoding outcome that backs a registered village.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Language(str, Enum):
    ENGLISH = "en"
    MARATHI = "mr"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class GeocodeFailureReason(str, Enum):
    NOT_FOUND = "not_found"
    OUT_OF_BOUNDARY = "out_of_boundary"
    SERVICE_ERROR = "service_error"


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class AdministrativeLabels(BaseModel):
    village: str | None = None
    taluka: str | None = None
    district: str | None = None
    region: str | None = None
    country: str | None = None
    postal_code: str | None = None


class GeocodeOutcome(BaseModel):
    """
    Result of resolving a village name. On success carries coordinates,
    canonical labels and a 0-100 source confidence; on failure a reason code
    and the localized message shown to the citizen.
    """

    success: bool
    query: str
    coordinates: Coordinates | None = None
    administrative: AdministrativeLabels | None = None
    formatted_address: str | None = None
    place_id: str | None = None
    location_type: str | None = None
    confidence: float = 0.0
    cached_at: str | None = None
    reason: GeocodeFailureReason | None = None
    message: str | None = None


# --- Citizen ---


class CitizenRecord(BaseModel):
    """One per WhatsApp number. is_registered implies name and village are set."""

    whatsapp_number: str
    whatsapp_id: str | None = None
    display_name: str | None = None
    profile_picture: str | None = None
    user_provided_name: str | None = None
    is_registered: bool = False
    village: str | None = None
    coordinates: Coordinates | None = None
    taluka: str | None = None
    district: str | None = "Pune"
    geocoding_info: dict[str, Any] = Field(default_factory=dict)
    preferred_language: str | None = None
    registration_started_at: str | None = None
    registration_completed_at: str | None = None
    created_at: str | None = None
    last_active: str | None = None
    updated_at: str | None = None

    @property
    def name(self) -> str | None:
        return self.user_provided_name or self.display_name


class WhatsAppProfile(BaseModel):
    whatsapp_id: str
    display_name: str | None = None
    profile_picture: str | None = None


# --- Chat log ---


class ChatMessage(BaseModel):
    """Append-only log entry per turn. Never mutated after creation."""

    id: int | None = None
    citizen_id: str
    role: ChatRole
    content: str
    language: str = "en"
    state_snapshot: dict[str, Any] | None = None
    extraction_snapshot: dict[str, Any] | None = None
    message_id: str | None = None
    message_type: str = "text"
    created_at: str | None = None
