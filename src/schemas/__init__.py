from src.schemas.contract import (
    AdministrativeLabels,
    ChatMessage,
    ChatRole,
    CitizenRecord,
    Coordinates,
    GeocodeFailureReason,
    GeocodeOutcome,
    Language,
    WhatsAppProfile,
)

__all__ = [
    "AdministrativeLabels",
    "ChatMessage",
    "ChatRole",
    "CitizenRecord",
    "Coordinates",
    "GeocodeFailureReason",
    "GeocodeOutcome",
    "Language",
    "WhatsAppProfile",
]
