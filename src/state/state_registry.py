"""
State graph: FIXED CONTRACT. Linear: initial → awaiting_name → awaiting_village → completed.
Each state declares its required fields, successor, and localized prompts.
Gate/merge logic in the orchestrator reads this table instead of branching per state.
"""

from typing import Any, Callable, TypedDict

from src.state.models import (
    ExtractionResult,
    NameExtraction,
    RegistrationStateId,
    VillageExtraction,
)


class StateConfig(TypedDict, total=False):
    name: str
    required_fields: list[str]
    next_state: RegistrationStateId | None
    extraction: type | None
    prompts: dict[str, str]
    retry_prompts: dict[str, str]
    citizen_updates: Callable[[Any], dict[str, Any]]


def _name_updates(extraction: NameExtraction) -> dict[str, Any]:
    return {"user_provided_name": extraction.full_name.strip()}


def _village_updates(extraction: VillageExtraction) -> dict[str, Any]:
    updates: dict[str, Any] = {"village": extraction.village_name.strip()}
    geo = extraction.geocode
    if geo is None or not geo.success:
        return updates
    admin = geo.administrative
    if admin and admin.village:
        updates["village"] = admin.village
    if geo.coordinates:
        updates["latitude"] = geo.coordinates.latitude
        updates["longitude"] = geo.coordinates.longitude
    if admin and admin.taluka:
        updates["taluka"] = admin.taluka
    if admin and admin.district:
        updates["district"] = admin.district
    updates["geocoding_info"] = {
        "formatted_address": geo.formatted_address,
        "place_id": geo.place_id,
        "administrative": admin.model_dump() if admin else None,
        "confidence": geo.confidence,
        "geocoded_at": geo.cached_at,
    }
    return updates


STATE_GRAPH: dict[RegistrationStateId, StateConfig] = {
    RegistrationStateId.INITIAL: {
        "name": "Initial Contact",
        "required_fields": [],
        "next_state": RegistrationStateId.AWAITING_NAME,
        "extraction": None,
    },
    RegistrationStateId.AWAITING_NAME: {
        "name": "Awaiting Name",
        "required_fields": ["user_provided_name"],
        "next_state": RegistrationStateId.AWAITING_VILLAGE,
        "extraction": NameExtraction,
        "prompts": {
            "en": "Please tell me your full name.",
            "mr": "कृपया आपले पूर्ण नाव सांगा.",
        },
        "retry_prompts": {
            "en": "Sorry, please write your clear and full name.",
            "mr": "क्षमस्व, कृपया आपले स्पष्ट आणि पूर्ण नाव लिहा.",
        },
        "citizen_updates": _name_updates,
    },
    RegistrationStateId.AWAITING_VILLAGE: {
        "name": "Awaiting Village",
        "required_fields": ["village", "coordinates"],
        "next_state": RegistrationStateId.COMPLETED,
        "extraction": VillageExtraction,
        "prompts": {
            "en": "Please tell me your village name (within Pune district).",
            "mr": "कृपया आपले गाव सांगा (पुणे जिल्ह्यातील).",
        },
        "retry_prompts": {
            "en": "Sorry, please provide a valid village name from Pune district.",
            "mr": "क्षमस्व, कृपया पुणे जिल्ह्यातील योग्य गाव नाव लिहा.",
        },
        "citizen_updates": _village_updates,
    },
    RegistrationStateId.COMPLETED: {
        "name": "Registration Complete",
        "required_fields": [],
        "next_state": None,
        "extraction": None,
    },
}

# Forward order; a committed history must be a subsequence of this
STATE_ORDER = [
    RegistrationStateId.INITIAL,
    RegistrationStateId.AWAITING_NAME,
    RegistrationStateId.AWAITING_VILLAGE,
    RegistrationStateId.COMPLETED,
]

GENERIC_PROMPT = {
    "en": "Please provide the required information.",
    "mr": "कृपया आवश्यक माहिती द्या.",
}
GENERIC_RETRY = {
    "en": "Please try again with clear information.",
    "mr": "कृपया स्पष्ट माहितीसह पुन्हा प्रयत्न करा.",
}


def get_state_config(state_id: RegistrationStateId | str) -> StateConfig:
    return STATE_GRAPH.get(RegistrationStateId(state_id), {})


def get_state_name(state_id: RegistrationStateId | str) -> str:
    return get_state_config(state_id).get("name", str(state_id))


def get_next_state(state_id: RegistrationStateId | str) -> RegistrationStateId | None:
    return get_state_config(state_id).get("next_state")


def get_required_fields(state_id: RegistrationStateId | str) -> list[str]:
    return list(get_state_config(state_id).get("required_fields", []))


def get_extraction_model(state_id: RegistrationStateId | str) -> type | None:
    return get_state_config(state_id).get("extraction")


def is_forward_transition(current: RegistrationStateId | str, nxt: RegistrationStateId | str) -> bool:
    """True only for the single successor of `current` in the fixed graph."""
    return get_next_state(current) == RegistrationStateId(nxt)


def get_default_prompt(state_id: RegistrationStateId | str, language: str) -> str:
    prompts = get_state_config(state_id).get("prompts") or {}
    return prompts.get(language) or prompts.get("en") or GENERIC_PROMPT.get(language, GENERIC_PROMPT["en"])


def get_retry_prompt(state_id: RegistrationStateId | str, language: str) -> str:
    prompts = get_state_config(state_id).get("retry_prompts") or {}
    return prompts.get(language) or prompts.get("en") or GENERIC_RETRY.get(language, GENERIC_RETRY["en"])


def citizen_updates_for(state_id: RegistrationStateId | str, extraction: ExtractionResult) -> dict[str, Any]:
    """Citizen fields to merge when `extraction` is accepted in `state_id`."""
    fn = get_state_config(state_id).get("citizen_updates")
    if fn is None:
        return {}
    return fn(extraction)
