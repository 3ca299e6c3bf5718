"""Citizen inspection API: registration record, state history, audit trail and chat log."""

from fastapi import APIRouter, HTTPException

from src.registry import get_chat_history, get_citizen, get_function_calls, get_state_history
from src.registry.state_store import get_current_state
from src.schemas import CitizenRecord

router = APIRouter(prefix="/citizens", tags=["citizens"])


def _require_citizen(whatsapp_number: str) -> CitizenRecord:
    citizen = get_citizen(whatsapp_number)
    if not citizen:
        raise HTTPException(status_code=404, detail="Citizen not found")
    return citizen


@router.get("/{whatsapp_number}")
def get_citizen_record(whatsapp_number: str):
    citizen = _require_citizen(whatsapp_number)
    state = get_current_state(whatsapp_number)
    return {
        "citizen": citizen.model_dump(mode="json"),
        "current_state": state.state_id.value if state else None,
    }


@router.get("/{whatsapp_number}/states")
def get_citizen_states(whatsapp_number: str, limit: int = 10):
    """State records, most recent first, plus the per-attempt audit trail."""
    _require_citizen(whatsapp_number)
    return {
        "states": [s.model_dump(mode="json") for s in get_state_history(whatsapp_number, limit)],
        "function_calls": get_function_calls(whatsapp_number),
    }


@router.get("/{whatsapp_number}/chats")
def get_citizen_chats(whatsapp_number: str, limit: int = 20):
    _require_citizen(whatsapp_number)
    return {"messages": [m.model_dump(mode="json") for m in get_chat_history(whatsapp_number, limit)]}
