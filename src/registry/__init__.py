from src.registry.state_store import (
    commit_transition,
    get_current_state,
    get_function_calls,
    get_or_create_state,
    get_state_history,
    record_attempt,
)
from src.registry.store import (
    cache_geocode,
    get_cached_geocode,
    get_chat_history,
    get_citizen,
    get_or_create_citizen,
    init_db,
    save_chat_message,
)

__all__ = [
    "commit_transition",
    "get_current_state",
    "get_function_calls",
    "get_or_create_state",
    "get_state_history",
    "record_attempt",
    "cache_geocode",
    "get_cached_geocode",
    "get_chat_history",
    "get_citizen",
    "get_or_create_citizen",
    "init_db",
    "save_chat_message",
]
