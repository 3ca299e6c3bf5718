from src.state.models import (
    ExtractionResult,
    NameExtraction,
    RegistrationState,
    RegistrationStateId,
    StateAnalysis,
    UserIntent,
    VillageExtraction,
)
from src.state.state_registry import (
    STATE_GRAPH,
    STATE_ORDER,
    citizen_updates_for,
    get_default_prompt,
    get_extraction_model,
    get_next_state,
    get_required_fields,
    get_retry_prompt,
    get_state_name,
)

__all__ = [
    "ExtractionResult",
    "NameExtraction",
    "RegistrationState",
    "RegistrationStateId",
    "StateAnalysis",
    "UserIntent",
    "VillageExtraction",
    "STATE_GRAPH",
    "STATE_ORDER",
    "citizen_updates_for",
    "get_default_prompt",
    "get_extraction_model",
    "get_next_state",
    "get_required_fields",
    "get_retry_prompt",
    "get_state_name",
]
