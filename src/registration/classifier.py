"""
Intent/State classifier: decide whether a message carries the field the current
state needs. One structured LLM call at low temperature; rule-based when no LLM.
The suggested next state is always pinned to the graph successor.
"""

import logging
from typing import Literal

from pydantic import BaseModel, Field

from src.nlp.entities import EXPLICIT_CONFIDENCE, extract_name, extract_village
from src.nlp.intent import detect_user_intent
from src.nlp.llm_chat import get_structured_chat
from src.registration.errors import ProviderError
from src.schemas import CitizenRecord
from src.state.models import RegistrationStateId, StateAnalysis, UserIntent
from src.state.state_registry import get_next_state, get_required_fields, get_state_name

logger = logging.getLogger(__name__)

CLASSIFIER_TEMPERATURE = 0.1

# Rule-based verdict when the text neither looks like data nor like conversation
UNKNOWN_CONFIDENCE = 0.5
DATA_CONFIDENCE = 0.8


class AnalyzeRegistrationState(BaseModel):
    """Analyze the registration state and the citizen's message; decide the next action."""

    current_state: Literal["initial", "awaiting_name", "awaiting_village", "completed"] = Field(
        description="Current registration state"
    )
    user_intent: Literal["providing_info", "asking_question", "greeting", "confused", "other"] = Field(
        description="User's apparent intent"
    )
    has_required_data: bool = Field(description="Whether the message contains the information the current state needs")
    next_state: Literal["awaiting_name", "awaiting_village", "completed"] = Field(description="Recommended next state")
    confidence: float = Field(description="Confidence in the analysis (0.0 to 1.0)")
    reason: str = Field(description="Brief explanation of the analysis")


CLASSIFY_PROMPT = """You analyze messages for the Pune Zilla Panchayat WhatsApp registration.
Registration collects exactly two things, in order: the citizen's full name, then their village (within Pune district).

Current state: {state} ({state_name})
Information needed now: {required}
Known citizen data: name={name!r}, village={village!r}

Decide whether the citizen's message provides the information needed now.
Greetings, questions, acknowledgements like "ok", and confusion do NOT provide it."""

_FIELD_EXTRACTORS = {
    RegistrationStateId.AWAITING_NAME: extract_name,
    RegistrationStateId.AWAITING_VILLAGE: extract_village,
}


def _pin_next_state(current_state: RegistrationStateId, suggested: str | None) -> RegistrationStateId:
    successor = get_next_state(current_state) or current_state
    if suggested and suggested != successor.value:
        logger.warning(
            "Classifier suggested %s from %s; using graph successor %s",
            suggested,
            current_state.value,
            successor.value,
        )
    return successor


def _classify_with_rules(message: str, current_state: RegistrationStateId) -> StateAnalysis:
    successor = get_next_state(current_state) or current_state
    extractor = _FIELD_EXTRACTORS.get(current_state)
    value, value_conf = extractor(message) if extractor else (None, 0.0)
    signal = detect_user_intent(message)

    if value and value_conf >= EXPLICIT_CONFIDENCE:
        return StateAnalysis(
            current_state=current_state,
            user_intent=UserIntent.PROVIDING_INFO,
            has_required_data=True,
            next_state=successor,
            confidence=0.9,
            reason="explicit phrase",
        )
    if signal:
        return StateAnalysis(
            current_state=current_state,
            user_intent=signal.intent,
            has_required_data=False,
            next_state=successor,
            confidence=signal.confidence,
            reason=f"{signal.intent.value} signal",
        )
    if value:
        return StateAnalysis(
            current_state=current_state,
            user_intent=UserIntent.PROVIDING_INFO,
            has_required_data=True,
            next_state=successor,
            confidence=DATA_CONFIDENCE,
            reason="field-shaped reply",
        )
    return StateAnalysis(
        current_state=current_state,
        user_intent=UserIntent.OTHER,
        has_required_data=False,
        next_state=successor,
        confidence=UNKNOWN_CONFIDENCE,
        reason="no usable field",
    )


def classify(message: str, current_state: RegistrationStateId, citizen: CitizenRecord | None = None) -> StateAnalysis:
    """
    Verdict on `message` for `current_state`. Raises ProviderError if the LLM call fails.
    """
    runnable = get_structured_chat(AnalyzeRegistrationState, temperature=CLASSIFIER_TEMPERATURE)
    if runnable is None:
        analysis = _classify_with_rules(message, current_state)
        logger.info("Rule-based state analysis: %s", analysis.model_dump(mode="json"))
        return analysis

    prompt = CLASSIFY_PROMPT.format(
        state=current_state.value,
        state_name=get_state_name(current_state),
        required=", ".join(get_required_fields(current_state)) or "-",
        name=citizen.user_provided_name if citizen else None,
        village=citizen.village if citizen else None,
    )
    try:
        raw = runnable.invoke([("system", prompt), ("human", message)])
    except Exception as exc:
        raise ProviderError(f"State analysis failed: {exc}") from exc
    if raw is None:
        raise ProviderError("State analysis returned no result")

    analysis = StateAnalysis(
        current_state=current_state,
        user_intent=UserIntent(raw.user_intent),
        has_required_data=raw.has_required_data,
        next_state=_pin_next_state(current_state, raw.next_state),
        confidence=raw.confidence,
        reason=raw.reason,
    )
    logger.info("State analysis: %s", analysis.model_dump(mode="json"))
    return analysis
