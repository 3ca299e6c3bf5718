"""
Registration orchestrator: one inbound message → one reply.
Load/create state → (initial: welcome) → classify → extract → geocode village →
confidence gate → atomic transition. Never raises to the transport layer.
"""

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.geocoding.validator import resolve
from src.registration.classifier import classify
from src.registration.errors import InvariantViolation, ProviderError, StaleStateError
from src.registration.escalation import needs_human_contact
from src.registration.extractor import extract
from src.registration.messages import (
    completion_message,
    escalation_note,
    technical_issue_message,
    welcome_message,
)
from src.nlp.llm_chat import generate_contextual_reply
from src.registry.state_store import (
    commit_transition,
    get_current_state,
    get_or_create_state,
    record_attempt,
)
from src.registry.store import get_citizen, get_or_create_citizen, utc_now_iso
from src.schemas import CitizenRecord, GeocodeFailureReason, GeocodeOutcome
from src.state.models import (
    ExtractionResult,
    RegistrationState,
    RegistrationStateId,
    StateAnalysis,
    VillageExtraction,
)
from src.state.state_registry import (
    citizen_updates_for,
    get_default_prompt,
    get_next_state,
    get_required_fields,
    get_retry_prompt,
    get_state_name,
)

logger = logging.getLogger(__name__)

# Strictly greater than this to act on a verdict or commit a field
ACCEPTANCE_THRESHOLD = 0.7


class TurnOutcome(str, Enum):
    WELCOMED = "welcomed"
    ADVANCED = "advanced"
    COMPLETED = "completed"
    CLARIFY = "clarify"
    VALIDATION_FAILED = "validation_failed"
    PROVIDER_ERROR = "provider_error"
    INVARIANT_VIOLATION = "invariant_violation"
    STALE_STATE = "stale_state"
    ALREADY_COMPLETED = "already_completed"


class TransitionAudit(BaseModel):
    citizen_id: str
    outcome: TurnOutcome
    from_state: RegistrationStateId | None = None
    to_state: RegistrationStateId | None = None
    analysis: StateAnalysis | None = None
    extraction: dict[str, Any] | None = None
    combined_confidence: float | None = None
    geocode_failure: str | None = None
    escalation_reasons: list[str] = Field(default_factory=list)
    error: str | None = None


class TurnResult(BaseModel):
    reply: str
    should_continue_to_qa: bool = False
    transition_audit: TransitionAudit


def _snapshot(extraction: ExtractionResult | None) -> dict[str, Any] | None:
    return extraction.model_dump(mode="json") if extraction is not None else None


def _with_escalation(reply: str, refreshed: RegistrationState, text: str, language: str) -> tuple[str, list[str]]:
    escalate, reasons = needs_human_contact(refreshed.attempts, refreshed.validation_failures, text)
    if escalate:
        logger.info("Escalating %s to human contact: %s", refreshed.citizen_id, reasons)
        reply += escalation_note(language)
    return reply, reasons


def _clarify(
    citizen_id: str,
    state: RegistrationState,
    text: str,
    language: str,
    analysis: StateAnalysis,
    reason: str,
    extraction: ExtractionResult | None = None,
    confidence: float | None = None,
) -> TurnResult:
    refreshed = record_attempt(
        citizen_id,
        state,
        {"message": text, "analysis": analysis.model_dump(mode="json"), "extraction": _snapshot(extraction)},
        outcome=TurnOutcome.CLARIFY.value,
        confidence=confidence if confidence is not None else analysis.confidence,
    )
    if refreshed is None:
        raise StaleStateError(citizen_id, state.id)

    reply = generate_contextual_reply(
        {
            "state_name": get_state_name(state.state_id),
            "required": get_required_fields(state.state_id),
            "message": text,
            "reason": reason,
        },
        language,
    ) or get_retry_prompt(state.state_id, language)
    reply, reasons = _with_escalation(reply, refreshed, text, language)
    logger.info("Clarifying %s in %s: %s", citizen_id, state.state_id.value, reason)
    return TurnResult(
        reply=reply,
        transition_audit=TransitionAudit(
            citizen_id=citizen_id,
            outcome=TurnOutcome.CLARIFY,
            from_state=state.state_id,
            to_state=state.state_id,
            analysis=analysis,
            extraction=_snapshot(extraction),
            combined_confidence=confidence,
            escalation_reasons=reasons,
        ),
    )


def _validation_failed(
    citizen_id: str,
    state: RegistrationState,
    text: str,
    language: str,
    analysis: StateAnalysis,
    extraction: VillageExtraction,
    geocode: GeocodeOutcome,
) -> TurnResult:
    outage = geocode.reason == GeocodeFailureReason.SERVICE_ERROR
    outcome = TurnOutcome.PROVIDER_ERROR if outage else TurnOutcome.VALIDATION_FAILED
    refreshed = record_attempt(
        citizen_id,
        state,
        {
            "message": text,
            "extraction": _snapshot(extraction),
            "geocode": geocode.model_dump(mode="json"),
        },
        outcome=outcome.value,
        confidence=extraction.confidence,
        count_attempt=False,
        # Outages do not count toward the escalation cap
        validation_failure=not outage,
    )
    if refreshed is None:
        raise StaleStateError(citizen_id, state.id)

    reply, reasons = _with_escalation(geocode.message or get_retry_prompt(state.state_id, language), refreshed, text, language)
    reason = geocode.reason.value if geocode.reason else None
    logger.info("Village %r rejected for %s: %s", extraction.village_name, citizen_id, reason)
    return TurnResult(
        reply=reply,
        transition_audit=TransitionAudit(
            citizen_id=citizen_id,
            outcome=outcome,
            from_state=state.state_id,
            to_state=state.state_id,
            analysis=analysis,
            extraction=_snapshot(extraction),
            geocode_failure=reason,
            escalation_reasons=reasons,
        ),
    )


def _welcome(citizen_id: str, state: RegistrationState, language: str, citizen: CitizenRecord | None) -> TurnResult:
    commit_transition(citizen_id, state, RegistrationStateId.AWAITING_NAME)
    display_name = citizen.display_name if citizen else None
    return TurnResult(
        reply=welcome_message(language, display_name),
        transition_audit=TransitionAudit(
            citizen_id=citizen_id,
            outcome=TurnOutcome.WELCOMED,
            from_state=RegistrationStateId.INITIAL,
            to_state=RegistrationStateId.AWAITING_NAME,
        ),
    )


def _advance(
    citizen_id: str,
    state: RegistrationState,
    language: str,
    analysis: StateAnalysis,
    extraction: ExtractionResult,
    combined: float,
) -> TurnResult:
    next_state = get_next_state(state.state_id)
    if next_state is None:
        raise InvariantViolation(f"No successor for {state.state_id.value}")
    updates = citizen_updates_for(state.state_id, extraction)
    completing = next_state == RegistrationStateId.COMPLETED
    if completing:
        updates.update({"is_registered": True, "registration_completed_at": utc_now_iso()})

    commit_transition(
        citizen_id,
        state,
        next_state,
        extracted_data=_snapshot(extraction),
        citizen_updates=updates,
        final_confidence=combined,
    )
    audit = TransitionAudit(
        citizen_id=citizen_id,
        outcome=TurnOutcome.COMPLETED if completing else TurnOutcome.ADVANCED,
        from_state=state.state_id,
        to_state=next_state,
        analysis=analysis,
        extraction=_snapshot(extraction),
        combined_confidence=combined,
    )
    if completing:
        citizen = get_citizen(citizen_id)
        name = citizen.user_provided_name if citizen else None
        village = citizen.village if citizen else None
        logger.info("Registration completed for %s: %s, %s", citizen_id, name, village)
        return TurnResult(
            reply=completion_message(language, name or "", village or ""),
            should_continue_to_qa=True,
            transition_audit=audit,
        )
    return TurnResult(reply=get_default_prompt(next_state, language), transition_audit=audit)


def _process(citizen_id: str, text: str, language: str, citizen: CitizenRecord | None) -> TurnResult:
    if citizen is None:
        citizen = get_or_create_citizen(citizen_id, language=language)
    state = get_or_create_state(citizen_id, language)
    current = state.state_id

    if current == RegistrationStateId.COMPLETED:
        return TurnResult(
            reply="",
            should_continue_to_qa=True,
            transition_audit=TransitionAudit(
                citizen_id=citizen_id,
                outcome=TurnOutcome.ALREADY_COMPLETED,
                from_state=current,
                to_state=current,
            ),
        )
    if current == RegistrationStateId.INITIAL:
        return _welcome(citizen_id, state, language, citizen)

    analysis = classify(text, current, citizen)
    if not analysis.has_required_data:
        return _clarify(citizen_id, state, text, language, analysis, reason=analysis.reason or "no required data")
    if analysis.confidence <= ACCEPTANCE_THRESHOLD:
        return _clarify(citizen_id, state, text, language, analysis, reason="low classifier confidence")

    extraction = extract(text, current, language)
    if extraction is None:
        return _clarify(citizen_id, state, text, language, analysis, reason="nothing extracted")
    combined = extraction.confidence

    if isinstance(extraction, VillageExtraction):
        geocode = resolve(extraction.village_name, language)
        if not geocode.success:
            return _validation_failed(citizen_id, state, text, language, analysis, extraction, geocode)
        extraction = extraction.model_copy(update={"geocode": geocode})
        combined = min(extraction.confidence, (geocode.confidence or 0.0) / 100)

    if combined <= ACCEPTANCE_THRESHOLD:
        return _clarify(
            citizen_id,
            state,
            text,
            language,
            analysis,
            reason="low extraction confidence",
            extraction=extraction,
            confidence=combined,
        )
    return _advance(citizen_id, state, language, analysis, extraction, combined)


def _technical_issue(citizen_id: str, language: str, outcome: TurnOutcome, error: Exception) -> TurnResult:
    return TurnResult(
        reply=technical_issue_message(language),
        transition_audit=TransitionAudit(citizen_id=citizen_id, outcome=outcome, error=str(error)),
    )


def _stale_state(citizen_id: str, language: str, error: StaleStateError) -> TurnResult:
    """Another message moved the citizen on first; answer for the state that won."""
    try:
        active = get_current_state(citizen_id)
    except Exception as exc:
        logger.exception("Could not reload state for %s", citizen_id)
        return _technical_issue(citizen_id, language, TurnOutcome.PROVIDER_ERROR, exc)
    active_id = active.state_id if active else None
    reply = ""
    if active_id and active_id != RegistrationStateId.COMPLETED:
        reply = get_default_prompt(active_id, language)
    return TurnResult(
        reply=reply,
        transition_audit=TransitionAudit(
            citizen_id=citizen_id,
            outcome=TurnOutcome.STALE_STATE,
            to_state=active_id,
            error=str(error),
        ),
    )


def handle_inbound_message(
    citizen_id: str,
    text: str,
    language: str = "en",
    citizen: CitizenRecord | None = None,
) -> TurnResult:
    """
    Drive one registration turn for `citizen_id`, creating the citizen record on first contact.
    Every failure becomes a reply; a failed turn leaves state and citizen untouched.
    """
    try:
        return _process(citizen_id, text or "", language, citizen)
    except StaleStateError as exc:
        logger.warning("Lost transition race for %s: %s", citizen_id, exc)
        return _stale_state(citizen_id, language, exc)
    except InvariantViolation as exc:
        logger.error("Registration invariant violated for %s: %s", citizen_id, exc)
        return _technical_issue(citizen_id, language, TurnOutcome.INVARIANT_VIOLATION, exc)
    except ProviderError as exc:
        logger.warning("Provider failure for %s: %s", citizen_id, exc)
        return _technical_issue(citizen_id, language, TurnOutcome.PROVIDER_ERROR, exc)
    except Exception as exc:
        logger.exception("Unexpected error handling message from %s", citizen_id)
        return _technical_issue(citizen_id, language, TurnOutcome.PROVIDER_ERROR, exc)
