import pytest

import src.registry.store as store
from src.geocoding.provider import GeocodingProviderError
from src.registration import orchestrator
from src.registration.errors import ProviderError
from src.registration.orchestrator import TurnOutcome, handle_inbound_message
from src.registry.state_store import (
    commit_transition,
    get_current_state,
    get_or_create_state,
    get_state_history,
    is_monotonic,
)
from src.registry.store import get_citizen, get_or_create_citizen
from src.schemas import WhatsAppProfile
from src.state.models import RegistrationStateId, StateAnalysis, UserIntent
from src.state.state_registry import get_next_state

NUMBER = "919800000002"


def _at_state(target: RegistrationStateId, name: str = "Ramesh Patil"):
    citizen = get_or_create_citizen(NUMBER)
    state = get_or_create_state(NUMBER)
    while state.state_id != target:
        updates = {"user_provided_name": name} if state.state_id == RegistrationStateId.AWAITING_NAME else None
        state = commit_transition(NUMBER, state, get_next_state(state.state_id), citizen_updates=updates)
    return get_citizen(NUMBER) or citizen


def _send(text: str, language: str = "en"):
    return handle_inbound_message(NUMBER, text, language, get_citizen(NUMBER))


def test_first_message_welcomes_and_asks_for_name():
    get_or_create_citizen(NUMBER, WhatsAppProfile(whatsapp_id=NUMBER, display_name="Ramesh"))
    result = _send("Hi")
    assert result.transition_audit.outcome == TurnOutcome.WELCOMED
    assert "Pune Zilla Panchayat" in result.reply
    assert "Ramesh Sir/Madam" in result.reply
    assert get_current_state(NUMBER).state_id == RegistrationStateId.AWAITING_NAME
    assert get_citizen(NUMBER).user_provided_name is None


def test_welcome_in_marathi():
    get_or_create_citizen(NUMBER)
    result = _send("नमस्कार", language="mr")
    assert "नमस्कार" in result.reply
    assert "पुणे जिल्हा परिषद" in result.reply


def test_name_with_confident_classifier_advances(monkeypatch):
    _at_state(RegistrationStateId.AWAITING_NAME)
    monkeypatch.setattr(
        orchestrator,
        "classify",
        lambda message, state, citizen=None: StateAnalysis(
            current_state=state,
            user_intent=UserIntent.PROVIDING_INFO,
            has_required_data=True,
            next_state=RegistrationStateId.AWAITING_VILLAGE,
            confidence=0.9,
        ),
    )
    result = _send("Ramesh Patil")
    assert result.transition_audit.outcome == TurnOutcome.ADVANCED
    assert get_current_state(NUMBER).state_id == RegistrationStateId.AWAITING_VILLAGE
    assert get_citizen(NUMBER).user_provided_name == "Ramesh Patil"
    assert "village" in result.reply.lower()


def test_village_outside_boundary_stays_put(geocoder):
    _at_state(RegistrationStateId.AWAITING_VILLAGE)
    result = _send("Mumbai")
    assert result.transition_audit.outcome == TurnOutcome.VALIDATION_FAILED
    assert result.reply.startswith(
        "This village is not within Pune Zilla Panchayat boundaries. Please provide a village name from Pune district."
    )
    state = get_current_state(NUMBER)
    assert state.state_id == RegistrationStateId.AWAITING_VILLAGE
    assert state.validation_failures == 1
    assert state.attempts == 0
    assert get_citizen(NUMBER).village is None


def test_ambiguous_reply_increments_attempts_only():
    _at_state(RegistrationStateId.AWAITING_NAME)
    before = get_citizen(NUMBER)
    first = _send("ok")
    second = _send("ok")
    assert first.transition_audit.outcome == TurnOutcome.CLARIFY
    assert second.transition_audit.analysis.has_required_data is False
    assert second.reply.startswith("Sorry, please write your clear and full name.")
    state = get_current_state(NUMBER)
    assert state.state_id == RegistrationStateId.AWAITING_NAME
    assert state.attempts == 2
    after = get_citizen(NUMBER)
    assert after.user_provided_name is None
    assert after.model_dump(exclude={"updated_at", "last_active"}) == before.model_dump(
        exclude={"updated_at", "last_active"}
    )


def test_valid_village_completes_registration(geocoder):
    _at_state(RegistrationStateId.AWAITING_VILLAGE)
    result = _send("Saswad")
    assert result.transition_audit.outcome == TurnOutcome.COMPLETED
    assert result.should_continue_to_qa is True
    assert "Ramesh Patil" in result.reply
    assert "Saswad" in result.reply
    citizen = get_citizen(NUMBER)
    assert citizen.is_registered is True
    assert citizen.village == "Saswad"
    assert citizen.taluka == "Purandar"
    assert citizen.coordinates.latitude == pytest.approx(18.3436)
    assert citizen.registration_completed_at
    assert citizen.geocoding_info["place_id"] == "place-saswad"
    assert get_current_state(NUMBER).state_id == RegistrationStateId.COMPLETED


def test_full_registration_is_monotonic_and_gated(geocoder):
    get_or_create_citizen(NUMBER)
    for text in ("Hello", "ok", "Ramesh", "Ramesh Patil", "Mumbai", "Saswad"):
        _send(text)
    citizen = get_citizen(NUMBER)
    assert citizen.is_registered
    assert (citizen.user_provided_name, citizen.village) == ("Ramesh Patil", "Saswad")
    history = get_state_history(NUMBER)
    assert is_monotonic(history)
    assert [s.state_id for s in reversed(history)] == list(RegistrationStateId)
    for record in history:
        if record.extracted_data:
            assert record.final_confidence > 0.7


def test_completed_citizen_goes_to_qa(geocoder):
    _at_state(RegistrationStateId.COMPLETED)
    result = _send("What schemes are there?")
    assert result.reply == ""
    assert result.should_continue_to_qa is True
    assert result.transition_audit.outcome == TurnOutcome.ALREADY_COMPLETED


def test_single_word_name_is_not_committed():
    _at_state(RegistrationStateId.AWAITING_NAME)
    result = _send("Ramesh")
    assert result.transition_audit.outcome == TurnOutcome.CLARIFY
    assert result.transition_audit.combined_confidence == pytest.approx(0.6)
    assert get_citizen(NUMBER).user_provided_name is None


def test_weak_geocode_match_damps_confidence(geocoder):
    from conftest import make_candidate

    # Provider answers with some other place, so relevance is low
    geocoder.add("Khed", make_candidate("Rajgurunagar", 18.85, 73.88, district="Other", region="Other"))
    _at_state(RegistrationStateId.AWAITING_VILLAGE)
    result = _send("Khed")
    assert result.transition_audit.outcome == TurnOutcome.CLARIFY
    assert result.transition_audit.combined_confidence <= 0.7
    assert get_citizen(NUMBER).village is None


def test_provider_error_leaves_state_untouched(monkeypatch):
    _at_state(RegistrationStateId.AWAITING_NAME)

    def boom(*args, **kwargs):
        raise ProviderError("inference down")

    monkeypatch.setattr(orchestrator, "classify", boom)
    result = _send("Ramesh Patil")
    assert result.reply == "Sorry, technical issue. Please try again."
    assert result.transition_audit.outcome == TurnOutcome.PROVIDER_ERROR
    state = get_current_state(NUMBER)
    assert state.state_id == RegistrationStateId.AWAITING_NAME
    assert state.attempts == 0


def test_unexpected_error_gets_marathi_technical_reply(monkeypatch):
    _at_state(RegistrationStateId.AWAITING_VILLAGE)

    def boom(*args, **kwargs):
        raise KeyError("results")

    monkeypatch.setattr(orchestrator, "extract", boom)
    result = _send("Saswad", language="mr")
    assert result.reply == "क्षमस्व, तांत्रिक समस्या आहे. कृपया पुन्हा प्रयत्न करा."
    assert get_current_state(NUMBER).state_id == RegistrationStateId.AWAITING_VILLAGE


def test_repeated_failures_add_helpline(monkeypatch, geocoder):
    monkeypatch.setenv("ZP_MAX_REGISTRATION_ATTEMPTS", "3")
    monkeypatch.setenv("ZP_HELPLINE", "Call 1800-233-0000")
    _at_state(RegistrationStateId.AWAITING_VILLAGE)
    assert "1800-233-0000" not in _send("Mumbai").reply
    assert "1800-233-0000" not in _send("ok").reply
    third = _send("Mumbai")
    assert "1800-233-0000" in third.reply
    assert "attempt_limit" in third.transition_audit.escalation_reasons
    assert get_current_state(NUMBER).state_id == RegistrationStateId.AWAITING_VILLAGE


def test_lost_transition_race_answers_for_winning_state(monkeypatch):
    _at_state(RegistrationStateId.AWAITING_NAME)
    real_classify = orchestrator.classify

    def racing_classify(message, state, citizen=None):
        # A concurrent message commits first
        commit_transition(
            NUMBER,
            get_current_state(NUMBER),
            RegistrationStateId.AWAITING_VILLAGE,
            citizen_updates={"user_provided_name": "Ramesh Patil"},
        )
        return real_classify(message, state, citizen)

    monkeypatch.setattr(orchestrator, "classify", racing_classify)
    result = _send("Suresh Patil")
    assert result.transition_audit.outcome == TurnOutcome.STALE_STATE
    assert result.reply == "Please tell me your village name (within Pune district)."
    assert get_citizen(NUMBER).user_provided_name == "Ramesh Patil"
    assert is_monotonic(get_state_history(NUMBER))


def test_llm_clarification_is_used_when_available(fake_llm):
    from src.registration.classifier import AnalyzeRegistrationState

    fake_llm(
        {
            AnalyzeRegistrationState: AnalyzeRegistrationState(
                current_state="awaiting_name",
                user_intent="asking_question",
                has_required_data=False,
                next_state="awaiting_village",
                confidence=0.95,
                reason="asked about schemes",
            ),
            "text": "Happy to help with schemes after registration. May I have your full name?",
        }
    )
    _at_state(RegistrationStateId.AWAITING_NAME)
    result = _send("Which schemes do you have?")
    assert result.reply == "Happy to help with schemes after registration. May I have your full name?"
    assert get_current_state(NUMBER).attempts == 1


def test_first_contact_without_citizen_record_registers(geocoder):
    for text in ("Hi", "Ramesh Patil", "Saswad"):
        result = handle_inbound_message(NUMBER, text)
    assert result.transition_audit.outcome == TurnOutcome.COMPLETED
    assert "Congratulations Ramesh Patil" in result.reply
    citizen = get_citizen(NUMBER)
    assert citizen.is_registered is True
    assert (citizen.user_provided_name, citizen.village) == ("Ramesh Patil", "Saswad")


def test_two_active_records_get_technical_reply():
    _at_state(RegistrationStateId.AWAITING_NAME)
    with store._conn() as c:
        c.execute("DROP INDEX idx_registration_states_one_active")
        c.execute(
            "INSERT INTO registration_states (citizen_id, state_id, created_at, is_active) VALUES (?, ?, ?, 1)",
            (NUMBER, "awaiting_village", store.utc_now_iso()),
        )
    result = _send("Ramesh Patil")
    assert result.reply == "Sorry, technical issue. Please try again."
    assert result.transition_audit.outcome == TurnOutcome.INVARIANT_VIOLATION
    assert get_citizen(NUMBER).user_provided_name is None
    with store._conn() as c:
        rows = c.execute(
            "SELECT attempts FROM registration_states WHERE citizen_id = ? AND is_active = 1",
            (NUMBER,),
        ).fetchall()
    assert [r["attempts"] for r in rows] == [0, 0]


def test_geocoding_outage_does_not_count_as_a_failure(geocoder):
    geocoder.error = GeocodingProviderError("OVER_QUERY_LIMIT")
    _at_state(RegistrationStateId.AWAITING_VILLAGE)
    result = _send("Saswad")
    assert result.reply.startswith("Technical issue while searching village. Please try again.")
    assert result.transition_audit.outcome == TurnOutcome.PROVIDER_ERROR
    assert result.transition_audit.geocode_failure == "service_error"
    state = get_current_state(NUMBER)
    assert state.state_id == RegistrationStateId.AWAITING_VILLAGE
    assert (state.attempts, state.validation_failures) == (0, 0)
    assert get_citizen(NUMBER).village is None
