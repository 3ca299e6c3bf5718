import sqlite3

import pytest

import src.registry.store as store
from src.registration.errors import InvariantViolation, StaleStateError
from src.registry.state_store import (
    commit_transition,
    get_current_state,
    get_function_calls,
    get_or_create_state,
    get_state_history,
    is_monotonic,
    record_attempt,
)
from src.registry.store import get_citizen, get_or_create_citizen
from src.state.models import RegistrationStateId

NUMBER = "919800000001"


def _active_count(citizen_id: str) -> int:
    with store._conn() as c:
        return c.execute(
            "SELECT COUNT(*) FROM registration_states WHERE citizen_id = ? AND is_active = 1",
            (citizen_id,),
        ).fetchone()[0]


@pytest.fixture
def citizen():
    return get_or_create_citizen(NUMBER)


def test_first_contact_creates_initial_state(citizen):
    state = get_or_create_state(NUMBER, "en")
    assert state.state_id == RegistrationStateId.INITIAL
    assert state.is_active
    assert get_or_create_state(NUMBER).id == state.id
    assert _active_count(NUMBER) == 1


def test_transition_retires_prior_record(citizen):
    initial = get_or_create_state(NUMBER)
    awaiting_name = commit_transition(NUMBER, initial, RegistrationStateId.AWAITING_NAME)
    assert awaiting_name.transitioned_from == "initial"
    assert get_current_state(NUMBER).id == awaiting_name.id
    history = get_state_history(NUMBER)
    assert [s.state_id for s in history] == [RegistrationStateId.AWAITING_NAME, RegistrationStateId.INITIAL]
    assert history[1].is_active is False
    assert history[1].completed_at
    assert _active_count(NUMBER) == 1


def test_transition_merges_citizen_fields_and_stamps_extraction(citizen):
    state = commit_transition(NUMBER, get_or_create_state(NUMBER), RegistrationStateId.AWAITING_NAME)
    commit_transition(
        NUMBER,
        state,
        RegistrationStateId.AWAITING_VILLAGE,
        extracted_data={"full_name": "Ramesh Patil", "confidence": 0.9},
        citizen_updates={"user_provided_name": "Ramesh Patil"},
        final_confidence=0.9,
    )
    assert get_citizen(NUMBER).user_provided_name == "Ramesh Patil"
    retired = get_state_history(NUMBER)[1]
    assert retired.extracted_data == {"full_name": "Ramesh Patil", "confidence": 0.9}
    assert retired.final_confidence == 0.9


def test_second_commit_from_same_record_is_stale(citizen):
    initial = get_or_create_state(NUMBER)
    commit_transition(NUMBER, initial, RegistrationStateId.AWAITING_NAME)
    with pytest.raises(StaleStateError):
        commit_transition(NUMBER, initial, RegistrationStateId.AWAITING_NAME)
    assert _active_count(NUMBER) == 1
    assert is_monotonic(get_state_history(NUMBER))


def test_skipping_a_state_is_refused(citizen):
    initial = get_or_create_state(NUMBER)
    with pytest.raises(InvariantViolation):
        commit_transition(NUMBER, initial, RegistrationStateId.COMPLETED)
    assert get_current_state(NUMBER).state_id == RegistrationStateId.INITIAL


def test_registration_without_village_rolls_back(citizen):
    state = get_or_create_state(NUMBER)
    for nxt in (RegistrationStateId.AWAITING_NAME, RegistrationStateId.AWAITING_VILLAGE):
        state = commit_transition(NUMBER, state, nxt)
    with pytest.raises(InvariantViolation):
        commit_transition(
            NUMBER,
            state,
            RegistrationStateId.COMPLETED,
            citizen_updates={"is_registered": True},
        )
    assert get_current_state(NUMBER).id == state.id
    assert get_citizen(NUMBER).is_registered is False


def test_database_refuses_a_second_active_record(citizen):
    get_or_create_state(NUMBER)
    with pytest.raises(sqlite3.IntegrityError):
        with store._conn() as c:
            c.execute(
                "INSERT INTO registration_states (citizen_id, state_id, created_at, is_active) VALUES (?, ?, ?, 1)",
                (NUMBER, "awaiting_name", store.utc_now_iso()),
            )


def test_record_attempt_counts_and_audits(citizen):
    state = get_or_create_state(NUMBER)
    state = record_attempt(NUMBER, state, {"message": "ok"}, outcome="clarify", confidence=0.8)
    state = record_attempt(
        NUMBER,
        state,
        {"village": "Mumbai"},
        outcome="validation_failed",
        count_attempt=False,
        validation_failure=True,
    )
    assert state.attempts == 1
    assert state.validation_failures == 1
    assert state.last_function_call_result["outcome"] == "validation_failed"
    calls = get_function_calls(NUMBER)
    assert [c["outcome"] for c in calls] == ["validation_failed", "clarify"]
    assert calls[1]["results"] == {"message": "ok"}


def test_record_attempt_on_superseded_state_returns_none(citizen):
    initial = get_or_create_state(NUMBER)
    commit_transition(NUMBER, initial, RegistrationStateId.AWAITING_NAME)
    assert record_attempt(NUMBER, initial, {}, outcome="clarify") is None
    assert get_current_state(NUMBER).attempts == 0


def test_monotonic_detects_skips():
    from src.state.models import RegistrationState

    def rec(i, sid):
        return RegistrationState(id=i, citizen_id=NUMBER, state_id=sid)

    good = [rec(1, RegistrationStateId.INITIAL), rec(2, RegistrationStateId.AWAITING_NAME)]
    skipped = [rec(1, RegistrationStateId.INITIAL), rec(2, RegistrationStateId.AWAITING_VILLAGE)]
    assert is_monotonic(good)
    assert not is_monotonic(skipped)


def test_citizen_updates_without_a_citizen_record_are_refused():
    state = commit_transition(NUMBER, get_or_create_state(NUMBER), RegistrationStateId.AWAITING_NAME)
    with pytest.raises(InvariantViolation):
        commit_transition(
            NUMBER,
            state,
            RegistrationStateId.AWAITING_VILLAGE,
            citizen_updates={"user_provided_name": "Ramesh Patil"},
        )
    assert get_current_state(NUMBER).id == state.id
    assert get_citizen(NUMBER) is None
