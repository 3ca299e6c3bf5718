"""
State Store: one active registration state per citizen plus an append-only history.
Transitions commit as a single transaction: prior record → inactive (stamped with
the extracted data), citizen fields merged, next record inserted.
"""

import json
import logging
import sqlite3
from typing import Any

from src.registration.errors import InvariantViolation, StaleStateError
from src.registry.store import _conn, apply_citizen_updates, fetch_citizen, transaction, utc_now_iso
from src.state.models import RegistrationState, RegistrationStateId
from src.state.state_registry import STATE_ORDER, get_state_name, is_forward_transition

logger = logging.getLogger(__name__)


def _loads(raw: str | None) -> Any:
    return json.loads(raw) if raw else None


def _state_from_row(row: sqlite3.Row) -> RegistrationState:
    return RegistrationState(
        id=row["id"],
        citizen_id=row["citizen_id"],
        state_id=RegistrationStateId(row["state_id"]),
        state_name=row["state_name"],
        context=_loads(row["context_json"]) or {},
        created_at=row["created_at"],
        is_active=bool(row["is_active"]),
        attempts=row["attempts"],
        validation_failures=row["validation_failures"],
        last_attempt_at=row["last_attempt_at"],
        last_function_call_result=_loads(row["last_function_call_result_json"]),
        completed_at=row["completed_at"],
        extracted_data=_loads(row["extracted_data_json"]),
        final_confidence=row["final_confidence"],
        transitioned_from=row["transitioned_from"],
    )


def _fetch_active(conn: sqlite3.Connection, citizen_id: str) -> RegistrationState | None:
    rows = conn.execute(
        "SELECT * FROM registration_states WHERE citizen_id = ? AND is_active = 1 ORDER BY id DESC",
        (citizen_id,),
    ).fetchall()
    if len(rows) > 1:
        raise InvariantViolation(f"{len(rows)} active state records for {citizen_id}")
    return _state_from_row(rows[0]) if rows else None


def _insert_state(
    conn: sqlite3.Connection,
    citizen_id: str,
    state_id: RegistrationStateId,
    context: dict[str, Any],
    transitioned_from: str | None = None,
) -> int:
    cur = conn.execute(
        """
        INSERT INTO registration_states (
            citizen_id, state_id, state_name, context_json, created_at,
            is_active, attempts, validation_failures, transitioned_from
        ) VALUES (?, ?, ?, ?, ?, 1, 0, 0, ?)
        """,
        (
            citizen_id,
            state_id.value,
            get_state_name(state_id),
            json.dumps(context, default=str),
            utc_now_iso(),
            transitioned_from,
        ),
    )
    return cur.lastrowid


def get_current_state(citizen_id: str) -> RegistrationState | None:
    """The citizen's active state record. Raises InvariantViolation if more than one is active."""
    with _conn() as c:
        return _fetch_active(c, citizen_id)


def get_or_create_state(citizen_id: str, language: str | None = None) -> RegistrationState:
    """Active state, creating `initial` on first contact. Safe against a concurrent create."""
    with transaction() as c:
        current = _fetch_active(c, citizen_id)
        if current:
            return current
        record_id = _insert_state(
            c,
            citizen_id,
            RegistrationStateId.INITIAL,
            {"language": language, "session_id": f"{citizen_id}_{utc_now_iso()}"},
        )
        logger.info("Created state record initial for %s", citizen_id)
        row = c.execute("SELECT * FROM registration_states WHERE id = ?", (record_id,)).fetchone()
        return _state_from_row(row)


def record_attempt(
    citizen_id: str,
    state: RegistrationState,
    result: dict[str, Any],
    *,
    outcome: str,
    confidence: float | None = None,
    count_attempt: bool = True,
    validation_failure: bool = False,
) -> RegistrationState | None:
    """
    Note a non-advancing turn on the active record and append it to the audit trail.
    Returns the refreshed record, or None if the state was superseded meanwhile.
    """
    now = utc_now_iso()
    payload = {"executed_at": now, "outcome": outcome, "confidence": confidence, "results": result}
    with transaction() as c:
        cur = c.execute(
            """
            UPDATE registration_states
            SET attempts = attempts + ?,
                validation_failures = validation_failures + ?,
                last_attempt_at = ?,
                last_function_call_result_json = ?
            WHERE id = ? AND is_active = 1
            """,
            (
                1 if count_attempt else 0,
                1 if validation_failure else 0,
                now,
                json.dumps(payload, default=str),
                state.id,
            ),
        )
        c.execute(
            """
            INSERT INTO function_calls (
                citizen_id, state_record_id, state_id, outcome, confidence, results_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (citizen_id, state.id, state.state_id.value, outcome, confidence, json.dumps(result, default=str), now),
        )
        if cur.rowcount == 0:
            logger.warning("Attempt for %s recorded against superseded state %s", citizen_id, state.id)
            return None
        row = c.execute("SELECT * FROM registration_states WHERE id = ?", (state.id,)).fetchone()
        return _state_from_row(row)


def commit_transition(
    citizen_id: str,
    current: RegistrationState,
    next_state: RegistrationStateId,
    extracted_data: dict[str, Any] | None = None,
    citizen_updates: dict[str, Any] | None = None,
    final_confidence: float | None = None,
) -> RegistrationState:
    """
    Atomically retire `current` and activate `next_state`.
    Raises StaleStateError if `current` is no longer the active record, and
    InvariantViolation for a non-forward move or a registered citizen missing name/village.
    """
    if not is_forward_transition(current.state_id, next_state):
        raise InvariantViolation(f"Illegal transition {current.state_id.value} → {next_state.value} for {citizen_id}")
    extracted_data = extracted_data or {}
    now = utc_now_iso()
    with transaction() as c:
        cur = c.execute(
            """
            UPDATE registration_states
            SET is_active = 0, completed_at = ?, extracted_data_json = ?, final_confidence = ?
            WHERE id = ? AND citizen_id = ? AND is_active = 1
            """,
            (now, json.dumps(extracted_data, default=str), final_confidence, current.id, citizen_id),
        )
        if cur.rowcount != 1:
            raise StaleStateError(citizen_id, current.id)

        if citizen_updates:
            if apply_citizen_updates(c, citizen_id, citizen_updates) != 1:
                raise InvariantViolation(f"No citizen record for {citizen_id} to apply {sorted(citizen_updates)}")
            citizen = fetch_citizen(c, citizen_id)
            if citizen.is_registered and not (citizen.user_provided_name and citizen.village):
                raise InvariantViolation(f"{citizen_id} marked registered without name and village")

        context = {
            **(current.context or {}),
            "previous_state": current.state_id.value,
            "extracted_data": extracted_data,
            "transition_timestamp": now,
        }
        record_id = _insert_state(c, citizen_id, next_state, context, transitioned_from=current.state_id.value)
        row = c.execute("SELECT * FROM registration_states WHERE id = ?", (record_id,)).fetchone()
    logger.info("Completed state transition: %s → %s for %s", current.state_id.value, next_state.value, citizen_id)
    return _state_from_row(row)


def get_state_history(citizen_id: str, limit: int = 10) -> list[RegistrationState]:
    """Most recent first."""
    with _conn() as c:
        rows = c.execute(
            "SELECT * FROM registration_states WHERE citizen_id = ? ORDER BY id DESC LIMIT ?",
            (citizen_id, limit),
        ).fetchall()
    return [_state_from_row(r) for r in rows]


def get_function_calls(citizen_id: str, limit: int = 20) -> list[dict[str, Any]]:
    with _conn() as c:
        rows = c.execute(
            "SELECT * FROM function_calls WHERE citizen_id = ? ORDER BY id DESC LIMIT ?",
            (citizen_id, limit),
        ).fetchall()
    return [
        {
            "id": r["id"],
            "state_record_id": r["state_record_id"],
            "state_id": r["state_id"],
            "outcome": r["outcome"],
            "confidence": r["confidence"],
            "results": _loads(r["results_json"]),
            "created_at": r["created_at"],
        }
        for r in rows
    ]


def is_monotonic(history: list[RegistrationState]) -> bool:
    """True if the committed state ids, oldest first, walk the fixed order without skips or repeats."""
    ids = [s.state_id for s in sorted(history, key=lambda s: s.id or 0)]
    if not ids:
        return True
    start = STATE_ORDER.index(ids[0])
    return ids == STATE_ORDER[start : start + len(ids)]
