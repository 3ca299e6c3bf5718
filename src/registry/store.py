"""Citizen registry: persist citizens, chat log, and the geocoding cache (SQLite)."""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator

from src.schemas import ChatMessage, ChatRole, CitizenRecord, Coordinates, GeocodeOutcome, WhatsAppProfile

logger = logging.getLogger(__name__)

DB_PATH = Path(
    os.environ.get(
        "ZP_DB_PATH",
        str(Path(__file__).resolve().parent.parent.parent / "data" / "zp_assistant.db"),
    )
)
# Seconds a writer waits for the database lock before giving up
BUSY_TIMEOUT_S = 10.0

# Citizen columns writable through apply_citizen_updates
CITIZEN_UPDATABLE = {
    "whatsapp_id",
    "display_name",
    "profile_picture",
    "user_provided_name",
    "is_registered",
    "village",
    "latitude",
    "longitude",
    "taluka",
    "district",
    "geocoding_info",
    "preferred_language",
    "registration_completed_at",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(s: str | None) -> datetime | None:
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


def _ensure_data_dir() -> None:
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)


@contextmanager
def _conn() -> Iterator[sqlite3.Connection]:
    _ensure_data_dir()
    conn = sqlite3.connect(DB_PATH, timeout=BUSY_TIMEOUT_S)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """
    Write transaction that takes the database write lock up front
    (BEGIN IMMEDIATE), so read-check-write sequences inside it are serialized
    against every other writer. Rolls back on any exception.
    """
    _ensure_data_dir()
    conn = sqlite3.connect(DB_PATH, timeout=BUSY_TIMEOUT_S, isolation_level=None)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def init_db() -> None:
    with _conn() as c:
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS citizens (
                whatsapp_number TEXT PRIMARY KEY,
                whatsapp_id TEXT,
                display_name TEXT,
                profile_picture TEXT,
                user_provided_name TEXT,
                is_registered INTEGER NOT NULL DEFAULT 0,
                village TEXT,
                latitude REAL,
                longitude REAL,
                taluka TEXT,
                district TEXT DEFAULT 'Pune',
                geocoding_info_json TEXT,
                preferred_language TEXT,
                registration_started_at TEXT,
                registration_completed_at TEXT,
                created_at TEXT NOT NULL,
                last_active TEXT,
                updated_at TEXT NOT NULL
            )
            """
        )
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS registration_states (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                citizen_id TEXT NOT NULL,
                state_id TEXT NOT NULL,
                state_name TEXT,
                context_json TEXT,
                created_at TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                attempts INTEGER NOT NULL DEFAULT 0,
                validation_failures INTEGER NOT NULL DEFAULT 0,
                last_attempt_at TEXT,
                last_function_call_result_json TEXT,
                completed_at TEXT,
                extracted_data_json TEXT,
                final_confidence REAL,
                transitioned_from TEXT
            )
            """
        )
        # At most one active state per citizen, enforced by the database
        c.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_registration_states_one_active
            ON registration_states (citizen_id) WHERE is_active = 1
            """
        )
        # Append-only audit of every classify/extract/geocode attempt
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS function_calls (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                citizen_id TEXT NOT NULL,
                state_record_id INTEGER,
                state_id TEXT NOT NULL,
                outcome TEXT,
                confidence REAL,
                results_json TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS chats (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                citizen_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                language TEXT,
                state_snapshot_json TEXT,
                extraction_snapshot_json TEXT,
                message_id TEXT,
                message_type TEXT DEFAULT 'text',
                created_at TEXT NOT NULL
            )
            """
        )
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS geocode_cache (
                cache_key TEXT PRIMARY KEY,
                village_name TEXT NOT NULL,
                outcome_json TEXT NOT NULL,
                cached_at TEXT NOT NULL
            )
            """
        )


# --- Citizens ---


def _citizen_from_row(row: sqlite3.Row) -> CitizenRecord:
    coords = None
    if row["latitude"] is not None and row["longitude"] is not None:
        coords = Coordinates(latitude=row["latitude"], longitude=row["longitude"])
    return CitizenRecord(
        whatsapp_number=row["whatsapp_number"],
        whatsapp_id=row["whatsapp_id"],
        display_name=row["display_name"],
        profile_picture=row["profile_picture"],
        user_provided_name=row["user_provided_name"],
        is_registered=bool(row["is_registered"]),
        village=row["village"],
        coordinates=coords,
        taluka=row["taluka"],
        district=row["district"],
        geocoding_info=json.loads(row["geocoding_info_json"] or "{}"),
        preferred_language=row["preferred_language"],
        registration_started_at=row["registration_started_at"],
        registration_completed_at=row["registration_completed_at"],
        created_at=row["created_at"],
        last_active=row["last_active"],
        updated_at=row["updated_at"],
    )


def fetch_citizen(conn: sqlite3.Connection, whatsapp_number: str) -> CitizenRecord | None:
    row = conn.execute(
        "SELECT * FROM citizens WHERE whatsapp_number = ?",
        (whatsapp_number,),
    ).fetchone()
    return _citizen_from_row(row) if row else None


def get_citizen(whatsapp_number: str) -> CitizenRecord | None:
    with _conn() as c:
        return fetch_citizen(c, whatsapp_number)


def get_or_create_citizen(
    whatsapp_number: str,
    profile: WhatsAppProfile | None = None,
    language: str | None = None,
) -> CitizenRecord:
    """Fetch the citizen, refreshing last_active and observed profile; create on first contact."""
    now = utc_now_iso()
    with transaction() as c:
        existing = fetch_citizen(c, whatsapp_number)
        if existing:
            updates: dict[str, Any] = {}
            if profile:
                if profile.display_name and profile.display_name != existing.display_name:
                    updates["display_name"] = profile.display_name
                if profile.whatsapp_id and profile.whatsapp_id != existing.whatsapp_id:
                    updates["whatsapp_id"] = profile.whatsapp_id
                if profile.profile_picture and profile.profile_picture != existing.profile_picture:
                    updates["profile_picture"] = profile.profile_picture
            if language and language != existing.preferred_language:
                updates["preferred_language"] = language
            apply_citizen_updates(c, whatsapp_number, updates)
            c.execute(
                "UPDATE citizens SET last_active = ? WHERE whatsapp_number = ?",
                (now, whatsapp_number),
            )
            return fetch_citizen(c, whatsapp_number)

        c.execute(
            """
            INSERT INTO citizens (
                whatsapp_number, whatsapp_id, display_name, profile_picture,
                is_registered, district, preferred_language,
                registration_started_at, created_at, last_active, updated_at
            ) VALUES (?, ?, ?, ?, 0, 'Pune', ?, ?, ?, ?, ?)
            """,
            (
                whatsapp_number,
                (profile.whatsapp_id if profile else None) or whatsapp_number,
                profile.display_name if profile else None,
                profile.profile_picture if profile else None,
                language,
                now,
                now,
                now,
                now,
            ),
        )
        logger.info("Created citizen record for %s", whatsapp_number)
        return fetch_citizen(c, whatsapp_number)


def apply_citizen_updates(conn: sqlite3.Connection, whatsapp_number: str, updates: dict[str, Any]) -> int:
    """Merge `updates` into the citizen row inside the caller's transaction. Returns rows matched."""
    if not updates:
        return 0
    unknown = set(updates) - CITIZEN_UPDATABLE
    if unknown:
        raise ValueError(f"Not updatable citizen fields: {sorted(unknown)}")
    cols: list[str] = []
    values: list[Any] = []
    for key, value in updates.items():
        if key == "geocoding_info":
            cols.append("geocoding_info_json = ?")
            values.append(json.dumps(value or {}, default=str))
        elif key == "is_registered":
            cols.append("is_registered = ?")
            values.append(1 if value else 0)
        else:
            cols.append(f"{key} = ?")
            values.append(value)
    cols.append("updated_at = ?")
    values.append(utc_now_iso())
    values.append(whatsapp_number)
    cur = conn.execute(
        f"UPDATE citizens SET {', '.join(cols)} WHERE whatsapp_number = ?",
        values,
    )
    return cur.rowcount


# --- Chat log (append-only) ---


def save_chat_message(message: ChatMessage) -> int:
    with _conn() as c:
        cur = c.execute(
            """
            INSERT INTO chats (
                citizen_id, role, content, language, state_snapshot_json,
                extraction_snapshot_json, message_id, message_type, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.citizen_id,
                message.role.value,
                message.content,
                message.language,
                json.dumps(message.state_snapshot, default=str) if message.state_snapshot is not None else None,
                json.dumps(message.extraction_snapshot, default=str) if message.extraction_snapshot is not None else None,
                message.message_id,
                message.message_type,
                message.created_at or utc_now_iso(),
            ),
        )
        return cur.lastrowid


def get_chat_history(whatsapp_number: str, limit: int = 10) -> list[ChatMessage]:
    """Most recent `limit` messages, oldest first."""
    with _conn() as c:
        rows = c.execute(
            "SELECT * FROM chats WHERE citizen_id = ? ORDER BY id DESC LIMIT ?",
            (whatsapp_number, limit),
        ).fetchall()
    out = [
        ChatMessage(
            id=r["id"],
            citizen_id=r["citizen_id"],
            role=ChatRole(r["role"]),
            content=r["content"],
            language=r["language"] or "en",
            state_snapshot=json.loads(r["state_snapshot_json"]) if r["state_snapshot_json"] else None,
            extraction_snapshot=json.loads(r["extraction_snapshot_json"]) if r["extraction_snapshot_json"] else None,
            message_id=r["message_id"],
            message_type=r["message_type"] or "text",
            created_at=r["created_at"],
        )
        for r in rows
    ]
    out.reverse()
    return out


# --- Geocoding cache ---


def geocode_cache_key(village_name: str) -> str:
    return (village_name or "").strip().lower()


def get_cached_geocode(
    village_name: str,
    max_age: timedelta = timedelta(hours=24),
    now: datetime | None = None,
) -> GeocodeOutcome | None:
    """Cached outcome younger than `max_age`; an expired entry is deleted on read."""
    key = geocode_cache_key(village_name)
    now = now or datetime.now(timezone.utc)
    with _conn() as c:
        row = c.execute(
            "SELECT outcome_json, cached_at FROM geocode_cache WHERE cache_key = ?",
            (key,),
        ).fetchone()
        if not row:
            return None
        cached_at = parse_iso(row["cached_at"])
        if cached_at is None or now - cached_at >= max_age:
            c.execute("DELETE FROM geocode_cache WHERE cache_key = ?", (key,))
            logger.info("Evicted expired geocode cache entry for %s", key)
            return None
    return GeocodeOutcome.model_validate_json(row["outcome_json"])


def cache_geocode(village_name: str, outcome: GeocodeOutcome) -> None:
    key = geocode_cache_key(village_name)
    with _conn() as c:
        c.execute(
            """
            INSERT OR REPLACE INTO geocode_cache (cache_key, village_name, outcome_json, cached_at)
            VALUES (?, ?, ?, ?)
            """,
            (key, village_name, outcome.model_dump_json(), outcome.cached_at or utc_now_iso()),
        )
