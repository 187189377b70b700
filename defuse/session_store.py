from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from uuid import UUID, uuid4

import redis
from pydantic import BaseModel

from defuse.bomb import Precedence
from defuse.bomb_factory import BombFactory
from defuse.core.clock import TimeSource
from defuse.errors import SessionNotFound
from defuse.state_machine import SessionRecord, StateMachine

logger = logging.getLogger(__name__)

SESSIONS_SET_KEY = "defuse:sessions"
SESSION_KEY_PREFIX = "defuse:session:"  # + {uuid}


class StoredSession(BaseModel):
    session_id: UUID
    created_at: datetime
    last_updated_at: datetime
    precedence: Precedence = Precedence.failure_first
    record: SessionRecord = SessionRecord()


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _session_key(session_id: UUID) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def precedence_from_env() -> Precedence:
    raw = os.environ.get("DEFUSE_PRECEDENCE", "").strip().lower()
    if not raw:
        return Precedence.failure_first
    try:
        return Precedence(raw)
    except ValueError as e:
        allowed = ",".join(p.value for p in Precedence)
        raise ValueError(f"DEFUSE_PRECEDENCE must be one of {allowed}, got {raw!r}") from e


def create_session(*, r: redis.Redis, precedence: Precedence | None = None) -> StoredSession:
    now = _now()
    stored = StoredSession(
        session_id=uuid4(),
        created_at=now,
        last_updated_at=now,
        precedence=precedence or precedence_from_env(),
    )
    r.set(_session_key(stored.session_id), stored.model_dump_json())
    r.sadd(SESSIONS_SET_KEY, str(stored.session_id))
    logger.info("Created session %s (precedence=%s)", stored.session_id, stored.precedence.value)
    return stored


def save_session(*, r: redis.Redis, stored: StoredSession) -> None:
    stored.last_updated_at = _now()
    r.set(_session_key(stored.session_id), stored.model_dump_json())


def get_session(*, r: redis.Redis, session_id: UUID) -> StoredSession | None:
    raw = r.get(_session_key(session_id))
    if not raw:
        return None
    return StoredSession.model_validate_json(raw)


def require_session(*, r: redis.Redis, session_id: UUID) -> StoredSession:
    stored = get_session(r=r, session_id=session_id)
    if stored is None:
        raise SessionNotFound("Session not found")
    return stored


def list_sessions(*, r: redis.Redis) -> list[StoredSession]:
    ids = sorted(r.smembers(SESSIONS_SET_KEY))
    out: list[StoredSession] = []
    for sid in ids:
        try:
            session_id = UUID(sid)
        except ValueError:
            continue
        stored = get_session(r=r, session_id=session_id)
        if stored is not None:
            out.append(stored)
    out.sort(key=lambda s: s.created_at, reverse=True)
    return out


def load_machine(*, stored: StoredSession, factory: BombFactory, time_source: TimeSource) -> StateMachine:
    return StateMachine.from_record(
        stored.record,
        factory=factory,
        time_source=time_source,
        precedence=stored.precedence,
    )


def store_machine(*, r: redis.Redis, stored: StoredSession, machine: StateMachine) -> StoredSession:
    stored.record = machine.to_record()
    save_session(r=r, stored=stored)
    return stored
