from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from defuse.bomb import Precedence
from defuse.core.events import EventKind
from defuse.state_machine import SessionSnapshot


class SessionCreateRequest(BaseModel):
    # None => DEFUSE_PRECEDENCE (default failure_first).
    precedence: Precedence | None = None


class EventRequest(BaseModel):
    event: EventKind
    payload: Any = None


class SessionResponse(BaseModel):
    session_id: UUID
    created_at: datetime
    last_updated_at: datetime
    precedence: Precedence
    snapshot: SessionSnapshot


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]


class MissionInfo(BaseModel):
    id: str
    name: str
    module_kinds: list[str]
    time_budget_seconds: int
    strike_limit: int


class SectionInfo(BaseModel):
    id: str
    name: str
    missions: list[MissionInfo] = Field(default_factory=list)


class CatalogResponse(BaseModel):
    sections: list[SectionInfo]
    module_kinds: list[str]
    presets: list[str]


class EventLogEntry(BaseModel):
    id: str
    kind: EventKind
    payload: Any = None
    state: str
    ts: str


class EventLogResponse(BaseModel):
    session_id: UUID
    entries: list[EventLogEntry]
