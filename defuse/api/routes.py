from __future__ import annotations

from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from defuse.actions import DispatchResult, advance_session_clock, dispatch_events
from defuse.api.deps import get_factory, get_redis, get_time_source
from defuse.api.models import (
    CatalogResponse,
    EventLogEntry,
    EventLogResponse,
    EventRequest,
    MissionInfo,
    SectionInfo,
    SessionCreateRequest,
    SessionListResponse,
    SessionResponse,
)
from defuse.assets.singleton import get_catalog
from defuse.bomb_factory import BombFactory
from defuse.core.clock import TimeSource
from defuse.core.context import FREE_PLAY_PRESETS
from defuse.core.events import Event, EventKind
from defuse.errors import InvalidTransition, SessionError, SessionNotFound
from defuse.lock import SessionBusy
from defuse.modules.registry import registered_kinds
from defuse.session_store import StoredSession, create_session, list_sessions, require_session
from defuse.state_machine import SessionSnapshot
from defuse.streams import EventLog, read_events
from defuse.websocket_hub import hub

router = APIRouter()

# Application close code for a renderer that asks for a session that does not exist.
WS_SESSION_NOT_FOUND = 4404


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, SessionNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, SessionBusy):
        return HTTPException(status_code=status.HTTP_423_LOCKED, detail=str(e))
    if isinstance(e, InvalidTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def _to_response(stored: StoredSession, snapshot: SessionSnapshot) -> SessionResponse:
    return SessionResponse(
        session_id=stored.session_id,
        created_at=stored.created_at,
        last_updated_at=stored.last_updated_at,
        precedence=stored.precedence,
        snapshot=snapshot,
    )


def _stored_snapshot(stored: StoredSession) -> SessionSnapshot:
    # Read-only view of the persisted record; the clock is not advanced here.
    return stored.record.to_snapshot()


async def _publish(session_id: UUID, snapshot: SessionSnapshot) -> None:
    await hub.publish(str(session_id), snapshot)


@router.websocket("/ws/session/{session_id}")
async def session_updates_ws(websocket: WebSocket, session_id: UUID, r: redis.Redis = Depends(get_redis)) -> None:
    try:
        stored = require_session(r=r, session_id=session_id)
    except SessionNotFound:
        await websocket.close(code=WS_SESSION_NOT_FOUND)
        return

    sid = str(session_id)
    await hub.attach(sid, websocket, _stored_snapshot(stored))
    try:
        # Renderers only listen; anything they send is ignored.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.detach(sid, websocket)
    except Exception:
        await hub.detach(sid, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/missions", response_model=CatalogResponse)
async def missions_route() -> CatalogResponse:
    catalog = get_catalog()
    sections = [
        SectionInfo(
            id=section.id,
            name=section.name,
            missions=[
                MissionInfo(
                    id=m.id,
                    name=m.name,
                    module_kinds=list(m.module_kinds),
                    time_budget_seconds=m.time_budget_seconds,
                    strike_limit=m.strike_limit,
                )
                for m in catalog.missions_in(section.id)
            ],
        )
        for section in catalog.sections
    ]
    return CatalogResponse(
        sections=sections,
        module_kinds=list(registered_kinds()),
        presets=sorted(FREE_PLAY_PRESETS),
    )


@router.post("/session", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    payload: SessionCreateRequest | None = None,
    r: redis.Redis = Depends(get_redis),
) -> SessionResponse:
    try:
        stored = create_session(r=r, precedence=payload.precedence if payload else None)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    snapshot = _stored_snapshot(stored)
    await _publish(stored.session_id, snapshot)
    return _to_response(stored, snapshot)


@router.get("/session", response_model=SessionListResponse)
async def list_sessions_route(r: redis.Redis = Depends(get_redis)) -> SessionListResponse:
    return SessionListResponse(sessions=[_to_response(s, _stored_snapshot(s)) for s in list_sessions(r=r)])


@router.get("/session/{session_id}", response_model=SessionResponse)
async def get_session_route(session_id: UUID, r: redis.Redis = Depends(get_redis)) -> SessionResponse:
    try:
        stored = require_session(r=r, session_id=session_id)
    except SessionNotFound as e:
        raise _http_error(e) from e
    return _to_response(stored, _stored_snapshot(stored))


@router.post("/session/{session_id}/events", response_model=SessionResponse)
async def post_event_route(
    session_id: UUID,
    payload: EventRequest,
    r: redis.Redis = Depends(get_redis),
    factory: BombFactory = Depends(get_factory),
    time_source: TimeSource = Depends(get_time_source),
) -> SessionResponse:
    if payload.event == EventKind.tick:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="tick is driven by the session clock; use POST /session/{id}/tick",
        )

    event = Event.now(payload.event, payload.payload)
    try:
        result: DispatchResult = dispatch_events(
            r=r,
            session_id=session_id,
            events=[event],
            factory=factory,
            time_source=time_source,
        )
    except (SessionError, SessionNotFound, SessionBusy) as e:
        if not isinstance(e, (SessionNotFound, SessionBusy)):
            # The rejection is recorded on the session (last_error); renderers show it.
            await _publish(session_id, _stored_snapshot(require_session(r=r, session_id=session_id)))
        raise _http_error(e) from e

    await _publish(session_id, result.snapshot)
    return _to_response(result.stored, result.snapshot)


@router.post("/session/{session_id}/tick", response_model=SessionResponse)
async def tick_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    factory: BombFactory = Depends(get_factory),
    time_source: TimeSource = Depends(get_time_source),
) -> SessionResponse:
    try:
        result = advance_session_clock(r=r, session_id=session_id, factory=factory, time_source=time_source)
    except (SessionError, SessionNotFound, SessionBusy) as e:
        raise _http_error(e) from e

    await _publish(session_id, result.snapshot)
    return _to_response(result.stored, result.snapshot)


@router.get("/session/{session_id}/log", response_model=EventLogResponse)
async def session_log_route(
    session_id: UUID,
    count: int = 100,
    r: redis.Redis = Depends(get_redis),
) -> EventLogResponse:
    """Debug endpoint: the events applied to a session, oldest first."""

    if count < 1 or count > 1000:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 1000")
    try:
        require_session(r=r, session_id=session_id)
    except SessionNotFound as e:
        raise _http_error(e) from e

    entries = read_events(r=r, log=EventLog(session_id=str(session_id)), count=count)
    return EventLogResponse(
        session_id=session_id,
        entries=[
            EventLogEntry(id=e.entry_id, kind=e.kind, payload=e.payload, state=e.state, ts=e.ts)
            for e in entries
        ],
    )
