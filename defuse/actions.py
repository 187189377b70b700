from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

import redis

from defuse.bomb_factory import BombFactory
from defuse.core.clock import TimeSource
from defuse.core.events import Event
from defuse.game_loop import CycleReport, run_cycle
from defuse.lock import session_lock
from defuse.session_store import StoredSession, load_machine, require_session, store_machine
from defuse.state_machine import SessionSnapshot
from defuse.streams import EventLog, append_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchResult:
    stored: StoredSession
    snapshot: SessionSnapshot
    log_entry_ids: list[str]


def dispatch_events(
    *,
    r: redis.Redis,
    session_id: UUID,
    events: list[Event],
    factory: BombFactory,
    time_source: TimeSource,
) -> DispatchResult:
    """Entry point for remote input sources.

    Applies one loop cycle to a persisted session:
    - acquire the per-session lock
    - load the session and rebuild its state machine
    - run the cycle (discrete events, driver follow-ups, one tick)
    - persist the session and append every applied event to its log

    If any submitted event is rejected the session is still saved (so `last_error` is visible to
    renderers) and the first rejection is re-raised.
    """

    with session_lock(r=r, session_id=str(session_id)):
        stored = require_session(r=r, session_id=session_id)
        machine = load_machine(stored=stored, factory=factory, time_source=time_source)

        report: CycleReport = run_cycle(machine, events)
        store_machine(r=r, stored=stored, machine=machine)

        log = EventLog(session_id=str(session_id))
        ids = [append_event(r=r, log=log, event=e, state=s.value) for e, s in report.handled]

        if report.rejected:
            _, err = report.rejected[0]
            raise err

        return DispatchResult(stored=stored, snapshot=machine.snapshot(), log_entry_ids=ids)


def advance_session_clock(
    *,
    r: redis.Redis,
    session_id: UUID,
    factory: BombFactory,
    time_source: TimeSource,
) -> DispatchResult:
    return dispatch_events(r=r, session_id=session_id, events=[], factory=factory, time_source=time_source)
