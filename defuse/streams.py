from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, cast

import redis

from defuse.core.events import Event, EventKind


@dataclass(frozen=True, slots=True)
class EventLog:
    """Append-only stream of the events applied to one session."""

    session_id: str

    @property
    def key(self) -> str:
        return f"events:{self.session_id}"


@dataclass(frozen=True, slots=True)
class LoggedEvent:
    entry_id: str
    kind: EventKind
    payload: Any
    state: str
    ts: str

    def to_event(self) -> Event:
        return Event(kind=self.kind, payload=self.payload, ts=datetime.fromisoformat(self.ts))


def append_event(*, r: redis.Redis, log: EventLog, event: Event, state: str) -> str:
    """Record an applied event and the state it led to."""

    ts = event.ts or datetime.now(tz=UTC)
    fields = {
        "kind": event.kind.value,
        "payload": json.dumps(event.payload, default=str),
        "state": state,
        "ts": ts.isoformat(),
    }
    stream_id = r.xadd(log.key, fields)
    return cast(str, stream_id)


def read_events(*, r: redis.Redis, log: EventLog, count: int | None = None) -> list[LoggedEvent]:
    entries = r.xrange(log.key, min="-", max="+", count=count)
    out: list[LoggedEvent] = []
    for entry_id, fields in entries:
        out.append(
            LoggedEvent(
                entry_id=entry_id,
                kind=EventKind(fields["kind"]),
                payload=json.loads(fields.get("payload") or "null"),
                state=fields.get("state", ""),
                ts=fields.get("ts", ""),
            )
        )
    return out
