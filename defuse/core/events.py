from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class EventKind(StrEnum):
    select_campaign = "select_campaign"
    select_free_play = "select_free_play"
    choose_section = "choose_section"
    choose_mission = "choose_mission"
    choose_quick_config = "choose_quick_config"
    open_advanced = "open_advanced"
    confirm_config = "confirm_config"
    config_built = "config_built"
    select_module = "select_module"
    submit_answer = "submit_answer"
    back = "back"
    cancel = "cancel"
    reset = "reset"

    # Pseudo-event produced by the driving loop, never by an input source.
    tick = "tick"


@dataclass(frozen=True, slots=True)
class Event:
    """One item on the session queue: discrete input or a clock tick.

    `payload` is validated per kind when the event is handled, not at construction.
    """

    kind: EventKind
    payload: Any = None
    ts: datetime | None = None

    @staticmethod
    def now(kind: EventKind | str, payload: Any = None) -> "Event":
        return Event(kind=EventKind(kind), payload=payload, ts=datetime.now(timezone.utc))

    @staticmethod
    def tick(elapsed: float) -> "Event":
        return Event(kind=EventKind.tick, payload=elapsed)

    @property
    def is_tick(self) -> bool:
        return self.kind == EventKind.tick
