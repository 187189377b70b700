from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from defuse.bomb import BombModel, BombSnapshot, BombStatus, Precedence
from defuse.bomb_factory import BombFactory
from defuse.core.clock import Clock, TimeSource
from defuse.core.context import PlayMode, SessionContext
from defuse.core.events import Event, EventKind
from defuse.core.validators import parse_payload
from defuse.errors import InvalidEvent, InvalidTransition, LoadFailure, SessionError
from defuse.fsm import FSM_EVENTS, AppState, next_state
from defuse.modules.base import SubmitResult

logger = logging.getLogger(__name__)

# States in which a finished bomb ends the session on the next tick.
_BOMB_STATES = frozenset({AppState.bomb_selection, AppState.bomb_view, AppState.module_active})


class SessionResult(StrEnum):
    win = "win"
    loss = "loss"


class SessionSnapshot(BaseModel):
    """Read-only view handed to renderers once per cycle."""

    state: AppState
    context: SessionContext
    bomb: BombSnapshot | None = None
    addressed_index: int | None = None
    result: SessionResult | None = None
    last_error: str | None = None


class SessionRecord(BaseModel):
    """Everything needed to resume a session."""

    state: AppState = AppState.main_menu
    context: SessionContext = SessionContext()
    bomb: BombModel | None = None
    addressed_index: int | None = None
    result: SessionResult | None = None
    last_error: str | None = None
    load_failed: bool = False
    clock_start: float | None = None

    def to_snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state,
            context=self.context,
            bomb=self.bomb.snapshot() if self.bomb is not None else None,
            addressed_index=self.addressed_index,
            result=self.result,
            last_error=self.last_error,
        )


class StateMachine:
    """Owner of one session: current screen, menu selections, and (once loaded) the bomb.

    All mutation goes through `handle(event)`. A rejected event raises a `SessionError` subclass and
    leaves everything but `last_error` untouched.
    """

    def __init__(
        self,
        *,
        factory: BombFactory,
        time_source: TimeSource = time.monotonic,
        precedence: Precedence = Precedence.failure_first,
    ) -> None:
        self.factory = factory
        self.time_source = time_source
        self.precedence = precedence

        self._state = AppState.main_menu
        self._context = SessionContext()
        self._bomb: BombModel | None = None
        self._addressed: int | None = None
        self._result: SessionResult | None = None
        self.last_error: str | None = None
        self._load_failed = False

    # ---- read access ----

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def bomb(self) -> BombModel | None:
        return self._bomb

    @property
    def addressed_index(self) -> int | None:
        return self._addressed

    @property
    def result(self) -> SessionResult | None:
        return self._result

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            context=self._context,
            bomb=self._bomb.snapshot() if self._bomb is not None else None,
            addressed_index=self._addressed,
            result=self._result,
            last_error=self.last_error,
        )

    # ---- event handling ----

    def handle(self, event: Event) -> AppState:
        try:
            if event.is_tick:
                self._on_tick(parse_payload(event.kind, event.payload))
            else:
                self._on_discrete(event)
                self.last_error = None
                self._load_failed = False
        except SessionError as e:
            self.last_error = str(e)
            if isinstance(e, LoadFailure):
                self._load_failed = True
            logger.info("Rejected %s in %s: %s", event.kind.value, self._state.value, e)
            raise
        return self._state

    def advance_clock(self) -> AppState:
        """Tick the bomb by however much its clock moved since the last applied tick."""

        tick = self.clock_tick()
        if tick is None:
            return self._state
        return self.handle(tick)

    def clock_tick(self) -> Event | None:
        bomb = self._bomb
        if bomb is None or bomb.clock is None:
            return None
        return Event.tick(max(0.0, bomb.clock.elapsed() - bomb.elapsed))

    def pending_events(self) -> list[Event]:
        """Follow-up events the driver should feed back in (Loading builds the bomb on its own)."""

        if self._state == AppState.loading and not self._load_failed:
            return [Event.now(EventKind.config_built)]
        return []

    def _on_discrete(self, event: Event) -> None:
        fsm_event = FSM_EVENTS.get(event.kind)
        if fsm_event is None:
            raise InvalidEvent(f"Unsupported event: {event.kind}")

        target = next_state(self._state, fsm_event)
        value = parse_payload(event.kind, event.payload)

        handler = getattr(self, f"_apply_{event.kind.value}")
        handler(value, target)

        logger.debug("%s --%s--> %s", self._state.value, event.kind.value, target.value)
        self._state = target

    def _on_tick(self, elapsed: float) -> None:
        bomb = self._bomb
        if bomb is None:
            return

        status = bomb.tick(elapsed)
        if status == BombStatus.arming or self._state not in _BOMB_STATES:
            return

        won = status == BombStatus.defused
        target = next_state(self._state, "bomb_defused" if won else "bomb_exploded")
        self._result = SessionResult.win if won else SessionResult.loss
        self._addressed = None
        logger.info("Session over: %s (strikes=%d, remaining=%.1fs)", self._result.value, bomb.strikes, bomb.remaining)
        self._state = target

    # ---- side effects, one per discrete event ----
    # Each handler validates everything before assigning, so a raise never leaves partial changes.

    def _apply_select_campaign(self, _: None, target: AppState) -> None:
        self._context = SessionContext().with_mode(PlayMode.campaign)

    def _apply_select_free_play(self, _: None, target: AppState) -> None:
        self._context = SessionContext().with_mode(PlayMode.free_play)

    def _apply_choose_section(self, section_id: str, target: AppState) -> None:
        if not self.factory.has_section(section_id):
            raise InvalidEvent(f"Unknown section: {section_id}")
        self._context = self._context.with_section(section_id)

    def _apply_choose_mission(self, mission_id: str, target: AppState) -> None:
        self._context = self._context.with_mission(mission_id).lock()

    def _apply_choose_quick_config(self, config: Any, target: AppState) -> None:
        self._context = self._context.with_free_play(config).lock()

    def _apply_open_advanced(self, _: None, target: AppState) -> None:
        pass

    def _apply_confirm_config(self, config: Any, target: AppState) -> None:
        self._context = self._context.with_free_play(config).lock()

    def _apply_config_built(self, _: None, target: AppState) -> None:
        try:
            spec = self.factory.build(self._context)
        except LoadFailure:
            raise
        except (ValueError, RuntimeError) as e:
            raise LoadFailure(str(e)) from e

        try:
            bomb = BombModel(
                modules=spec.modules,
                time_budget_seconds=spec.time_budget_seconds,
                strike_limit=spec.strike_limit,
                seed=spec.seed,
                precedence=self.precedence,
            )
        except ValueError as e:
            raise LoadFailure(f"Invalid bomb configuration: {e}") from e

        bomb.attach_clock(Clock.started(time_source=self.time_source))
        self._bomb = bomb
        self._addressed = None
        logger.info(
            "Bomb armed: %d modules, %.0fs, %d strikes allowed",
            len(bomb.modules),
            bomb.time_budget_seconds,
            bomb.strike_limit,
        )

    def _apply_select_module(self, index: int, target: AppState) -> None:
        bomb = self._require_bomb()
        bomb.addressed_module(index)
        self._addressed = index

    def _apply_submit_answer(self, answer: Any, target: AppState) -> None:
        bomb = self._require_bomb()
        if self._addressed is None:
            raise InvalidTransition("No module is addressed")
        index = self._addressed
        module = bomb.addressed_module(index)

        # Validate before anything mutates.
        module.coerce_answer(answer)

        if not bomb.accepts_input():
            logger.info("Answer for module %d ignored: bomb no longer accepts input", index)
            return

        result = module.submit(answer)
        if result == SubmitResult.failed:
            bomb.report_failure(index)
        elif result == SubmitResult.solved:
            bomb.report_success(index)

    def _apply_back(self, _: None, target: AppState) -> None:
        if target == AppState.main_menu:
            self._context = SessionContext()
        elif target == AppState.section_select:
            self._context = self._context.with_section(None)
        elif target == AppState.bomb_selection:
            self._addressed = None

    def _apply_cancel(self, _: None, target: AppState) -> None:
        self._discard_session()

    def _apply_reset(self, _: None, target: AppState) -> None:
        self._discard_session()

    def _discard_session(self) -> None:
        self._context = SessionContext()
        self._bomb = None
        self._addressed = None
        self._result = None

    def _require_bomb(self) -> BombModel:
        if self._bomb is None:
            raise InvalidTransition("No bomb is loaded")
        return self._bomb

    # ---- persistence ----

    def to_record(self) -> SessionRecord:
        bomb = self._bomb
        return SessionRecord(
            state=self._state,
            context=self._context,
            bomb=bomb.model_copy(deep=True) if bomb is not None else None,
            addressed_index=self._addressed,
            result=self._result,
            last_error=self.last_error,
            load_failed=self._load_failed,
            clock_start=bomb.clock.start if bomb is not None and bomb.clock is not None else None,
        )

    @classmethod
    def from_record(
        cls,
        record: SessionRecord,
        *,
        factory: BombFactory,
        time_source: TimeSource = time.monotonic,
        precedence: Precedence = Precedence.failure_first,
    ) -> "StateMachine":
        machine = cls(factory=factory, time_source=time_source, precedence=precedence)
        machine._state = record.state
        machine._context = record.context
        machine._bomb = record.bomb
        machine._addressed = record.addressed_index
        machine._result = record.result
        machine.last_error = record.last_error
        machine._load_failed = record.load_failed
        if machine._bomb is not None and record.clock_start is not None:
            machine._bomb.attach_clock(_resume_clock(record.clock_start, machine._bomb.elapsed, time_source))
        return machine


def _resume_clock(start: float, applied: float, time_source: TimeSource) -> Clock:
    """Reattach a stored clock, rebasing it when the source reads earlier than the applied time."""

    if time_source() - start >= applied:
        return Clock(start=start, time_source=time_source)
    # Different host or reboot: the stored start means nothing to this source.
    logger.warning("Clock source is behind the stored start; rebasing at %.1fs elapsed", applied)
    return Clock.started(time_source=time_source, offset=applied)


def replay(
    events: Iterable[Event],
    *,
    factory: BombFactory,
    time_source: TimeSource = time.monotonic,
    precedence: Precedence = Precedence.failure_first,
) -> StateMachine:
    """Fold `events` over a fresh session. Raises on the first rejected event."""

    machine = StateMachine(factory=factory, time_source=time_source, precedence=precedence)
    for event in events:
        machine.handle(event)
    return machine
