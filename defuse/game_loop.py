from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from defuse.core.events import Event
from defuse.errors import SessionError
from defuse.fsm import AppState
from defuse.state_machine import SessionSnapshot, StateMachine

logger = logging.getLogger(__name__)


class InputSource(Protocol):
    async def next_events(self, *, timeout: float) -> list[Event] | None:  # pragma: no cover
        """Wait up to `timeout` seconds; return the events that arrived ([] if none, None at end of input)."""
        ...


class Renderer(Protocol):
    async def render(self, snapshot: SessionSnapshot) -> None:  # pragma: no cover
        ...


@dataclass(frozen=True, slots=True)
class LoopConfig:
    # How often the loop wakes up to tick the clock when no input arrives.
    tick_interval: float = 0.1
    stop_on_game_over: bool = True
    # Safety valve for tests/headless runs.
    max_cycles: int | None = None

    @staticmethod
    def from_env() -> "LoopConfig":
        raw = os.environ.get("DEFUSE_TICK_INTERVAL_MS", "").strip()
        if not raw:
            return LoopConfig()
        try:
            ms = int(raw)
        except ValueError as e:
            raise ValueError(f"DEFUSE_TICK_INTERVAL_MS must be an integer, got {raw!r}") from e
        if ms <= 0:
            raise ValueError("DEFUSE_TICK_INTERVAL_MS must be > 0")
        return LoopConfig(tick_interval=ms / 1000.0)


@dataclass(slots=True)
class CycleReport:
    # Applied events with the state each one led to.
    handled: list[tuple[Event, AppState]] = field(default_factory=list)
    rejected: list[tuple[Event, SessionError]] = field(default_factory=list)


_CLOSED = object()


class QueueInput:
    """InputSource fed from code (tests, remote adapters).

    Everything queued before a wake-up is delivered as one batch.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    def put(self, event: Event) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSED)

    async def next_events(self, *, timeout: float) -> list[Event] | None:
        if self._closed:
            return None
        try:
            first = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return []

        batch: list[Event] = []
        item = first
        while True:
            if item is _CLOSED:
                self._closed = True
                return batch or None
            batch.append(item)  # type: ignore[arg-type]
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return batch


def run_cycle(machine: StateMachine, events: Iterable[Event]) -> CycleReport:
    """One loop iteration: discrete events (each followed by driver follow-ups), then one tick.

    Rejected events are logged and kept on the machine (`last_error`); they never abort the cycle.
    """

    report = CycleReport()

    def _apply(event: Event) -> None:
        try:
            machine.handle(event)
        except SessionError as e:
            report.rejected.append((event, e))
        else:
            report.handled.append((event, machine.state))

    def _follow_ups() -> None:
        for event in machine.pending_events():
            _apply(event)

    _follow_ups()
    for event in events:
        if event.is_tick:
            logger.warning("Ignoring tick from an input source; ticks come from the clock")
            continue
        _apply(event)
        _follow_ups()

    tick = machine.clock_tick()
    if tick is not None:
        before = machine.state
        # Ticks are recorded only when they change the state.
        if machine.handle(tick) != before:
            report.handled.append((tick, machine.state))
    return report


async def run_session(
    machine: StateMachine,
    inputs: InputSource,
    renderer: Renderer,
    config: LoopConfig | None = None,
) -> SessionSnapshot:
    """Drive a session until GameOver (or end of input), rendering once per cycle."""

    cfg = config or LoopConfig()
    cycles = 0

    await renderer.render(machine.snapshot())

    while True:
        events = await inputs.next_events(timeout=cfg.tick_interval)
        if events is None:
            logger.info("Input closed in state %s", machine.state.value)
            break

        report = run_cycle(machine, events)
        for event, err in report.rejected:
            logger.debug("Cycle rejected %s: %s", event.kind.value, err)

        snapshot = machine.snapshot()
        await renderer.render(snapshot)

        cycles += 1
        if cfg.stop_on_game_over and machine.state == AppState.game_over:
            break
        if cfg.max_cycles is not None and cycles >= cfg.max_cycles:
            break

    return machine.snapshot()
