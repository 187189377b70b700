from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

TimeSource = Callable[[], float]


@dataclass(slots=True)
class Clock:
    """Monotonic stopwatch.

    The only state is the start reference; `elapsed()` is always derived from the time source.
    """

    start: float
    time_source: TimeSource = field(default=time.monotonic, repr=False, compare=False)

    @classmethod
    def started(cls, *, time_source: TimeSource = time.monotonic, offset: float = 0.0) -> "Clock":
        """Start a clock now, optionally pretending `offset` seconds have already passed."""

        if offset < 0:
            raise ValueError("offset must be >= 0")
        return cls(start=time_source() - offset, time_source=time_source)

    def elapsed(self) -> float:
        return max(0.0, self.time_source() - self.start)


class ManualTime:
    """Hand-driven time source for tests and replays."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Time only moves forward")
        self.now += seconds
