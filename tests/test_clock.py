from __future__ import annotations

import pytest

from defuse.core.clock import Clock, ManualTime


def test_clock_elapsed_follows_time_source() -> None:
    t = ManualTime(50.0)
    clock = Clock.started(time_source=t)
    assert clock.elapsed() == 0.0

    t.advance(2.5)
    assert clock.elapsed() == pytest.approx(2.5)

    # Only the start reference is stored.
    assert clock.start == 50.0


def test_clock_offset_and_clamp() -> None:
    t = ManualTime(10.0)
    assert Clock.started(time_source=t, offset=4.0).elapsed() == pytest.approx(4.0)

    # A start in the future (e.g. restored on another host) never reports negative time.
    assert Clock(start=20.0, time_source=t).elapsed() == 0.0

    with pytest.raises(ValueError):
        Clock.started(time_source=t, offset=-1.0)


def test_manual_time_only_moves_forward() -> None:
    t = ManualTime()
    t.advance(0)
    with pytest.raises(ValueError):
        t.advance(-0.1)
    assert t() == 0.0
