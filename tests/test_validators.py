from __future__ import annotations

import math

import pytest

from defuse.core.context import FREE_PLAY_PRESETS, FreePlayConfig, PlayMode, SessionContext
from defuse.core.events import EventKind
from defuse.core.validators import DEFAULT_PAYLOAD_VALIDATORS, parse_payload
from defuse.errors import InvalidEvent


def test_every_event_has_a_validator() -> None:
    assert set(DEFAULT_PAYLOAD_VALIDATORS) == set(EventKind)


@pytest.mark.parametrize(
    ("kind", "payload", "expected"),
    [
        (EventKind.select_campaign, None, None),
        (EventKind.back, {}, None),
        (EventKind.choose_section, "  test-section ", "test-section"),
        (EventKind.select_module, 2, 2),
        (EventKind.submit_answer, "Hook", "Hook"),
        (EventKind.submit_answer, 0, 0),
        (EventKind.tick, 1, 1.0),
        (EventKind.choose_quick_config, "HARD", FREE_PLAY_PRESETS["hard"]),
    ],
)
def test_payloads_accepted(kind: EventKind, payload: object, expected: object) -> None:
    assert parse_payload(kind, payload) == expected


@pytest.mark.parametrize(
    ("kind", "payload"),
    [
        (EventKind.select_free_play, "x"),
        (EventKind.choose_mission, None),
        (EventKind.choose_mission, "   "),
        (EventKind.select_module, "1"),
        (EventKind.select_module, False),
        (EventKind.select_module, 1.0),
        (EventKind.submit_answer, None),
        (EventKind.submit_answer, ["red"]),
        (EventKind.tick, -0.5),
        (EventKind.tick, math.inf),
        (EventKind.tick, "1"),
        (EventKind.choose_quick_config, 3),
        (EventKind.confirm_config, {"time_budget_seconds": 5}),
    ],
)
def test_payloads_rejected(kind: EventKind, payload: object) -> None:
    with pytest.raises(InvalidEvent):
        parse_payload(kind, payload)


def test_confirm_config_builds_free_play_config() -> None:
    cfg = parse_payload(EventKind.confirm_config, {"module_count": 6, "seed": 5, "module_kinds": ["simon"]})
    assert isinstance(cfg, FreePlayConfig)
    assert cfg.module_count == 6
    assert cfg.module_kinds == ("simon",)
    assert cfg.strike_limit == 3

    same = FreePlayConfig(module_count=6)
    assert parse_payload(EventKind.confirm_config, same) is same


def test_session_context_is_frozen_once_locked() -> None:
    ctx = SessionContext().with_mode(PlayMode.campaign).with_section("intro").with_mission("m1")
    assert ctx.with_section("other").mission_id is None

    locked = ctx.lock()
    assert locked.locked
    assert not ctx.locked
    with pytest.raises(ValueError):
        locked.with_mission("m2")
    with pytest.raises(ValueError):
        locked.lock()
