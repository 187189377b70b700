from __future__ import annotations

import random
from typing import Any, ClassVar

from pydantic import Field, field_validator

from defuse.errors import InvalidEvent
from defuse.modules.base import ModulePuzzle, SubmitResult
from defuse.modules.registry import register_module

WIRE_COLORS: tuple[str, ...] = ("red", "blue", "yellow", "white", "black")


def _last_index(wires: list[str], color: str) -> int:
    return max(i for i, c in enumerate(wires) if c == color)


def wire_to_cut(wires: list[str]) -> int:
    """Return the 0-based index of the wire that defuses the module.

    Rule table by wire count; the first matching rule wins.
    """

    n = len(wires)
    count = {c: wires.count(c) for c in WIRE_COLORS}

    if n == 3:
        if count["red"] == 0:
            return 1
        if wires[-1] == "white":
            return n - 1
        if count["blue"] > 1:
            return _last_index(wires, "blue")
        return n - 1

    if n == 4:
        if count["red"] > 1:
            return _last_index(wires, "red")
        if wires[-1] == "yellow" and count["red"] == 0:
            return 0
        if count["blue"] == 1:
            return 0
        if count["yellow"] > 1:
            return n - 1
        return 1

    if n == 5:
        if wires[-1] == "black":
            return 3
        if count["red"] == 1 and count["yellow"] > 1:
            return 0
        if count["black"] == 0:
            return 1
        return 0

    if n == 6:
        if count["yellow"] == 0:
            return 2
        if count["yellow"] == 1 and count["white"] > 1:
            return 3
        if count["red"] == 0:
            return n - 1
        return 3

    raise ValueError("A wires module has 3 to 6 wires")


@register_module
class WiresModule(ModulePuzzle):
    kind: ClassVar[str] = "wires"
    answer_type: ClassVar[type] = int

    wires: list[str] = Field(..., min_length=3, max_length=6)
    cut: list[int] = Field(default_factory=list)

    @field_validator("wires")
    @classmethod
    def _known_colors(cls, v: list[str]) -> list[str]:
        bad = [c for c in v if c not in WIRE_COLORS]
        if bad:
            raise ValueError(f"Unknown wire colors: {bad}")
        return v

    @classmethod
    def generate(cls, rng: random.Random) -> "WiresModule":
        n = rng.randint(3, 6)
        return cls(wires=[rng.choice(WIRE_COLORS) for _ in range(n)])

    def current_display_state(self) -> dict[str, Any]:
        return {"wires": list(self.wires), "cut": list(self.cut)}

    def coerce_answer(self, raw: Any) -> Any:
        idx = super().coerce_answer(raw)
        if not 0 <= idx < len(self.wires):
            raise InvalidEvent(f"No wire at position {idx}")
        if idx in self.cut:
            raise InvalidEvent(f"Wire {idx} is already cut")
        return idx

    def _evaluate(self, answer: int) -> SubmitResult:
        self.cut.append(answer)
        if answer == wire_to_cut(self.wires):
            return SubmitResult.solved
        return SubmitResult.failed

    def _clear_progress(self) -> None:
        self.cut = []
