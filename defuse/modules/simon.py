from __future__ import annotations

import random
from typing import Any, ClassVar

from pydantic import Field, field_validator

from defuse.errors import InvalidEvent
from defuse.modules.base import ModulePuzzle, SubmitResult
from defuse.modules.registry import register_module

SIMON_COLORS: tuple[str, ...] = ("red", "blue", "green", "yellow")

# Flashed colour -> colour the player must press.
SIMON_RESPONSE: dict[str, str] = {
    "red": "yellow",
    "blue": "green",
    "green": "blue",
    "yellow": "red",
}


@register_module
class SimonModule(ModulePuzzle):
    """Simon says: each stage flashes one more colour; echo the mapped colours for all flashes so far."""

    kind: ClassVar[str] = "simon"
    answer_type: ClassVar[type] = str

    sequence: list[str] = Field(..., min_length=3, max_length=5)
    stage: int = Field(1, ge=1)
    entered: list[str] = Field(default_factory=list)

    @field_validator("sequence")
    @classmethod
    def _known_colors(cls, v: list[str]) -> list[str]:
        bad = [c for c in v if c not in SIMON_COLORS]
        if bad:
            raise ValueError(f"Unknown simon colors: {bad}")
        return v

    @classmethod
    def generate(cls, rng: random.Random) -> "SimonModule":
        n = rng.randint(3, 5)
        return cls(sequence=[rng.choice(SIMON_COLORS) for _ in range(n)])

    def current_display_state(self) -> dict[str, Any]:
        return {
            "flashes": self.sequence[: self.stage],
            "stage": self.stage,
            "stages": len(self.sequence),
            "entered": len(self.entered),
        }

    def coerce_answer(self, raw: Any) -> Any:
        color = super().coerce_answer(raw).strip().casefold()
        if color not in SIMON_COLORS:
            raise InvalidEvent(f"Unknown simon color: {raw}")
        return color

    def _evaluate(self, answer: str) -> SubmitResult:
        expected = SIMON_RESPONSE[self.sequence[len(self.entered)]]
        if answer != expected:
            return SubmitResult.failed

        self.entered.append(answer)
        if len(self.entered) < self.stage:
            return SubmitResult.still_unsolved

        if self.stage == len(self.sequence):
            return SubmitResult.solved

        self.stage += 1
        self.entered = []
        return SubmitResult.still_unsolved

    def _clear_progress(self) -> None:
        self.stage = 1
        self.entered = []
