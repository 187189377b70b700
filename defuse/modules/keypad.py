from __future__ import annotations

import random
from typing import Any, ClassVar

from pydantic import Field, model_validator

from defuse.errors import InvalidEvent
from defuse.modules.base import ModulePuzzle, SubmitResult
from defuse.modules.registry import register_module

# Each column lists symbols in the order they must be pressed.
KEYPAD_COLUMNS: tuple[tuple[str, ...], ...] = (
    ("balloon", "at", "lambda", "lightning", "squid", "hook", "backwards-c"),
    ("euro", "balloon", "backwards-c", "curl", "hollow-star", "hook", "question"),
    ("copyright", "pumpkin", "curl", "double-k", "melted-3", "lambda", "hollow-star"),
    ("six", "paragraph", "bt", "squid", "double-k", "question", "smiley"),
    ("trident", "smiley", "bt", "c", "paragraph", "dragon", "filled-star"),
    ("six", "euro", "railroad", "ae", "trident", "n-with-hat", "omega"),
)

KEYS_PER_MODULE = 4


@register_module
class KeypadModule(ModulePuzzle):
    kind: ClassVar[str] = "keypad"
    answer_type: ClassVar[type] = str

    column: int = Field(..., ge=0, lt=len(KEYPAD_COLUMNS))
    symbols: list[str] = Field(..., min_length=KEYS_PER_MODULE, max_length=KEYS_PER_MODULE)
    pressed: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _symbols_from_column(self) -> "KeypadModule":
        col = KEYPAD_COLUMNS[self.column]
        if any(s not in col for s in self.symbols):
            raise ValueError("Keypad symbols must come from their column")
        if len(set(self.symbols)) != len(self.symbols):
            raise ValueError("Keypad symbols must be distinct")
        return self

    @classmethod
    def generate(cls, rng: random.Random) -> "KeypadModule":
        column = rng.randrange(len(KEYPAD_COLUMNS))
        symbols = rng.sample(KEYPAD_COLUMNS[column], k=KEYS_PER_MODULE)
        return cls(column=column, symbols=symbols)

    @property
    def press_order(self) -> list[str]:
        col = KEYPAD_COLUMNS[self.column]
        return sorted(self.symbols, key=col.index)

    def current_display_state(self) -> dict[str, Any]:
        return {"symbols": list(self.symbols), "pressed": list(self.pressed)}

    def coerce_answer(self, raw: Any) -> Any:
        symbol = super().coerce_answer(raw).strip().casefold()
        if symbol not in self.symbols:
            raise InvalidEvent(f"Symbol '{raw}' is not on this keypad")
        return symbol

    def _evaluate(self, answer: str) -> SubmitResult:
        if answer in self.pressed:
            return SubmitResult.still_unsolved

        expected = self.press_order[len(self.pressed)]
        if answer != expected:
            return SubmitResult.failed

        self.pressed.append(answer)
        if len(self.pressed) == len(self.symbols):
            return SubmitResult.solved
        return SubmitResult.still_unsolved

    def _clear_progress(self) -> None:
        self.pressed = []
