from __future__ import annotations

import random
from abc import abstractmethod
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel

from defuse.errors import InvalidEvent


class ModuleStatus(StrEnum):
    unsolved = "unsolved"
    solved = "solved"
    failed = "failed"


class SubmitResult(StrEnum):
    still_unsolved = "still_unsolved"
    solved = "solved"
    failed = "failed"


class ModulePuzzle(BaseModel):
    """Contract every puzzle variant implements.

    The bomb and the state machine only talk to modules through this class:
    - `current_display_state()` for renderers (JSON-safe, read-only)
    - `submit(answer)` to play a move
    - `reset()` to return to a fresh unsolved configuration after a strike

    Variants declare `kind` (registry key) and `answer_type` (payload type accepted by `submit`).
    """

    kind: ClassVar[str] = ""
    answer_type: ClassVar[type] = str

    status: ModuleStatus = ModuleStatus.unsolved

    @classmethod
    @abstractmethod
    def generate(cls, rng: random.Random) -> "ModulePuzzle":
        raise NotImplementedError

    @abstractmethod
    def current_display_state(self) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def _evaluate(self, answer: Any) -> SubmitResult:
        """Apply a coerced answer to the puzzle's progress."""

        raise NotImplementedError

    @abstractmethod
    def _clear_progress(self) -> None:
        raise NotImplementedError

    @property
    def is_solved(self) -> bool:
        return self.status == ModuleStatus.solved

    def coerce_answer(self, raw: Any) -> Any:
        # bool is an int subclass; never accept it as a wire index.
        if isinstance(raw, bool) or not isinstance(raw, self.answer_type):
            raise InvalidEvent(
                f"Module '{self.kind}' expects a {self.answer_type.__name__} answer, got {type(raw).__name__}"
            )
        return raw

    def submit(self, answer: Any) -> SubmitResult:
        if self.is_solved:
            return SubmitResult.solved

        result = self._evaluate(self.coerce_answer(answer))
        if result == SubmitResult.solved:
            self.status = ModuleStatus.solved
        elif result == SubmitResult.failed:
            self.status = ModuleStatus.failed
        return result

    def reset(self) -> None:
        if self.is_solved:
            return
        self._clear_progress()
        self.status = ModuleStatus.unsolved
