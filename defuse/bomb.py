from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr, field_serializer, field_validator

from defuse.core.clock import Clock
from defuse.errors import OutOfRange
from defuse.modules.base import ModulePuzzle, ModuleStatus
from defuse.modules.registry import module_from_dict, module_to_dict

logger = logging.getLogger(__name__)


class BombStatus(StrEnum):
    arming = "arming"
    defused = "defused"
    exploded = "exploded"


class Precedence(StrEnum):
    """Who wins when a solve and a failure condition land at the same boundary.

    - failure_first: explosion conditions are checked before defusal, and a solve that arrives once
      the clock has already passed the deadline (but before the tick applied it) is not credited.
    - solve_first: defusal is checked first and solves are credited against the last applied time.
    """

    failure_first = "failure_first"
    solve_first = "solve_first"


class ModuleSnapshot(BaseModel):
    index: int
    kind: str
    status: ModuleStatus
    display: dict[str, Any]


class BombSnapshot(BaseModel):
    status: BombStatus
    strikes: int
    strike_limit: int
    time_budget_seconds: float
    remaining_seconds: float
    modules: list[ModuleSnapshot]


class BombModel(BaseModel):
    modules: list[ModulePuzzle]
    time_budget_seconds: float = Field(..., gt=0)
    strike_limit: int = Field(..., ge=1)

    strikes: int = 0
    elapsed: float = 0.0
    status: BombStatus = BombStatus.arming

    # For reproducibility/debugging.
    seed: int | None = None

    precedence: Precedence = Precedence.failure_first

    _clock: Clock | None = PrivateAttr(default=None)

    @field_validator("modules", mode="before")
    @classmethod
    def _rebuild_modules(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        out = [module_from_dict(m) if isinstance(m, dict) else m for m in v]
        if not out:
            raise ValueError("A bomb needs at least one module")
        return out

    @field_serializer("modules")
    def _dump_modules(self, modules: list[ModulePuzzle]) -> list[dict[str, Any]]:
        return [module_to_dict(m) for m in modules]

    # ---- derived state ----

    @property
    def remaining(self) -> float:
        return max(0.0, self.time_budget_seconds - self.elapsed)

    @property
    def is_terminal(self) -> bool:
        return self.status != BombStatus.arming

    @property
    def all_solved(self) -> bool:
        return all(m.is_solved for m in self.modules)

    @property
    def clock(self) -> Clock | None:
        return self._clock

    def attach_clock(self, clock: Clock) -> None:
        self._clock = clock

    def deadline_passed(self) -> bool:
        """True when the clock says time is up, even if no tick has applied it yet."""

        if self.remaining <= 0:
            return True
        return self._clock is not None and self._clock.elapsed() >= self.time_budget_seconds

    def accepts_input(self) -> bool:
        if self.is_terminal:
            return False
        if self.precedence == Precedence.failure_first and self.deadline_passed():
            return False
        return True

    def addressed_module(self, index: int) -> ModulePuzzle:
        if not 0 <= index < len(self.modules):
            raise OutOfRange(f"Module index {index} out of range (bomb has {len(self.modules)} modules)")
        return self.modules[index]

    # ---- mutations ----

    def tick(self, elapsed: float) -> BombStatus:
        if elapsed < 0:
            raise ValueError("elapsed must be >= 0")
        if self.is_terminal or elapsed == 0:
            return self.status

        self.elapsed = min(self.time_budget_seconds, self.elapsed + elapsed)
        return self._recompute()

    def report_failure(self, index: int) -> BombStatus:
        module = self.addressed_module(index)
        if self.is_terminal:
            return self.status

        self.strikes += 1
        logger.info("Strike %d/%d on module %d (%s)", self.strikes, self.strike_limit, index, module.kind)

        status = self._recompute()
        if status == BombStatus.arming:
            module.reset()
        return status

    def report_success(self, index: int) -> BombStatus:
        module = self.addressed_module(index)
        if self.is_terminal:
            return self.status

        module.status = ModuleStatus.solved
        return self._recompute()

    def _recompute(self) -> BombStatus:
        if self.is_terminal:
            return self.status

        exploded = self.remaining <= 0 or self.strikes >= self.strike_limit
        defused = self.all_solved

        if self.precedence == Precedence.failure_first:
            order = ((exploded, BombStatus.exploded), (defused, BombStatus.defused))
        else:
            order = ((defused, BombStatus.defused), (exploded, BombStatus.exploded))

        for hit, status in order:
            if hit:
                self.status = status
                logger.info("Bomb %s (strikes=%d, remaining=%.1fs)", status.value, self.strikes, self.remaining)
                break
        return self.status

    def snapshot(self) -> BombSnapshot:
        return BombSnapshot(
            status=self.status,
            strikes=self.strikes,
            strike_limit=self.strike_limit,
            time_budget_seconds=self.time_budget_seconds,
            remaining_seconds=self.remaining,
            modules=[
                ModuleSnapshot(index=i, kind=m.kind, status=m.status, display=m.current_display_state())
                for i, m in enumerate(self.modules)
            ],
        )
