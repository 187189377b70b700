from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from defuse.modules.registry import registered_kinds


class PlayMode(StrEnum):
    campaign = "campaign"
    free_play = "free_play"


class FreePlayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    module_count: int = Field(3, ge=1, le=11)
    time_budget_seconds: int = Field(300, ge=30, le=3600)
    strike_limit: int = Field(3, ge=1, le=9)

    # None => a seed is drawn when the bomb is built and recorded on the bomb.
    seed: int | None = None

    # None => every registered module kind may appear.
    module_kinds: tuple[str, ...] | None = None

    @field_validator("module_kinds")
    @classmethod
    def _known_kinds(cls, v: tuple[str, ...] | None) -> tuple[str, ...] | None:
        if v is None:
            return None
        if not v:
            raise ValueError("module_kinds must not be empty")
        unknown = sorted(set(v) - set(registered_kinds()))
        if unknown:
            raise ValueError(f"Unknown module kinds: {','.join(unknown)}")
        return v


FREE_PLAY_PRESETS: dict[str, FreePlayConfig] = {
    "easy": FreePlayConfig(module_count=3, time_budget_seconds=600, strike_limit=5),
    "normal": FreePlayConfig(module_count=5, time_budget_seconds=300, strike_limit=3),
    "hard": FreePlayConfig(module_count=8, time_budget_seconds=240, strike_limit=1),
}


class SessionContext(BaseModel):
    """Menu selections accumulated on the way to Loading.

    Immutable: every `with_*` returns a new context. Once `locked` (entering Loading) no further
    updates are accepted.
    """

    model_config = ConfigDict(frozen=True)

    mode: PlayMode | None = None
    section_id: str | None = None
    mission_id: str | None = None
    free_play: FreePlayConfig | None = None
    locked: bool = False

    def _update(self, **changes: object) -> "SessionContext":
        if self.locked:
            raise ValueError("Session context is locked")
        return self.model_copy(update=changes)

    def with_mode(self, mode: PlayMode) -> "SessionContext":
        return self._update(mode=mode)

    def with_section(self, section_id: str | None) -> "SessionContext":
        return self._update(section_id=section_id, mission_id=None)

    def with_mission(self, mission_id: str) -> "SessionContext":
        return self._update(mission_id=mission_id)

    def with_free_play(self, config: FreePlayConfig) -> "SessionContext":
        return self._update(free_play=config)

    def lock(self) -> "SessionContext":
        return self._update(locked=True)
