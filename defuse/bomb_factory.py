from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Protocol

from defuse.assets.registry import MissionCatalog
from defuse.core.context import PlayMode, SessionContext
from defuse.errors import LoadFailure
from defuse.modules.base import ModulePuzzle
from defuse.modules.registry import generate_module, registered_kinds

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BombSpec:
    """Everything needed to arm a bomb: the modules plus the time/strike budget."""

    modules: list[ModulePuzzle]
    time_budget_seconds: float
    strike_limit: int
    seed: int


class BombFactory(Protocol):
    def build(self, context: SessionContext) -> BombSpec:  # pragma: no cover
        ...

    def has_section(self, section_id: str) -> bool:  # pragma: no cover
        ...


def _draw_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def build_modules(*, kinds: list[str] | tuple[str, ...], rng: random.Random) -> list[ModulePuzzle]:
    return [generate_module(kind, rng) for kind in kinds]


@dataclass(frozen=True, slots=True)
class CatalogBombFactory:
    """Builds campaign bombs from the mission catalog and free-play bombs from their config."""

    catalog: MissionCatalog

    def has_section(self, section_id: str) -> bool:
        return self.catalog.has_section(section_id)

    def build(self, context: SessionContext) -> BombSpec:
        if context.mode == PlayMode.campaign:
            return self._build_mission(context)
        if context.mode == PlayMode.free_play:
            return self._build_free_play(context)
        raise LoadFailure("No play mode selected")

    def _build_mission(self, context: SessionContext) -> BombSpec:
        if not context.mission_id:
            raise LoadFailure("No mission selected")

        mission_id = self.catalog.resolve_id(context.mission_id)
        mission = self.catalog.get(mission_id) if mission_id else None
        if mission is None:
            raise LoadFailure(f"Unknown mission: {context.mission_id}")
        if context.section_id and mission.section_id != context.section_id:
            raise LoadFailure(f"Mission {mission.id} is not part of section {context.section_id}")

        seed = _draw_seed()
        rng = random.Random(seed)
        try:
            modules = build_modules(kinds=mission.module_kinds, rng=rng)
        except ValueError as e:
            raise LoadFailure(str(e)) from e

        logger.info("Built mission %s with %d modules (seed=%d)", mission.id, len(modules), seed)
        return BombSpec(
            modules=modules,
            time_budget_seconds=float(mission.time_budget_seconds),
            strike_limit=mission.strike_limit,
            seed=seed,
        )

    def _build_free_play(self, context: SessionContext) -> BombSpec:
        cfg = context.free_play
        if cfg is None:
            raise LoadFailure("No free play configuration recorded")

        kinds = list(cfg.module_kinds or registered_kinds())
        if not kinds:
            raise LoadFailure("No module kinds available")

        seed = cfg.seed if cfg.seed is not None else _draw_seed()
        rng = random.Random(seed)
        picked = [rng.choice(kinds) for _ in range(cfg.module_count)]
        try:
            modules = build_modules(kinds=picked, rng=rng)
        except ValueError as e:
            raise LoadFailure(str(e)) from e

        logger.info("Built free play bomb with %d modules (seed=%d)", len(modules), seed)
        return BombSpec(
            modules=modules,
            time_budget_seconds=float(cfg.time_budget_seconds),
            strike_limit=cfg.strike_limit,
            seed=seed,
        )
