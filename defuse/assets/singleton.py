from __future__ import annotations

from pathlib import Path

from defuse.assets.registry import MissionCatalog, load_mission_catalog


_CATALOG: MissionCatalog | None = None


def init_catalog(*, project_root: Path) -> MissionCatalog:
    """Load the mission catalog once and cache it.

    Safe to call multiple times; subsequent calls return the already loaded instance.
    """

    global _CATALOG
    if _CATALOG is None:
        _CATALOG = load_mission_catalog(root=project_root)
    return _CATALOG


def reset_catalog_for_tests() -> None:
    global _CATALOG
    _CATALOG = None


def get_catalog() -> MissionCatalog:
    if _CATALOG is None:
        raise RuntimeError("Mission catalog not initialized. Call init_catalog() at startup.")
    return _CATALOG
