from __future__ import annotations

from pathlib import Path

import pytest

from defuse.assets.registry import AssetLoadError, load_mission_catalog, load_missions_csv

TEST_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TEST_ROOT.parent


def _write(root: Path, text: str) -> Path:
    (root / "assets").mkdir(parents=True, exist_ok=True)
    path = root / "assets" / "missions.csv"
    path.write_text(text, encoding="utf-8")
    return path


def test_test_catalog_loads() -> None:
    catalog = load_missions_csv(TEST_ROOT / "assets" / "missions.csv")

    assert [s.id for s in catalog.sections] == ["test-section", "test-hardcore"]
    assert catalog.sections[0].name == "Test Section"
    assert catalog.has_section("test-hardcore")
    assert not catalog.has_section("hardcore")

    mission = catalog.get("keypad-and-simon")
    assert mission is not None
    assert mission.module_kinds == ("keypad", "simon")
    assert mission.time_budget_seconds == 120
    assert mission.strike_limit == 2

    # Name lookups are forgiving (case + whitespace).
    assert catalog.resolve_id("  SUDDEN   death ") == "sudden-death"
    assert catalog.resolve_id("single-wire") == "single-wire"
    assert catalog.resolve_id("nope") is None
    assert [m.id for m in catalog.missions_in("test-section")] == ["single-wire", "keypad-and-simon"]


def test_repo_catalog_loads() -> None:
    catalog = load_missions_csv(REPO_ROOT / "assets" / "missions.csv")
    assert catalog.get("first-bomb") is not None
    assert len(catalog.sections) >= 2


def test_missing_ids_are_slugged(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "id,section,name,modules,time_budget_seconds,strike_limit\n"
        ",Warm Up,Cut The Wire!,wires,60,3\n",
    )
    catalog = load_missions_csv(path)
    assert catalog.get("cut-the-wire") is not None
    assert catalog.sections[0].id == "warm-up"


def test_spreadsheet_export_is_read(tmp_path: Path) -> None:
    # BOM, CRLF line endings and a quoted name with a comma.
    path = _write(tmp_path, "")
    path.write_bytes(
        b"\xef\xbb\xbfid,section,name,modules,time_budget_seconds,strike_limit\r\n"
        b'two-step,Warm Up,"Wires, Then Keypad",wires;keypad,90,2\r\n'
    )
    catalog = load_missions_csv(path)

    mission = catalog.get("two-step")
    assert mission is not None
    assert mission.name == "Wires, Then Keypad"
    assert mission.module_kinds == ("wires", "keypad")
    assert mission.strike_limit == 2


@pytest.mark.parametrize(
    "body",
    [
        "",
        "id,section,title,modules,time_budget_seconds,strike_limit\n",
        "id,section,name,modules,time_budget_seconds,strike_limit\na,S,A,button,60,3\n",
        "id,section,name,modules,time_budget_seconds,strike_limit\na,S,A,,60,3\n",
        "id,section,name,modules,time_budget_seconds,strike_limit\na,S,A,wires,soon,3\n",
        "id,section,name,modules,time_budget_seconds,strike_limit\na,S,A,wires,60,0\n",
        "id,section,name,modules,time_budget_seconds,strike_limit\na,S,A,wires,60,3\na,S,B,wires,60,3\n",
    ],
)
def test_bad_csv_is_rejected(tmp_path: Path, body: str) -> None:
    path = _write(tmp_path, body)
    with pytest.raises(AssetLoadError):
        load_missions_csv(path)


def test_missing_csv_falls_back_unless_strict(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEFUSE_STRICT_ASSETS", "0")
    catalog = load_mission_catalog(root=tmp_path)
    assert catalog.get("first-bomb") is not None
    assert [s.id for s in catalog.sections] == ["introduction", "double-your-money"]

    monkeypatch.setenv("DEFUSE_STRICT_ASSETS", "1")
    with pytest.raises(AssetLoadError):
        load_mission_catalog(root=tmp_path)
