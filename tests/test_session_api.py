from __future__ import annotations

from typing import Any

import fakeredis
import pytest
from fastapi.testclient import TestClient

from defuse.core.clock import ManualTime
from defuse.modules.wires import wire_to_cut

Client = tuple[TestClient, fakeredis.FakeRedis]


def _create(client: TestClient, **body: Any) -> dict[str, Any]:
    resp = client.post("/session", json=body)
    assert resp.status_code == 201
    return resp.json()


def _send(client: TestClient, session_id: str, event: str, payload: Any = None, *, status: int = 200) -> dict[str, Any]:
    resp = client.post(f"/session/{session_id}/events", json={"event": event, "payload": payload})
    assert resp.status_code == status, resp.text
    return resp.json()


def _arm_single_wire(client: TestClient, session_id: str) -> dict[str, Any]:
    _send(client, session_id, "select_campaign")
    _send(client, session_id, "choose_section", "test-section")
    return _send(client, session_id, "choose_mission", "single-wire")


def test_healthcheck_and_info(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    assert client.get("/healthcheck").json() == {"status": "ok"}
    assert client.get("/info").json()["name"] == "defuse-trainer"


def test_missions_listing(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    data = client.get("/missions").json()

    assert [s["id"] for s in data["sections"]] == ["test-section", "test-hardcore"]
    first = data["sections"][0]["missions"][0]
    assert first == {
        "id": "single-wire",
        "name": "Single Wire",
        "module_kinds": ["wires"],
        "time_budget_seconds": 60,
        "strike_limit": 3,
    }
    assert data["module_kinds"] == ["keypad", "simon", "wires"]
    assert data["presets"] == ["easy", "hard", "normal"]


def test_create_get_and_list_sessions(client_and_redis: Client) -> None:
    client, r = client_and_redis

    a = _create(client)
    assert a["snapshot"]["state"] == "main_menu"
    assert a["snapshot"]["bomb"] is None
    assert a["precedence"] == "failure_first"

    b = _create(client, precedence="solve_first")
    assert b["precedence"] == "solve_first"

    got = client.get(f"/session/{a['session_id']}").json()
    assert got["session_id"] == a["session_id"]

    listed = client.get("/session").json()["sessions"]
    assert {s["session_id"] for s in listed} == {a["session_id"], b["session_id"]}
    assert r.sismember("defuse:sessions", a["session_id"])


def test_create_without_body(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    resp = client.post("/session")
    assert resp.status_code == 201


def test_unknown_session_is_404(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    missing = "00000000-0000-0000-0000-000000000000"
    assert client.get(f"/session/{missing}").status_code == 404
    assert client.post(f"/session/{missing}/events", json={"event": "select_campaign"}).status_code == 404
    assert client.post(f"/session/{missing}/tick").status_code == 404
    assert client.get(f"/session/{missing}/log").status_code == 404


def test_campaign_win_over_http(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]

    armed = _arm_single_wire(client, sid)
    snap = armed["snapshot"]
    # Loading builds the bomb within the same cycle.
    assert snap["state"] == "bomb_selection"
    assert snap["context"]["locked"] is True
    bomb = snap["bomb"]
    assert bomb["status"] == "arming"
    assert bomb["remaining_seconds"] == 60.0
    assert [m["kind"] for m in bomb["modules"]] == ["wires"]

    wires = bomb["modules"][0]["display"]["wires"]
    _send(client, sid, "select_module", 0)
    done = _send(client, sid, "submit_answer", wire_to_cut(wires))["snapshot"]

    assert done["state"] == "game_over"
    assert done["result"] == "win"
    assert done["bomb"]["status"] == "defused"

    _send(client, sid, "select_module", 0, status=409)
    back = _send(client, sid, "reset")["snapshot"]
    assert back["state"] == "main_menu"
    assert back["bomb"] is None


def test_clock_runs_out_over_http(client_and_redis: Client, manual_time: ManualTime) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]
    _arm_single_wire(client, sid)

    manual_time.advance(30.0)
    half = client.post(f"/session/{sid}/tick").json()["snapshot"]
    assert half["state"] == "bomb_selection"
    assert half["bomb"]["remaining_seconds"] == 30.0

    # Reading a session does not move its clock.
    manual_time.advance(31.0)
    assert client.get(f"/session/{sid}").json()["snapshot"]["bomb"]["remaining_seconds"] == 30.0

    over = client.post(f"/session/{sid}/tick").json()["snapshot"]
    assert over["state"] == "game_over"
    assert over["result"] == "loss"
    assert over["bomb"]["remaining_seconds"] == 0.0


@pytest.mark.parametrize(
    ("event", "payload", "status"),
    [
        ("choose_section", "test-section", 409),  # not valid from main_menu
        ("select_campaign", "please", 422),
        ("tick", 1.0, 422),
        ("explode", None, 422),
    ],
)
def test_rejected_events(client_and_redis: Client, event: str, payload: Any, status: int) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]
    _send(client, sid, event, payload, status=status)

    snap = client.get(f"/session/{sid}").json()["snapshot"]
    assert snap["state"] == "main_menu"


def test_unknown_section_is_rejected_on_the_menu(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]
    _send(client, sid, "select_campaign")

    detail = _send(client, sid, "choose_section", "hardcore", status=422)["detail"]
    assert "Unknown section" in detail

    snap = client.get(f"/session/{sid}").json()["snapshot"]
    assert snap["state"] == "section_select"
    assert snap["context"]["section_id"] is None
    assert snap["last_error"] == detail


def test_out_of_range_module_is_recorded(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]
    _arm_single_wire(client, sid)

    resp = client.post(f"/session/{sid}/events", json={"event": "select_module", "payload": 5})
    assert resp.status_code == 422
    assert "out of range" in resp.json()["detail"]

    snap = client.get(f"/session/{sid}").json()["snapshot"]
    assert snap["state"] == "bomb_selection"
    assert "out of range" in snap["last_error"]

    # The next accepted event clears it.
    assert _send(client, sid, "select_module", 0)["snapshot"]["last_error"] is None


def test_load_failure_keeps_loading_until_cancel(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]
    _send(client, sid, "select_campaign")
    _send(client, sid, "choose_section", "test-hardcore")
    _send(client, sid, "choose_mission", "no-such-mission", status=422)

    snap = client.get(f"/session/{sid}").json()["snapshot"]
    assert snap["state"] == "loading"
    assert "Unknown mission" in snap["last_error"]

    # No retry loop: ticking leaves the session where it is.
    assert client.post(f"/session/{sid}/tick").json()["snapshot"]["state"] == "loading"

    assert _send(client, sid, "cancel")["snapshot"]["state"] == "main_menu"


def test_busy_session_is_423(client_and_redis: Client) -> None:
    client, r = client_and_redis
    sid = _create(client)["session_id"]

    r.set(f"lock:session:{sid}", "1")
    _send(client, sid, "select_free_play", status=423)

    r.delete(f"lock:session:{sid}")
    assert _send(client, sid, "select_free_play")["snapshot"]["state"] == "free_play_menu"


def test_free_play_over_http(client_and_redis: Client) -> None:
    client, _ = client_and_redis
    sid = _create(client)["session_id"]
    _send(client, sid, "select_free_play")
    _send(client, sid, "open_advanced")
    _send(client, sid, "confirm_config", {"module_count": 11}, status=200)

    snap = client.get(f"/session/{sid}").json()["snapshot"]
    assert snap["state"] == "bomb_selection"
    assert len(snap["bomb"]["modules"]) == 11
    assert snap["context"]["free_play"]["module_count"] == 11


def test_event_log(client_and_redis: Client, manual_time: ManualTime) -> None:
    client, r = client_and_redis
    sid = _create(client)["session_id"]
    _arm_single_wire(client, sid)
    _send(client, sid, "select_module", 3, status=422)

    manual_time.advance(30.0)
    client.post(f"/session/{sid}/tick")
    manual_time.advance(10_000.0)
    assert client.post(f"/session/{sid}/tick").json()["snapshot"]["state"] == "game_over"

    data = client.get(f"/session/{sid}/log").json()
    kinds = [(e["kind"], e["state"]) for e in data["entries"]]
    assert kinds == [
        ("select_campaign", "section_select"),
        ("choose_section", "mission_select"),
        ("choose_mission", "loading"),
        ("config_built", "bomb_selection"),
        ("tick", "game_over"),
    ]
    assert data["entries"][1]["payload"] == "test-section"
    assert data["entries"][-1]["payload"] == pytest.approx(10_000.0)
    assert len(r.xrange(f"events:{sid}")) == 5

    assert client.get(f"/session/{sid}/log", params={"count": 0}).status_code == 422
