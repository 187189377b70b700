from __future__ import annotations

import os
from pathlib import Path

import pytest

from defuse.core.clock import ManualTime


@pytest.fixture(scope="session", autouse=True)
def _init_catalog_from_test_fixtures() -> None:
    """Initialize the mission catalog from `tests/assets` and forbid the built-in fallback.

    This keeps tests hermetic and prevents coupling to the repo's real campaign.
    """

    os.environ["DEFUSE_STRICT_ASSETS"] = "1"

    from defuse.assets.singleton import init_catalog, reset_catalog_for_tests

    reset_catalog_for_tests()

    # Point the catalog loader at a fake project root: tests/ contains an assets/ dir.
    test_root = Path(__file__).resolve().parent
    init_catalog(project_root=test_root)


@pytest.fixture()
def manual_time() -> ManualTime:
    return ManualTime(1_000.0)


@pytest.fixture()
def client_and_redis(manual_time: ManualTime):
    """FastAPI TestClient backed by fakeredis and a hand-driven session clock."""

    from collections.abc import Generator

    import fakeredis
    from fastapi.testclient import TestClient

    from defuse.api.deps import get_redis, get_time_source
    from defuse.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    app.dependency_overrides[get_time_source] = lambda: manual_time
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
