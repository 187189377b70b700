from __future__ import annotations

import os
import time
from collections.abc import Generator

import redis

from defuse.assets.singleton import get_catalog
from defuse.bomb_factory import BombFactory, CatalogBombFactory
from defuse.core.clock import TimeSource

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def create_redis() -> redis.Redis:
    # Sessions and event logs are stored as text; decode so keys/fields come back as str.
    return redis.Redis.from_url(os.environ.get("REDIS_URL", DEFAULT_REDIS_URL), decode_responses=True)


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_factory() -> BombFactory:
    return CatalogBombFactory(catalog=get_catalog())


def get_time_source() -> TimeSource:
    # Wall clock so any API process reads the same timeline for a stored session.
    return time.time
