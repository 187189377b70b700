from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import redis

logger = logging.getLogger(__name__)

# Longer than any single cycle; a crashed writer frees the session after this.
SESSION_LOCK_TTL_MS = 5_000


class SessionBusy(RuntimeError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} is busy")
        self.session_id = session_id


def lock_key(session_id: str) -> str:
    return f"lock:session:{session_id}"


@contextmanager
def session_lock(*, r: redis.Redis, session_id: str, ttl_ms: int = SESSION_LOCK_TTL_MS) -> Iterator[str]:
    """Make the caller the only writer of `session_id` for the duration of the block.

    The lock value is a per-holder token. On exit the key is deleted only if it still holds that
    token, so a writer whose lock expired cannot release the next writer's lock.
    """

    key = lock_key(session_id)
    token = uuid.uuid4().hex
    if not r.set(key, token, nx=True, px=ttl_ms):
        raise SessionBusy(session_id)
    try:
        yield token
    finally:
        if r.get(key) == token:
            r.delete(key)
        else:
            logger.warning("Lock on session %s expired before the cycle finished", session_id)
