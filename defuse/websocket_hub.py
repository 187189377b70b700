from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

from defuse.state_machine import SessionSnapshot

logger = logging.getLogger(__name__)


def snapshot_message(session_id: str, snapshot: SessionSnapshot) -> dict[str, Any]:
    """The frame a renderer receives: the full per-cycle snapshot, JSON-safe."""

    return {
        "type": "session_updated",
        "session_id": session_id,
        "snapshot": snapshot.model_dump(mode="json"),
    }


class RendererHub:
    """Pushes session snapshots to the WebSocket renderers watching each session.

    A renderer gets the current snapshot as soon as it connects and a fresh one after every applied
    cycle, so it never has to poll. In-process only; several API replicas would need Redis pub/sub.
    """

    def __init__(self) -> None:
        self._renderers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def attach(self, session_id: str, websocket: WebSocket, current: SessionSnapshot) -> None:
        await websocket.accept()
        await websocket.send_json(snapshot_message(session_id, current))
        async with self._lock:
            self._renderers[session_id].add(websocket)

    async def detach(self, session_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            watching = self._renderers.get(session_id)
            if watching is None:
                return
            watching.discard(websocket)
            if not watching:
                del self._renderers[session_id]

    async def publish(self, session_id: str, snapshot: SessionSnapshot) -> None:
        async with self._lock:
            targets = list(self._renderers.get(session_id, ()))
        if not targets:
            return

        message = snapshot_message(session_id, snapshot)
        gone: list[WebSocket] = []
        for ws in targets:
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.debug("Dropping renderer for session %s: %s", session_id, e)
                gone.append(ws)

        for ws in gone:
            await self.detach(session_id, ws)


hub = RendererHub()
