from __future__ import annotations

import asyncio
from collections import defaultdict
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class RealtimeHub:
    """In-process fan-out of notification events to connected websocket subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def subscribe(self, recipient_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._subscribers[recipient_id].add(websocket)
        logger.debug("Realtime subscriber connected for %s", recipient_id)

    async def unsubscribe(self, recipient_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._subscribers.get(recipient_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                del self._subscribers[recipient_id]

    def subscriber_count(self, recipient_id: str) -> int:
        return len(self._subscribers.get(recipient_id, ()))

    async def push(self, recipient_id: str, event: dict) -> int:
        async with self._lock:
            targets = list(self._subscribers.get(recipient_id, ()))

        delivered = 0
        for websocket in targets:
            try:
                await websocket.send_json(event)
                delivered += 1
            except Exception:  # pragma: no cover - network/runtime dependent
                await self.unsubscribe(recipient_id, websocket)
                logger.debug("Dropped stale realtime subscriber for %s", recipient_id)
        return delivered


realtime_hub = RealtimeHub()
