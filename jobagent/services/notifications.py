from __future__ import annotations

from functools import lru_cache
import logging
from typing import Protocol

from fastapi import WebSocket
from pydantic import BaseModel

from jobagent.schemas.events import ConnectedEvent, SessionEvent

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    async def broadcast(self, event: SessionEvent) -> None: ...


class Broadcaster:
    """Fan-out of session events to connected websocket clients; disconnected clients just miss events."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    def client_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        await self._send(websocket, ConnectedEvent())
        logger.info("websocket client connected clients=%s", len(self._connections))

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)
        logger.info("websocket client disconnected clients=%s", len(self._connections))

    async def broadcast(self, event: SessionEvent) -> None:
        for websocket in list(self._connections):
            if not await self._send(websocket, event):
                self.disconnect(websocket)

    async def _send(self, websocket: WebSocket, event: BaseModel) -> bool:
        try:
            await websocket.send_text(event.model_dump_json())
        except Exception as exc:
            logger.info("dropping websocket client after send failure: %s", exc)
            return False
        return True


@lru_cache
def get_broadcaster() -> Broadcaster:
    return Broadcaster()
