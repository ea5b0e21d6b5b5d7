"""WebSocket fan-out of store mutations to every connected dashboard."""

import asyncio
import logging

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from devboard.schemas.events import BroadcastEvent, ConnectedEvent, encode_event

logger = logging.getLogger(__name__)


class Broadcaster:
    """Tracks open WebSocket connections and pushes events to all of them.

    publish() never waits on the network: each send is scheduled as its own
    task, so a slow client cannot hold up the request that caused the event.
    """

    def __init__(self):
        self._connections: set[WebSocket] = set()
        self._pending: set[asyncio.Task] = set()

    async def connect(self, ws: WebSocket):
        await ws.accept()
        await ws.send_text(encode_event(ConnectedEvent()))
        self._connections.add(ws)
        logger.debug("WebSocket client connected (%d open)", len(self._connections))

    def disconnect(self, ws: WebSocket):
        self._connections.discard(ws)

    def publish(self, event: BroadcastEvent) -> int:
        """Schedule `event` for every open connection. Returns how many were targeted."""
        message = encode_event(event)
        targets = [ws for ws in self._connections if self._is_open(ws)]
        for ws in targets:
            task = asyncio.create_task(self._safe_send(ws, message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return len(targets)

    async def drain(self):
        """Wait for scheduled sends to finish (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @staticmethod
    def _is_open(ws: WebSocket) -> bool:
        return (
            ws.client_state == WebSocketState.CONNECTED
            and ws.application_state == WebSocketState.CONNECTED
        )

    async def _safe_send(self, ws: WebSocket, message: str):
        try:
            await ws.send_text(message)
        except Exception as e:
            logger.debug("Dropping WebSocket client after failed send: %s", e)
            self.disconnect(ws)


async def websocket_events(ws: WebSocket, broadcaster: Broadcaster):
    """WebSocket endpoint: server push only, client messages are ignored."""
    await broadcaster.connect(ws)
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(ws)
