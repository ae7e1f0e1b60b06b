# backend/safenet/websocket.py
import asyncio
import json
import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


def is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class ConnectionManager:
    """
    Fan-out of change notifications to the connected UI clients.

    Delivery is at-most-once: a message goes to the sockets that are open when
    publish() runs, nothing is queued for sockets that are down and nothing is
    replayed on reconnect.

    publish() never waits for a client. Each send runs as its own task and a
    subscriber has at most one send in flight; while it is still busy with an
    earlier message, newer messages skip it.
    """

    def __init__(self):
        self.active_connections: set[WebSocket] = set()
        self._in_flight: dict[WebSocket, asyncio.Task] = {}

    async def connect(self, websocket: WebSocket):
        """Register the client, then accept; publish skips it until the handshake completes."""
        self.subscribe(websocket)
        await websocket.accept()

    def subscribe(self, websocket: WebSocket):
        if websocket in self.active_connections:
            return
        self.active_connections.add(websocket)
        logger.info(f"UI client subscribed ({len(self.active_connections)} active).")

    def unsubscribe(self, websocket: WebSocket):
        if websocket not in self.active_connections:
            return
        self.active_connections.discard(websocket)
        logger.info(f"UI client unsubscribed ({len(self.active_connections)} active).")

    async def publish(self, event: dict) -> int:
        """Schedule event for every open, idle subscriber; returns how many sends were scheduled."""
        message = json.dumps(event)
        scheduled = 0
        for websocket in list(self.active_connections):
            if not is_open(websocket):
                continue
            if websocket in self._in_flight:
                logger.debug("UI client still busy with an earlier update, skipping.")
                continue
            self._in_flight[websocket] = asyncio.create_task(self._send(websocket, message))
            scheduled += 1
        return scheduled

    async def _send(self, websocket: WebSocket, message: str) -> bool:
        try:
            await websocket.send_text(message)
            return True
        except Exception as e:
            logger.warning(f"Could not push update to UI client: {e}")
            self.unsubscribe(websocket)
            return False
        finally:
            self._in_flight.pop(websocket, None)

    @property
    def pending_sends(self) -> int:
        return len(self._in_flight)

    async def flush(self):
        """Wait for the sends already scheduled."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    def shutdown(self):
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        self.active_connections.clear()
