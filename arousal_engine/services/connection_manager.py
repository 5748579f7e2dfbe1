"""WebSocket fan-out for decision streams.

ConnectionManager tracks UI clients on /ws/decisions.  The sinks below
adapt it (and a single session socket) to the PresentationSink protocol so
the CoachingSession never touches FastAPI types.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

from arousal_engine.core.session import TickResult
from arousal_engine.domain.session import SessionAggregate

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manager for frontend WebSocket connections on a single event loop."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)

    @property
    def active_count(self) -> int:
        return len(self._connections)

    async def broadcast_json(self, data: dict[str, Any]) -> None:
        """Send a JSON payload to every connected UI client.

        Clients whose send fails are dropped; the broadcast continues.
        """
        for ws in list(self._connections):
            try:
                await ws.send_json(data)
            except Exception as exc:
                logger.info("Dropping UI client after failed send: %s", exc)
                self.disconnect(ws)


def tick_message(session_id: str, result: TickResult) -> dict[str, Any]:
    return {"type": "tick", "session_id": session_id, **result.to_dict()}


def summary_message(aggregate: SessionAggregate) -> dict[str, Any]:
    return {"type": "summary", **aggregate.to_dict()}


class BroadcastSink:
    """Publishes a session's results to every /ws/decisions client."""

    def __init__(self, manager: ConnectionManager, session_id: str) -> None:
        self._manager = manager
        self._session_id = session_id

    async def publish(self, result: TickResult) -> None:
        await self._manager.broadcast_json(tick_message(self._session_id, result))

    async def publish_summary(self, aggregate: SessionAggregate) -> None:
        await self._manager.broadcast_json(summary_message(aggregate))


class WebSocketSink:
    """Echoes a session's results back on its own ingress socket."""

    def __init__(self, websocket: WebSocket, session_id: str) -> None:
        self._websocket = websocket
        self._session_id = session_id

    async def publish(self, result: TickResult) -> None:
        await self._websocket.send_json(tick_message(self._session_id, result))

    async def publish_summary(self, aggregate: SessionAggregate) -> None:
        await self._websocket.send_json(summary_message(aggregate))
