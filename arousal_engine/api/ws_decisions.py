"""WebSocket endpoint: streams every session's tick results to UI clients."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from arousal_engine.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


def create_decisions_router(manager: ConnectionManager) -> APIRouter:
    router = APIRouter()

    @router.websocket("/ws/decisions")
    async def stream_decisions(websocket: WebSocket) -> None:
        """Frontend clients connect here to receive live decision updates."""
        await manager.connect(websocket)
        logger.info("UI client connected, total: %d", manager.active_count)

        try:
            while True:
                # Keep the connection alive; results are pushed server-side
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(websocket)
            logger.info("UI client disconnected, total: %d", manager.active_count)

    return router
