"""WebSocket endpoint for live coaching sessions.

Path: /ws/session

Protocol (JSON messages):
    client → {"profile": {...}?, "mode": "standard"|"personalized"?}
             optional first message that starts the session explicitly
    client → FeatureReadings
             one per captured tick: {"pose": ..., "audio": ..., ...}
    server → {"status": "started", "session_id": ..., "mode": ...}
    server → {"type": "tick", ...}      one per processed tick
    server → {"type": "summary", ...}   periodically and on close
    server → {"status": "error", "detail": ...}
             invalid message; the connection stays open
             if the session loop has stopped, the socket is closed (1011)

Readings are validated at the boundary, turned into snapshots by the
SignalAggregator and pushed into a latest-wins SnapshotFeed.  The session
consumes the feed in its own task, so a slow tick drops stale snapshots
instead of queueing them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from arousal_engine.core.aggregator import FeatureReadings, SignalAggregator
from arousal_engine.core.session import CoachingSession
from arousal_engine.core.ticks import SnapshotFeed
from arousal_engine.domain.enums import EngineMode
from arousal_engine.domain.profile import ChildProfile
from arousal_engine.services.connection_manager import (
    BroadcastSink,
    ConnectionManager,
    WebSocketSink,
)
from arousal_engine.services.session_factory import SessionFactory
from arousal_engine.store.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionStart(BaseModel):
    """Optional opening message of a session socket."""

    profile: Optional[ChildProfile] = None
    mode: Optional[EngineMode] = None
    caregiver_capture: bool = False

    model_config = {"extra": "forbid"}


def _is_start_message(raw: Any) -> bool:
    return isinstance(raw, dict) and ("profile" in raw or "mode" in raw)


def _error_detail(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'message'}: {err['msg']}"
        for err in exc.errors()
    )


def create_session_router(
    registry: SessionRegistry,
    factory: SessionFactory,
    ui_manager: ConnectionManager | None = None,
) -> APIRouter:
    """Factory that wires the session endpoint to a registry and session factory."""

    router = APIRouter()

    @router.websocket("/ws/session")
    async def run_session(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Session client connected")

        session: Optional[CoachingSession] = None
        aggregator: Optional[SignalAggregator] = None
        own_sink: Optional[WebSocketSink] = None
        feed = SnapshotFeed()
        runner: Optional[asyncio.Task] = None

        async def start(request: SessionStart) -> None:
            nonlocal session, aggregator, own_sink, runner
            session = factory.create(profile=request.profile, mode=request.mode)
            aggregator = SignalAggregator(caregiver_capture=request.caregiver_capture)
            own_sink = WebSocketSink(websocket, session.session_id)
            session.add_sink(own_sink)
            if ui_manager is not None:
                session.add_sink(BroadcastSink(ui_manager, session.session_id))
            await registry.register(session)
            runner = asyncio.create_task(session.run(feed))
            await websocket.send_json({
                "status": "started",
                "session_id": session.session_id,
                "mode": session.config.mode.value,
            })

        try:
            while True:
                raw = await websocket.receive_json()

                # ── Explicit start ───────────────────────────────────────
                if _is_start_message(raw):
                    if session is not None:
                        await websocket.send_json({
                            "status": "error",
                            "detail": "Session already started",
                        })
                        continue
                    try:
                        request = SessionStart.model_validate(raw)
                    except ValidationError as exc:
                        logger.warning("Rejected session start: %s", exc)
                        await websocket.send_json({"status": "error", "detail": _error_detail(exc)})
                        continue
                    await start(request)
                    continue

                # ── Validate readings at the boundary ────────────────────
                try:
                    readings = FeatureReadings.model_validate(raw)
                except ValidationError as exc:
                    logger.warning("Rejected feature readings: %s", exc)
                    await websocket.send_json({"status": "error", "detail": _error_detail(exc)})
                    continue

                if session is None:
                    await start(SessionStart())

                if runner.done():
                    logger.error("Session %s loop stopped; closing socket", session.session_id)
                    await websocket.send_json({
                        "status": "error",
                        "detail": "Session loop stopped",
                    })
                    await websocket.close(code=1011)
                    break

                feed.push(aggregator.collect(readings))

        except WebSocketDisconnect:
            logger.info("Session client disconnected")

        finally:
            feed.close()
            if session is not None:
                session.remove_sink(own_sink)
                outcome = await asyncio.gather(runner, return_exceptions=True)
                if isinstance(outcome[0], Exception):
                    logger.error("Session %s loop failed: %s", session.session_id, outcome[0])
                await registry.close(session.session_id)

    return router
