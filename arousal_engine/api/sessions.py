"""REST endpoints for session summaries.

Paths:
    GET /api/sessions
    GET /api/sessions/{session_id}/summary

Summaries hold aggregate counts only.  A closed session's final summary
stays available until the registry evicts it.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from arousal_engine.store.session_registry import SessionRegistry


def create_sessions_router(registry: SessionRegistry) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["sessions"])

    @router.get("/sessions")
    async def list_sessions() -> dict[str, Any]:
        sessions = await registry.list_sessions()
        return {"sessions": sessions, "count": len(sessions)}

    @router.get("/sessions/{session_id}/summary")
    async def session_summary(session_id: str) -> dict[str, Any]:
        aggregate = await registry.summary(session_id)
        if aggregate is None:
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return aggregate.to_dict()

    return router
