"""In-memory registry of coaching sessions with async-safe access.

Design notes:
    - An asyncio.Lock guards the maps so concurrent WebSocket handlers
      never corrupt state.
    - Live sessions are tracked until closed.  After close only the final
      SessionAggregate is kept (counts, never signals), bounded by
      ``retain_closed`` so a long-running service does not grow without limit.
    - The registry does not run sessions.  Handlers own the tick loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Optional

from arousal_engine.core.session import CoachingSession
from arousal_engine.domain.session import SessionAggregate

logger = logging.getLogger(__name__)


class RegistrySummary:
    """Counts for the health endpoint."""

    __slots__ = ("live_sessions", "closed_sessions", "total_decisions", "total_fallbacks")

    def __init__(
        self,
        live_sessions: int = 0,
        closed_sessions: int = 0,
        total_decisions: int = 0,
        total_fallbacks: int = 0,
    ) -> None:
        self.live_sessions = live_sessions
        self.closed_sessions = closed_sessions
        self.total_decisions = total_decisions
        self.total_fallbacks = total_fallbacks

    def to_dict(self) -> dict:
        return {
            "live_sessions": self.live_sessions,
            "closed_sessions": self.closed_sessions,
            "total_decisions": self.total_decisions,
            "total_fallbacks": self.total_fallbacks,
        }


class SessionRegistry:
    """Async-safe map of session id → live session or final aggregate."""

    def __init__(self, retain_closed: int = 100) -> None:
        if retain_closed < 0:
            raise ValueError("retain_closed must be non-negative")
        self._retain_closed = retain_closed
        self._lock = asyncio.Lock()
        self._live: dict[str, CoachingSession] = {}
        self._closed: OrderedDict[str, SessionAggregate] = OrderedDict()

    # ── Public API ───────────────────────────────────────────────────────

    async def register(self, session: CoachingSession) -> None:
        async with self._lock:
            if session.session_id in self._live:
                raise ValueError(f"Session {session.session_id} already registered")
            self._live[session.session_id] = session
        logger.info("Registered session %s", session.session_id)

    async def close(self, session_id: str) -> Optional[SessionAggregate]:
        """Close a live session and retain its final aggregate."""
        async with self._lock:
            session = self._live.pop(session_id, None)
        if session is None:
            return None
        final = await session.close()
        async with self._lock:
            self._retain(session_id, final)
        return final

    async def summary(self, session_id: str) -> Optional[SessionAggregate]:
        """Current aggregate for a live session, or the final one if closed."""
        async with self._lock:
            session = self._live.get(session_id)
            if session is not None:
                return session.summary()
            return self._closed.get(session_id)

    async def list_sessions(self) -> list[dict]:
        async with self._lock:
            live = [
                {"session_id": sid, "live": True, "mode": s.config.mode.value,
                 "total_decisions": s.summary().total_decisions}
                for sid, s in self._live.items()
            ]
            closed = [
                {"session_id": sid, "live": False, "mode": None,
                 "total_decisions": agg.total_decisions}
                for sid, agg in self._closed.items()
            ]
        return live + closed

    async def overview(self) -> RegistrySummary:
        async with self._lock:
            aggregates = [s.summary() for s in self._live.values()] + list(self._closed.values())
            return RegistrySummary(
                live_sessions=len(self._live),
                closed_sessions=len(self._closed),
                total_decisions=sum(a.total_decisions for a in aggregates),
                total_fallbacks=sum(a.fallback_count for a in aggregates),
            )

    async def close_all(self) -> None:
        async with self._lock:
            session_ids = list(self._live)
        for session_id in session_ids:
            await self.close(session_id)

    # ── Internals ────────────────────────────────────────────────────────

    def _retain(self, session_id: str, aggregate: SessionAggregate) -> None:
        """Must be called while holding self._lock."""
        if self._retain_closed == 0:
            return
        self._closed[session_id] = aggregate
        while len(self._closed) > self._retain_closed:
            evicted, _ = self._closed.popitem(last=False)
            logger.debug("Evicted closed session summary %s", evicted)
