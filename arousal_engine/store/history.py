"""SessionHistoryTracker — aggregate statistics for one coaching session.

Design notes:
    - record() is the ONLY mutator, called once per published Decision.
    - Only counts and a short band window are kept.  No snapshot, no raw
      signal and no suggestion text beyond its issuance count and last
      issuance time are retained.
    - summarize() is idempotent and returns a frozen SessionAggregate.
    - The rolling summary feeds the remote request bundle: the last few
      published bands plus a trend label over the most recent ones.
    - close() destroys the aggregate.  A closed tracker refuses records.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Iterable, Optional

from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import ArousalBand, Behavior, SessionTrend
from arousal_engine.domain.session import RollingSessionSummary, SessionAggregate
from arousal_engine.domain.suggestion import Suggestion
from arousal_engine.foundation.clock import utc_now
from arousal_engine.foundation.identifiers import new_id

logger = logging.getLogger(__name__)

# Bands included in the rolling summary sent to the remote provider
SUMMARY_BANDS = 6
# Bands inspected for escalation/improvement
TREND_WINDOW = 3


def detect_trend(bands: list[ArousalBand]) -> SessionTrend:
    """Label the shape of a band timeline (oldest first)."""
    if not bands:
        return SessionTrend.JUST_STARTED

    if len(bands) >= TREND_WINDOW:
        recent = [b.severity for b in bands[-TREND_WINDOW:]]
        changes = [after - before for before, after in zip(recent, recent[1:])]
        if sum(1 for c in changes if c > 0) > len(changes) // 2:
            return SessionTrend.ESCALATING
        if sum(1 for c in changes if c < 0) > len(changes) // 2:
            return SessionTrend.IMPROVING

    unique = set(bands)
    if len(unique) >= 3:
        return SessionTrend.CYCLING
    if len(unique) == 1:
        return SessionTrend.STABLE
    return SessionTrend.VARIABLE


class SessionHistoryTracker:
    """Accumulates aggregate statistics across a session's published decisions.

    Args:
        session_id: Identifier reported in summaries; generated when omitted.
        history_window: How many recent bands are retained for trend detection.
        started_at: Session start; defaults to now.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        *,
        history_window: int = 30,
        started_at: Optional[datetime] = None,
    ) -> None:
        if history_window < 1:
            raise ValueError("history_window must be at least 1")
        self._session_id = session_id or new_id()
        self._started_at = started_at or utc_now()
        self._band_counts: dict[ArousalBand, int] = {}
        self._behaviors: dict[Behavior, None] = {}
        self._suggestion_counts: dict[str, int] = {}
        self._last_issued: dict[str, datetime] = {}
        self._recent_bands: deque[ArousalBand] = deque(maxlen=history_window)
        self._total = 0
        self._fallbacks = 0
        self._last_tick: Optional[int] = None
        self._last_timestamp: Optional[datetime] = None
        self._closed = False

    # ── Mutation ─────────────────────────────────────────────────────────

    def record(
        self,
        decision: Decision,
        *,
        behaviors: Iterable[Behavior] = (),
        suggestions: Iterable[Suggestion] = (),
        fallback: bool = False,
    ) -> None:
        """Fold one published Decision (and its tick's output) into the aggregate.

        Raises:
            RuntimeError: If the tracker has been closed.
            ValueError: If this tick was already recorded or precedes the last one.
        """
        if self._closed:
            raise RuntimeError(f"Session {self._session_id} history is closed")
        if self._last_tick is not None and decision.tick <= self._last_tick:
            raise ValueError(
                f"Decision for tick {decision.tick} already recorded "
                f"(last recorded tick {self._last_tick})"
            )

        self._last_tick = decision.tick
        self._last_timestamp = decision.timestamp
        self._total += 1
        self._band_counts[decision.band] = self._band_counts.get(decision.band, 0) + 1
        self._recent_bands.append(decision.band)
        if fallback:
            self._fallbacks += 1

        for behavior in behaviors:
            self._behaviors.setdefault(behavior, None)

        for suggestion in suggestions:
            text = suggestion.text
            self._suggestion_counts[text] = self._suggestion_counts.get(text, 0) + 1
            self._last_issued[text] = decision.timestamp

        logger.debug(
            "Session %s recorded tick %d → %s (total=%d)",
            self._session_id, decision.tick, decision.band.value, self._total,
        )

    def close(self) -> SessionAggregate:
        """Return the final aggregate and discard all session state."""
        final = self.summarize()
        self._closed = True
        self._band_counts.clear()
        self._behaviors.clear()
        self._suggestion_counts.clear()
        self._last_issued.clear()
        self._recent_bands.clear()
        logger.info(
            "Session %s history closed after %d decisions (%d fallbacks)",
            self._session_id, final.total_decisions, final.fallback_count,
        )
        return final

    # ── Queries ──────────────────────────────────────────────────────────

    def summarize(self) -> SessionAggregate:
        """Frozen snapshot of the current aggregate.  No side effects."""
        if self._closed:
            raise RuntimeError(f"Session {self._session_id} history is closed")
        return SessionAggregate(
            session_id=self._session_id,
            started_at=self._started_at,
            band_counts=dict(self._band_counts),
            behaviors_observed=tuple(self._behaviors),
            suggestion_counts=dict(self._suggestion_counts),
            total_decisions=self._total,
            fallback_count=self._fallbacks,
        )

    def last_issued(self, text: str) -> Optional[datetime]:
        """When a suggestion text was last issued in this session, if ever."""
        return self._last_issued.get(text)

    def rolling_summary(self) -> RollingSessionSummary:
        bands = list(self._recent_bands)
        duration = 0
        if self._last_timestamp is not None:
            elapsed = (self._last_timestamp - self._started_at).total_seconds()
            duration = max(0, int(elapsed // 60))
        return RollingSessionSummary(
            duration_minutes=duration,
            recent_bands=tuple(bands[-SUMMARY_BANDS:]),
            trend=detect_trend(bands),
        )

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def started_at(self) -> datetime:
        return self._started_at

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def total_decisions(self) -> int:
        return self._total
