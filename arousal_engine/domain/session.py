"""Session-level observations: the aggregate snapshot and the rolling summary.

Both are pure data structures.  The mutable state behind them lives in the
SessionHistoryTracker; these are the frozen views it hands out.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from arousal_engine.domain.enums import ArousalBand, Behavior, SessionTrend


class SessionAggregate(BaseModel):
    """Immutable snapshot of a session's aggregate statistics.

    Holds counts only; no raw signal data is ever retained.
    """

    session_id: str
    started_at: datetime
    band_counts: dict[ArousalBand, int] = Field(default_factory=dict)
    behaviors_observed: tuple[Behavior, ...] = Field(
        default=(), description="Distinct behaviors in first-seen order",
    )
    suggestion_counts: dict[str, int] = Field(default_factory=dict)
    total_decisions: int = 0
    fallback_count: int = 0

    model_config = {"frozen": True}

    @property
    def band_distribution(self) -> dict[ArousalBand, float]:
        """Fraction of published decisions per band (0.0 when empty)."""
        if self.total_decisions == 0:
            return {band: 0.0 for band in ArousalBand}
        return {
            band: round(self.band_counts.get(band, 0) / self.total_decisions, 4)
            for band in ArousalBand
        }

    @property
    def dominant_band(self) -> Optional[ArousalBand]:
        if not self.band_counts:
            return None
        # Ties resolve toward the more severe band
        return max(self.band_counts, key=lambda b: (self.band_counts[b], b.severity))

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "total_decisions": self.total_decisions,
            "fallback_count": self.fallback_count,
            "band_counts": {b.value: n for b, n in self.band_counts.items()},
            "band_distribution": {b.value: f for b, f in self.band_distribution.items()},
            "dominant_band": self.dominant_band.value if self.dominant_band else None,
            "behaviors_observed": [b.value for b in self.behaviors_observed],
            "suggestion_counts": dict(self.suggestion_counts),
        }


class RollingSessionSummary(BaseModel):
    """Short session history attached to every remote request bundle."""

    duration_minutes: int = 0
    recent_bands: tuple[ArousalBand, ...] = ()
    trend: SessionTrend = SessionTrend.JUST_STARTED

    model_config = {"frozen": True}

    def to_bundle(self) -> dict:
        return {
            "duration_minutes": self.duration_minutes,
            "recent_bands": [b.value for b in self.recent_bands],
            "trend": self.trend.value,
        }
