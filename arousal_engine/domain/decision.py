"""Decision — the one published arousal verdict per tick.

A Decision is produced either by the rule-based classifier or by a remote
reasoning provider.  Exactly one is published per tick and it is immutable
once created.  Remote decisions served from cache are re-stamped with the
current tick rather than mutated.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from arousal_engine.domain.enums import ArousalBand, DecisionSource
from arousal_engine.foundation.clock import utc_now


class Decision(BaseModel):
    """A classified arousal band with provenance and explanation."""

    band: ArousalBand = Field(..., description="Classified arousal band")
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: DecisionSource = Field(..., description="Which path produced this decision")
    rationale: str = Field(default="", description="Human-readable reasoning summary")
    key_indicators: tuple[str, ...] = Field(
        default=(),
        description="Ordered signals that drove the classification",
    )
    timestamp: datetime = Field(default_factory=utc_now)
    tick: int = Field(default=0, ge=0, description="Tick this decision was published for")

    model_config = {"frozen": True}

    def for_tick(self, tick: int, timestamp: datetime) -> Decision:
        """Return a copy stamped for another tick (used for cached verdicts)."""
        return self.model_copy(update={"tick": tick, "timestamp": timestamp})
