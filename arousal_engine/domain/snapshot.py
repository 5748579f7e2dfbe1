"""FeatureSnapshot — the per-tick contract between feature extraction and the engine.

A snapshot is what the external pose/audio/environment extractors believed
they saw during one tick.  It is immutable after creation and validated at
the boundary so downstream code never has to re-check field constraints.

Raw camera and microphone buffers never reach this module: only typed,
already-extracted features do.

Out-of-range numbers are clamped rather than rejected.  The classifier is a
total function and the snapshot is its only input, so a sensor glitch must
degrade a reading, never drop a tick.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from arousal_engine.domain.enums import (
    Behavior,
    CaregiverStress,
    EnvironmentFlag,
    LightingLevel,
    NoiseLevel,
    VocalStress,
)
from arousal_engine.foundation.clock import utc_now


def clamp_unit(value: Optional[float]) -> Optional[float]:
    """Clamp to [0, 1]; NaN and None both mean "not measured"."""
    if value is None:
        return None
    value = float(value)
    if math.isnan(value):
        return None
    return max(0.0, min(value, 1.0))


# ── Environment ──────────────────────────────────────────────────────────────

class EnvironmentDescriptor(BaseModel):
    """Scene conditions reported by the environment analyzer."""

    lighting: LightingLevel = LightingLevel.NORMAL
    noise: NoiseLevel = NoiseLevel.QUIET
    cluttered: bool = False
    crowded: bool = False

    model_config = {"frozen": True}

    @property
    def flags(self) -> frozenset[EnvironmentFlag]:
        """Conditions worth coaching on; an optimal scene has none."""
        flags: set[EnvironmentFlag] = set()
        if self.lighting == LightingLevel.BRIGHT:
            flags.add(EnvironmentFlag.BRIGHT_LIGHT)
        elif self.lighting == LightingLevel.FLICKERING:
            flags.add(EnvironmentFlag.FLICKERING_LIGHT)
        if self.noise == NoiseLevel.LOUD:
            flags.add(EnvironmentFlag.LOUD_NOISE)
        elif self.noise == NoiseLevel.VERY_LOUD:
            flags.add(EnvironmentFlag.VERY_LOUD_NOISE)
        if self.cluttered:
            flags.add(EnvironmentFlag.CLUTTERED)
        if self.crowded:
            flags.add(EnvironmentFlag.CROWDED)
        return frozenset(flags)


# ── Snapshot ─────────────────────────────────────────────────────────────────

class FeatureSnapshot(BaseModel):
    """One tick's worth of aggregated, typed features.

    Produced once per tick by the SignalAggregator; owned by that tick's
    processing pipeline; never mutated.
    """

    tick: int = Field(..., ge=0, description="Strictly increasing tick number within a session")
    captured_at: datetime = Field(default_factory=utc_now, description="When the features were captured")
    movement_intensity: Optional[float] = Field(
        default=None,
        description="Child movement energy (0 = still, 1 = high energy); None when pose is unavailable",
    )
    tension_score: Optional[float] = Field(
        default=None,
        description="Body tension (0 = relaxed, 1 = tense); None when pose is unavailable",
    )
    behaviors: tuple[Behavior, ...] = Field(
        default=(),
        description="Detected behaviors in detection order, deduplicated",
    )
    vocal_stress: Optional[VocalStress] = Field(
        default=None,
        description="Vocal affect category; None when audio is unavailable",
    )
    environment: EnvironmentDescriptor = Field(default_factory=EnvironmentDescriptor)
    caregiver_stress: Optional[CaregiverStress] = Field(
        default=None,
        description="Caregiver stress; present only while dual-signal capture is active",
    )
    missing_signals: tuple[str, ...] = Field(
        default=(),
        description="Modalities that were unavailable this tick (pose, audio, environment, caregiver)",
    )

    model_config = {"frozen": True}

    # ── Validators ───────────────────────────────────────────────────────

    @field_validator("captured_at")
    @classmethod
    def timestamp_must_be_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("movement_intensity", "tension_score", mode="before")
    @classmethod
    def clamp_scores(cls, v: Optional[float]) -> Optional[float]:
        return clamp_unit(v)

    @field_validator("behaviors", mode="after")
    @classmethod
    def dedupe_behaviors(cls, v: tuple[Behavior, ...]) -> tuple[Behavior, ...]:
        return tuple(dict.fromkeys(v))

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def degraded(self) -> bool:
        """True when at least one modality was missing (aggregation incomplete)."""
        return bool(self.missing_signals)

    @property
    def active_behaviors(self) -> tuple[Behavior, ...]:
        return tuple(b for b in self.behaviors if b.is_active)
