"""SignalAggregator — one FeatureSnapshot per tick from partial readings.

The extractors upstream (pose, audio, environment analysis, caregiver
face/voice) run independently and any of them may have nothing to report
for a given tick.  The aggregator never waits for a late modality: what is
present is used, what is absent is listed in ``missing_signals`` and left
neutral for the classifier.

Tick numbers are assigned here and nowhere else.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from arousal_engine.domain.enums import Behavior, CaregiverStress, VocalStress
from arousal_engine.domain.snapshot import EnvironmentDescriptor, FeatureSnapshot
from arousal_engine.foundation.clock import utc_now

logger = logging.getLogger(__name__)


class PoseFeatures(BaseModel):
    movement_intensity: Optional[float] = None
    tension_score: Optional[float] = None
    behaviors: tuple[Behavior, ...] = ()


class AudioFeatures(BaseModel):
    vocal_stress: Optional[VocalStress] = None


class CaregiverFeatures(BaseModel):
    stress: Optional[CaregiverStress] = None


class FeatureReadings(BaseModel):
    """Whatever the extractors produced during one tick.  Every part is optional."""

    pose: Optional[PoseFeatures] = None
    audio: Optional[AudioFeatures] = None
    environment: Optional[EnvironmentDescriptor] = None
    caregiver: Optional[CaregiverFeatures] = None
    captured_at: Optional[datetime] = Field(
        default=None,
        description="Capture time; the aggregator stamps now() when omitted",
    )


class SignalAggregator:
    """Assigns ticks and folds partial readings into snapshots.

    Args:
        caregiver_capture: Whether dual-camera caregiver capture is active.
            When it is off, an absent caregiver reading is expected and is
            not reported as missing.
        start_tick: First tick number to assign.
    """

    def __init__(self, *, caregiver_capture: bool = False, start_tick: int = 1) -> None:
        if start_tick < 0:
            raise ValueError("start_tick must be non-negative")
        self._caregiver_capture = caregiver_capture
        self._next_tick = start_tick
        self._degraded_ticks = 0

    def collect(self, readings: FeatureReadings) -> FeatureSnapshot:
        """Produce the next tick's snapshot from *readings*."""
        missing: list[str] = []

        pose = readings.pose
        if pose is None or (pose.movement_intensity is None and pose.tension_score is None and not pose.behaviors):
            missing.append("pose")
        audio = readings.audio
        if audio is None or audio.vocal_stress is None:
            missing.append("audio")
        if readings.environment is None:
            missing.append("environment")
        caregiver = readings.caregiver
        if self._caregiver_capture and (caregiver is None or caregiver.stress is None):
            missing.append("caregiver")

        tick = self._next_tick
        self._next_tick += 1

        snapshot = FeatureSnapshot(
            tick=tick,
            captured_at=readings.captured_at or utc_now(),
            movement_intensity=pose.movement_intensity if pose else None,
            tension_score=pose.tension_score if pose else None,
            behaviors=pose.behaviors if pose else (),
            vocal_stress=audio.vocal_stress if audio else None,
            environment=readings.environment or EnvironmentDescriptor(),
            caregiver_stress=caregiver.stress if caregiver else None,
            missing_signals=tuple(missing),
        )

        if missing:
            self._degraded_ticks += 1
            logger.debug("Tick %d aggregated without: %s", tick, ", ".join(missing))
        return snapshot

    @property
    def next_tick(self) -> int:
        return self._next_tick

    @property
    def degraded_ticks(self) -> int:
        return self._degraded_ticks
