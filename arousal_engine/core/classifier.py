"""RuleBasedClassifier — deterministic arousal band classification.

Design principles:
    1. Pure function: accepts a FeatureSnapshot, returns a Decision.
    2. No side effects, no state mutation, no I/O, no network.
    3. Total: every snapshot yields exactly one band.  Missing modalities are
       neutral (non-contributing), never an error.
    4. All thresholds are explicit and configurable.

Severity score:
    score = movement_points      (+1 above threshold, +2 above extreme)
          + vocal_points         (+1 elevated, +2 strained)
          + escalation_points    (+1 when the escalating behavior is present)

    A crisis behavior (meltdown) forces the score to the maximum.

    Caregiver stress and body tension are reported in the rationale and key
    indicators only.  The caregiver signal informs coaching, not the child's
    own arousal.

Band mapping:
    0–1 → calm, 2–3 → building, 4 → high, ≥5 or crisis flag → crisis

Shutdown override:
    movement present and below the low threshold
    AND vocal affect flat or absent
    AND no active behaviors
    → shutdown, regardless of score.

Confidence is a fixed constant: this path has no probabilistic calibration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import (
    ArousalBand,
    Behavior,
    CaregiverStress,
    DecisionSource,
    VocalStress,
)
from arousal_engine.domain.snapshot import FeatureSnapshot, clamp_unit

logger = logging.getLogger(__name__)

MAX_SCORE = 5

CRISIS_BEHAVIORS: frozenset[Behavior] = frozenset({Behavior.MELTDOWN})

_VOCAL_POINTS = {
    VocalStress.ELEVATED: 1,
    VocalStress.STRAINED: 2,
}


@dataclass(frozen=True)
class ClassifierThresholds:
    """Configurable thresholds for the rule-based path."""

    movement_threshold: float = 0.6
    extreme_movement_threshold: float = 0.85
    low_movement_threshold: float = 0.15
    tension_threshold: float = 0.75
    # Fixed confidence reported for every rule decision
    confidence: float = 0.6


class RuleBasedClassifier:
    """Deterministic classifier over feature snapshots.

    This classifier is stateless: it accepts a FeatureSnapshot and produces
    a Decision with ``source=rule``.  It never raises for a valid snapshot.
    """

    def __init__(self, thresholds: ClassifierThresholds | None = None) -> None:
        self._thresholds = thresholds or ClassifierThresholds()

    @property
    def thresholds(self) -> ClassifierThresholds:
        return self._thresholds

    # ── Public API ───────────────────────────────────────────────────────

    def classify(self, snapshot: FeatureSnapshot) -> Decision:
        """Classify one snapshot into an arousal band."""
        indicators: list[str] = []

        movement = clamp_unit(snapshot.movement_intensity)
        tension = clamp_unit(snapshot.tension_score)

        score = 0
        score += self._movement_points(movement, indicators)
        score += self._vocal_points(snapshot.vocal_stress, indicators)
        score += self._behavior_points(snapshot.behaviors, indicators)

        crisis_flag = any(b in CRISIS_BEHAVIORS for b in snapshot.behaviors)
        if crisis_flag:
            score = MAX_SCORE

        if tension is not None and tension >= self._thresholds.tension_threshold:
            indicators.append(f"body tension {tension:.2f}")

        if self._is_shutdown(snapshot, movement):
            band = ArousalBand.SHUTDOWN
            indicators.insert(0, "low movement with flat or absent vocal affect")
        else:
            band = self._band_for_score(score, crisis_flag)

        caregiver_note = ""
        if snapshot.caregiver_stress == CaregiverStress.HIGH:
            indicators.append("caregiver stress high")
            caregiver_note = " Caregiver stress is high; co-regulation support advised."

        if snapshot.degraded:
            indicators.append("missing: " + ", ".join(snapshot.missing_signals))

        rationale = self._rationale(band, score, crisis_flag) + caregiver_note

        logger.debug(
            "Classified tick %d → %s (score=%d, crisis=%s, indicators=%d)",
            snapshot.tick, band.value, score, crisis_flag, len(indicators),
        )

        return Decision(
            band=band,
            confidence=self._thresholds.confidence,
            source=DecisionSource.RULE,
            rationale=rationale,
            key_indicators=tuple(indicators),
            timestamp=snapshot.captured_at,
            tick=snapshot.tick,
        )

    # ── Contributions ────────────────────────────────────────────────────

    def _movement_points(self, movement: float | None, indicators: list[str]) -> int:
        if movement is None:
            return 0
        if movement > self._thresholds.extreme_movement_threshold:
            indicators.append(f"extreme movement {movement:.2f}")
            return 2
        if movement > self._thresholds.movement_threshold:
            indicators.append(f"elevated movement {movement:.2f}")
            return 1
        return 0

    @staticmethod
    def _vocal_points(vocal: VocalStress | None, indicators: list[str]) -> int:
        if vocal is None:
            return 0
        points = _VOCAL_POINTS.get(vocal, 0)
        if points:
            indicators.append(f"vocal stress {vocal.value}")
        return points

    @staticmethod
    def _behavior_points(behaviors: tuple[Behavior, ...], indicators: list[str]) -> int:
        points = 0
        for behavior in behaviors:
            if behavior in CRISIS_BEHAVIORS:
                indicators.append(f"crisis behavior: {behavior.display_name}")
            elif behavior == Behavior.ESCALATING:
                indicators.append("escalating behavior")
                points = 1
        return points

    # ── Mapping ──────────────────────────────────────────────────────────

    def _is_shutdown(self, snapshot: FeatureSnapshot, movement: float | None) -> bool:
        # Without pose data there is no evidence of stillness
        if movement is None or movement >= self._thresholds.low_movement_threshold:
            return False
        if snapshot.vocal_stress not in (None, VocalStress.FLAT):
            return False
        return not snapshot.active_behaviors

    @staticmethod
    def _band_for_score(score: int, crisis_flag: bool) -> ArousalBand:
        if crisis_flag or score >= MAX_SCORE:
            return ArousalBand.CRISIS
        if score == 4:
            return ArousalBand.HIGH
        if score >= 2:
            return ArousalBand.BUILDING
        return ArousalBand.CALM

    @staticmethod
    def _rationale(band: ArousalBand, score: int, crisis_flag: bool) -> str:
        if band == ArousalBand.SHUTDOWN:
            return "Very low movement with no vocal or behavioral activity suggests withdrawal."
        if crisis_flag:
            return "Crisis behavior observed; safety takes priority."
        return f"Rule-based severity score {score} maps to {band.value}."
