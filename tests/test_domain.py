"""Tests for domain models: snapshots, decisions, profiles, aggregates."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import (
    ArousalBand,
    Behavior,
    BehaviorCategory,
    DecisionSource,
    EnvironmentFlag,
    LightingLevel,
    NoiseLevel,
)
from arousal_engine.domain.session import SessionAggregate
from arousal_engine.domain.snapshot import EnvironmentDescriptor, FeatureSnapshot

from tests.factories import BASE, at, decision, profile, snapshot


class TestArousalBand:
    def test_severity_ordering(self) -> None:
        assert ArousalBand.SHUTDOWN < ArousalBand.CALM < ArousalBand.BUILDING
        assert ArousalBand.BUILDING < ArousalBand.HIGH < ArousalBand.CRISIS

    def test_ordering_is_not_alphabetical(self) -> None:
        # "calm" < "building" alphabetically would be False; severity says True
        assert ArousalBand.CALM < ArousalBand.BUILDING
        assert max(ArousalBand) == ArousalBand.CRISIS


class TestBehavior:
    def test_passive_behaviors_are_not_active(self) -> None:
        assert not Behavior.STILLNESS.is_active
        assert not Behavior.UNKNOWN.is_active
        assert Behavior.ROCKING.is_active

    def test_categories(self) -> None:
        assert Behavior.HAND_FLAPPING.category == BehaviorCategory.STIMMING
        assert Behavior.COVERING_EARS.category == BehaviorCategory.SENSORY_AVOIDANCE
        assert Behavior.MELTDOWN.category == BehaviorCategory.CRISIS


class TestFeatureSnapshot:
    def test_out_of_range_scores_are_clamped(self) -> None:
        snap = snapshot(movement_intensity=1.7, tension_score=-0.3)
        assert snap.movement_intensity == 1.0
        assert snap.tension_score == 0.0

    def test_nan_is_treated_as_missing(self) -> None:
        snap = snapshot(movement_intensity=float("nan"))
        assert snap.movement_intensity is None

    def test_behaviors_are_deduplicated_in_order(self) -> None:
        snap = snapshot(behaviors=(Behavior.ROCKING, Behavior.PACING, Behavior.ROCKING))
        assert snap.behaviors == (Behavior.ROCKING, Behavior.PACING)

    def test_naive_timestamp_becomes_utc(self) -> None:
        snap = snapshot(captured_at=datetime(2026, 1, 1, 12, 0, 0))
        assert snap.captured_at.tzinfo is not None

    def test_negative_tick_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FeatureSnapshot(tick=-1)

    def test_unknown_behavior_label_rejected(self) -> None:
        with pytest.raises(ValidationError):
            snapshot(behaviors=("moonwalking",))

    def test_degraded_when_signals_missing(self) -> None:
        assert snapshot(missing_signals=("audio",)).degraded
        assert not snapshot().degraded

    def test_frozen(self) -> None:
        snap = snapshot()
        with pytest.raises(ValidationError):
            snap.tick = 5  # type: ignore[misc]

    def test_active_behaviors_exclude_passive(self) -> None:
        snap = snapshot(behaviors=(Behavior.STILLNESS, Behavior.SPINNING))
        assert snap.active_behaviors == (Behavior.SPINNING,)


class TestEnvironmentDescriptor:
    def test_optimal_scene_has_no_flags(self) -> None:
        assert EnvironmentDescriptor().flags == frozenset()

    def test_flags(self) -> None:
        env = EnvironmentDescriptor(
            lighting=LightingLevel.FLICKERING,
            noise=NoiseLevel.VERY_LOUD,
            crowded=True,
        )
        assert env.flags == {
            EnvironmentFlag.FLICKERING_LIGHT,
            EnvironmentFlag.VERY_LOUD_NOISE,
            EnvironmentFlag.CROWDED,
        }


class TestDecision:
    def test_confidence_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Decision(band=ArousalBand.CALM, confidence=1.5, source=DecisionSource.RULE)

    def test_for_tick_restamps_without_mutating(self) -> None:
        original = decision(ArousalBand.HIGH, tick=3, source=DecisionSource.REMOTE)
        restamped = original.for_tick(9, at(9))
        assert restamped.tick == 9
        assert restamped.timestamp == at(9)
        assert restamped.band == ArousalBand.HIGH
        assert original.tick == 3


class TestChildProfile:
    def test_traits_exclude_name(self) -> None:
        traits = profile(name="Alex").traits()
        assert "name" not in traits
        assert "Alex" not in str(traits)

    def test_traits_content(self) -> None:
        traits = profile().traits()
        assert traits["age"] == 6
        assert traits["diagnoses"] == ["autism"]
        assert traits["baseline_movement"] == 0.3


class TestSessionAggregate:
    def test_empty_distribution(self) -> None:
        agg = SessionAggregate(session_id="s", started_at=BASE)
        assert agg.dominant_band is None
        assert all(v == 0.0 for v in agg.band_distribution.values())

    def test_dominant_band_ties_toward_severity(self) -> None:
        agg = SessionAggregate(
            session_id="s",
            started_at=BASE,
            band_counts={ArousalBand.CALM: 2, ArousalBand.HIGH: 2},
            total_decisions=4,
        )
        assert agg.dominant_band == ArousalBand.HIGH
        assert agg.band_distribution[ArousalBand.CALM] == 0.5

    def test_to_dict_uses_values(self) -> None:
        agg = SessionAggregate(
            session_id="s",
            started_at=BASE,
            band_counts={ArousalBand.BUILDING: 1},
            total_decisions=1,
        )
        data = agg.to_dict()
        assert data["band_counts"] == {"building": 1}
        assert data["dominant_band"] == "building"
