"""Tests for the SignalAggregator and tick producers."""

from __future__ import annotations

import asyncio

import pytest

from arousal_engine.core.aggregator import (
    AudioFeatures,
    CaregiverFeatures,
    FeatureReadings,
    PoseFeatures,
    SignalAggregator,
)
from arousal_engine.core.ticks import ReplayProducer, SnapshotFeed
from arousal_engine.domain.enums import Behavior, CaregiverStress, NoiseLevel, VocalStress
from arousal_engine.domain.snapshot import EnvironmentDescriptor

from tests.factories import at, snapshot


def _full_readings(**kw) -> FeatureReadings:
    data = {
        "pose": PoseFeatures(movement_intensity=0.5, tension_score=0.2, behaviors=(Behavior.ROCKING,)),
        "audio": AudioFeatures(vocal_stress=VocalStress.CALM),
        "environment": EnvironmentDescriptor(noise=NoiseLevel.MODERATE),
        "captured_at": at(0),
    }
    data.update(kw)
    return FeatureReadings(**data)


class TestSignalAggregator:
    def test_ticks_strictly_increase(self) -> None:
        aggregator = SignalAggregator()
        ticks = [aggregator.collect(_full_readings()).tick for _ in range(3)]
        assert ticks == [1, 2, 3]

    def test_full_readings_not_degraded(self) -> None:
        snap = SignalAggregator().collect(_full_readings())
        assert not snap.degraded
        assert snap.movement_intensity == 0.5
        assert snap.behaviors == (Behavior.ROCKING,)

    def test_missing_modalities_listed(self) -> None:
        snap = SignalAggregator().collect(FeatureReadings())
        assert set(snap.missing_signals) == {"pose", "audio", "environment"}
        assert snap.movement_intensity is None
        assert snap.environment == EnvironmentDescriptor()

    def test_caregiver_missing_only_when_capture_active(self) -> None:
        assert "caregiver" not in SignalAggregator().collect(_full_readings()).missing_signals
        snap = SignalAggregator(caregiver_capture=True).collect(_full_readings())
        assert "caregiver" in snap.missing_signals

    def test_caregiver_stress_passed_through(self) -> None:
        readings = _full_readings(caregiver=CaregiverFeatures(stress=CaregiverStress.HIGH))
        snap = SignalAggregator(caregiver_capture=True).collect(readings)
        assert snap.caregiver_stress == CaregiverStress.HIGH
        assert not snap.degraded

    def test_out_of_range_reading_clamped(self) -> None:
        readings = _full_readings(pose=PoseFeatures(movement_intensity=3.0))
        assert SignalAggregator().collect(readings).movement_intensity == 1.0

    def test_degraded_ticks_counted(self) -> None:
        aggregator = SignalAggregator()
        aggregator.collect(FeatureReadings())
        aggregator.collect(_full_readings())
        assert aggregator.degraded_ticks == 1


class TestSnapshotFeed:
    @pytest.mark.asyncio
    async def test_latest_wins(self) -> None:
        feed = SnapshotFeed()
        feed.push(snapshot(tick=1))
        feed.push(snapshot(tick=2))
        feed.push(snapshot(tick=3))
        feed.close()
        ticks = [s.tick async for s in feed]
        assert ticks == [3]
        assert feed.dropped == 2

    @pytest.mark.asyncio
    async def test_consumer_waits_for_push(self) -> None:
        feed = SnapshotFeed()
        received: list[int] = []

        async def consume() -> None:
            async for snap in feed:
                received.append(snap.tick)

        consumer = asyncio.ensure_future(consume())
        await asyncio.sleep(0)
        feed.push(snapshot(tick=1))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        feed.push(snapshot(tick=2))
        feed.close()
        await asyncio.wait_for(consumer, timeout=1.0)
        assert received == [1, 2]

    @pytest.mark.asyncio
    async def test_closed_feed_is_single_use(self) -> None:
        feed = SnapshotFeed()
        feed.push(snapshot(tick=1))
        feed.close()
        first = [s.tick async for s in feed]
        second = [s.tick async for s in feed]
        assert first == [1]
        assert second == []
        assert feed.delivered == 1

    def test_push_after_close_rejected(self) -> None:
        feed = SnapshotFeed()
        feed.close()
        with pytest.raises(RuntimeError):
            feed.push(snapshot())


class TestReplayProducer:
    @pytest.mark.asyncio
    async def test_restartable(self) -> None:
        producer = ReplayProducer([snapshot(tick=1), snapshot(tick=2)])
        first = [s.tick async for s in producer]
        second = [s.tick async for s in producer]
        assert first == second == [1, 2]
