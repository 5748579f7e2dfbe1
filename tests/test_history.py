"""Tests for the SessionHistoryTracker."""

from __future__ import annotations

import pytest

from arousal_engine.domain.enums import (
    ArousalBand,
    Behavior,
    SessionTrend,
    SuggestionCategory,
    SuggestionSeverity,
)
from arousal_engine.domain.suggestion import Suggestion
from arousal_engine.store.history import SessionHistoryTracker, detect_trend

from tests.factories import BASE, decision

_B = ArousalBand


@pytest.fixture
def tracker() -> SessionHistoryTracker:
    return SessionHistoryTracker("session-1", started_at=BASE)


def _suggestion(text: str = "Breathe.") -> Suggestion:
    return Suggestion(severity=SuggestionSeverity.LOW, text=text, category=SuggestionCategory.REGULATION)


class TestRecord:
    def test_band_counts_sum_to_decisions(self, tracker: SessionHistoryTracker) -> None:
        bands = [_B.CALM, _B.CALM, _B.BUILDING, _B.HIGH, _B.CALM]
        for tick, band in enumerate(bands, start=1):
            tracker.record(decision(band, tick))
        agg = tracker.summarize()
        assert sum(agg.band_counts.values()) == agg.total_decisions == 5
        assert agg.band_counts[_B.CALM] == 3
        assert agg.dominant_band == _B.CALM

    def test_duplicate_tick_rejected(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=1))
        with pytest.raises(ValueError):
            tracker.record(decision(tick=1))

    def test_behaviors_first_seen_order(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=1), behaviors=[Behavior.ROCKING, Behavior.PACING])
        tracker.record(decision(tick=2), behaviors=[Behavior.PACING, Behavior.SPINNING])
        assert tracker.summarize().behaviors_observed == (
            Behavior.ROCKING, Behavior.PACING, Behavior.SPINNING,
        )

    def test_suggestion_counts_and_last_issued(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=1), suggestions=[_suggestion()])
        tracker.record(decision(tick=5), suggestions=[_suggestion()])
        assert tracker.summarize().suggestion_counts == {"Breathe.": 2}
        assert tracker.last_issued("Breathe.") == decision(tick=5).timestamp
        assert tracker.last_issued("never") is None

    def test_fallback_count(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=1), fallback=True)
        tracker.record(decision(tick=2))
        assert tracker.summarize().fallback_count == 1

    def test_counts_monotonic(self, tracker: SessionHistoryTracker) -> None:
        previous = 0
        for tick in range(1, 6):
            tracker.record(decision(tick=tick))
            total = tracker.summarize().total_decisions
            assert total > previous
            previous = total


class TestSummarize:
    def test_idempotent(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=1))
        assert tracker.summarize() == tracker.summarize()

    def test_snapshot_is_detached(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=1))
        before = tracker.summarize()
        tracker.record(decision(tick=2))
        assert before.total_decisions == 1


class TestRollingSummary:
    def test_window_is_bounded(self) -> None:
        tracker = SessionHistoryTracker(history_window=4, started_at=BASE)
        for tick in range(1, 11):
            tracker.record(decision(_B.CALM, tick))
        summary = tracker.rolling_summary()
        assert len(summary.recent_bands) <= 4
        assert summary.trend == SessionTrend.STABLE

    def test_duration_from_decision_times(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=150))
        assert tracker.rolling_summary().duration_minutes == 2

    def test_just_started(self, tracker: SessionHistoryTracker) -> None:
        assert tracker.rolling_summary().trend == SessionTrend.JUST_STARTED


class TestDetectTrend:
    def test_escalating(self) -> None:
        assert detect_trend([_B.CALM, _B.BUILDING, _B.HIGH]) == SessionTrend.ESCALATING

    def test_improving(self) -> None:
        assert detect_trend([_B.CRISIS, _B.HIGH, _B.CALM]) == SessionTrend.IMPROVING

    def test_cycling(self) -> None:
        assert detect_trend([_B.CALM, _B.HIGH, _B.BUILDING, _B.BUILDING]) == SessionTrend.CYCLING

    def test_variable(self) -> None:
        assert detect_trend([_B.CALM, _B.BUILDING, _B.CALM]) == SessionTrend.VARIABLE

    def test_shutdown_is_below_calm(self) -> None:
        assert detect_trend([_B.CALM, _B.SHUTDOWN, _B.SHUTDOWN]) != SessionTrend.ESCALATING


class TestClose:
    def test_close_returns_final_and_discards(self, tracker: SessionHistoryTracker) -> None:
        tracker.record(decision(tick=1))
        final = tracker.close()
        assert final.total_decisions == 1
        assert tracker.closed
        with pytest.raises(RuntimeError):
            tracker.record(decision(tick=2))
        with pytest.raises(RuntimeError):
            tracker.summarize()
