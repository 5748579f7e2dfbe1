"""End-to-end tests for the CoachingSession tick loop."""

from __future__ import annotations

import asyncio

import pytest

from arousal_engine.config import EngineConfig, Settings
from arousal_engine.core.session import CoachingSession, TickResult
from arousal_engine.core.ticks import ReplayProducer
from arousal_engine.domain.enums import (
    ArousalBand,
    DecisionSource,
    EngineMode,
    FallbackReason,
    ProviderId,
    SuggestionCategory,
    SuggestionSeverity,
)
from arousal_engine.remote.coaching import RemoteCoachingGenerator
from arousal_engine.remote.credentials import StaticKeyProvider
from arousal_engine.remote.providers import ClaudeProvider, ProviderRegistry
from arousal_engine.services.session_factory import SessionFactory
from arousal_engine.store.history import SessionHistoryTracker

from tests.factories import (
    BASE,
    FakeChatModel,
    RecordingSink,
    make_client,
    meltdown_snapshot,
    profile,
    snapshot,
)


def _session(config: EngineConfig, *, model: FakeChatModel | None = None, **kw) -> tuple[CoachingSession, RecordingSink]:
    sink = RecordingSink()
    client = make_client(model, **kw) if model is not None else None
    session = CoachingSession(
        config,
        profile=profile(),
        client=client,
        tracker=SessionHistoryTracker("s-1", started_at=BASE, history_window=config.history_window),
        sinks=[sink],
    )
    return session, sink


class TestStandardSession:
    @pytest.mark.asyncio
    async def test_meltdown_tick(self) -> None:
        session, sink = _session(EngineConfig())
        result = await session.process(meltdown_snapshot(tick=1))

        assert isinstance(result, TickResult)
        assert result.decision.band == ArousalBand.CRISIS
        assert result.suggestions[0].severity == SuggestionSeverity.HIGH
        assert result.suggestions[0].category == SuggestionCategory.SAFETY
        assert sink.results == [result]

    @pytest.mark.asyncio
    async def test_shutdown_tick(self) -> None:
        session, _ = _session(EngineConfig())
        result = await session.process(snapshot(tick=1, movement_intensity=0.05, vocal_stress=None))
        assert result.decision.band == ArousalBand.SHUTDOWN

    @pytest.mark.asyncio
    async def test_aggregate_matches_published_decisions(self) -> None:
        session, _ = _session(EngineConfig())
        for tick in range(1, 6):
            await session.process(snapshot(tick=tick))
        agg = session.summary()
        assert agg.total_decisions == 5
        assert sum(agg.band_counts.values()) == 5

    @pytest.mark.asyncio
    async def test_summary_published_periodically(self) -> None:
        session, sink = _session(EngineConfig(summary_every_ticks=2))
        for tick in range(1, 6):
            await session.process(snapshot(tick=tick))
        assert [s.total_decisions for s in sink.summaries] == [2, 4]

    @pytest.mark.asyncio
    async def test_run_consumes_producer_and_closes(self) -> None:
        session, sink = _session(EngineConfig())
        producer = ReplayProducer([snapshot(tick=t) for t in (1, 2, 3)])
        final = await session.run(producer)
        assert final.total_decisions == 3
        assert session.closed
        assert sink.summaries[-1] == final

    @pytest.mark.asyncio
    async def test_process_after_close_rejected(self) -> None:
        session, _ = _session(EngineConfig())
        await session.close()
        with pytest.raises(RuntimeError):
            await session.process(snapshot(tick=1))

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        session, sink = _session(EngineConfig())
        await session.process(snapshot(tick=1))
        first = await session.close()
        second = await session.close()
        assert first == second
        assert len(sink.summaries) == 1

    @pytest.mark.asyncio
    async def test_repeated_suggestion_suppressed_within_cooldown(self) -> None:
        session, _ = _session(EngineConfig(suggestion_cooldown=30.0))
        first = await session.process(snapshot(tick=1))
        second = await session.process(snapshot(tick=2))
        assert first.suggestions
        first_texts = {s.text for s in first.suggestions}
        assert not first_texts & {s.text for s in second.suggestions}


class TestPersonalizedSession:
    @pytest.mark.asyncio
    async def test_remote_verdict_published(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED)
        session, _ = _session(config, model=FakeChatModel())
        result = await session.process(snapshot(tick=1))
        assert result.decision.source == DecisionSource.REMOTE
        assert result.fallback_reason is None

    @pytest.mark.asyncio
    async def test_failure_falls_back_and_is_counted(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED)
        session, _ = _session(config, model=FakeChatModel(error=ConnectionError("down")))
        result = await session.process(snapshot(tick=1))
        assert result.decision.source == DecisionSource.RULE
        assert result.fallback_reason == FallbackReason.TRANSPORT
        assert session.summary().fallback_count == 1

    @pytest.mark.asyncio
    async def test_close_cancels_remote_work(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED, tick_interval=0.01)
        model = FakeChatModel(delay=5.0)
        session, _ = _session(config, model=model)
        result = await session.process(snapshot(tick=1))
        assert result.fallback_reason == FallbackReason.ABANDONED

        await session.close()
        client = session.arbiter.client
        assert client.in_flight_count == 0
        assert client.cache_size == 0

    @pytest.mark.asyncio
    async def test_slow_provider_keeps_one_call_in_flight(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED, tick_interval=0.01)
        model = FakeChatModel(delay=5.0)
        session, _ = _session(config, model=model)

        results = [await session.process(snapshot(tick=t)) for t in range(1, 7)]

        client = session.arbiter.client
        assert model.calls == 1
        assert client.stats.network_calls == 1
        assert client.in_flight_count == 1
        assert results[0].fallback_reason == FallbackReason.ABANDONED
        assert {r.fallback_reason for r in results[1:]} <= {
            FallbackReason.ABANDONED, FallbackReason.BUSY,
        }
        assert all(r.decision.source == DecisionSource.RULE for r in results)
        await session.close()

    @pytest.mark.asyncio
    async def test_close_during_pending_tick_discards_it(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED, tick_interval=5.0)
        model = FakeChatModel(delay=5.0)
        session, sink = _session(config, model=model)

        tick = asyncio.ensure_future(session.process(snapshot(tick=1)))
        await asyncio.sleep(0.01)
        assert model.calls == 1

        final = await session.close()
        assert await tick is None
        assert final.total_decisions == 0
        assert sink.results == []
        assert [s.total_decisions for s in sink.summaries] == [0]

    @pytest.mark.asyncio
    async def test_concurrent_close_publishes_one_summary(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED, tick_interval=5.0)
        session, sink = _session(config, model=FakeChatModel(delay=5.0))

        tick = asyncio.ensure_future(session.process(snapshot(tick=1)))
        await asyncio.sleep(0.01)
        first, second = await asyncio.gather(session.close(), session.close())
        await tick
        assert first == second
        assert len(sink.summaries) == 1


_COACHING_ANSWER = "1. Dim the lights and move to a quieter room.\n2. Offer headphones or a weighted blanket."


def _remote_coach(model: FakeChatModel) -> RemoteCoachingGenerator:
    return RemoteCoachingGenerator(
        ClaudeProvider(),
        StaticKeyProvider({ProviderId.CLAUDE: "test-key"}),
        model_factory=lambda provider, api_key: model,
    )


class TestRemoteCoachingSession:
    @pytest.mark.asyncio
    async def test_model_written_suggestions_published(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED)
        sink = RecordingSink()
        session = CoachingSession(
            config,
            profile=profile(),
            client=make_client(FakeChatModel()),
            coach=_remote_coach(FakeChatModel(_COACHING_ANSWER)),
            sinks=[sink],
        )

        result = await session.process(snapshot(tick=1))

        assert result.decision.band == ArousalBand.HIGH
        assert [s.text for s in result.suggestions] == [
            "Dim the lights and move to a quieter room.",
            "Offer headphones or a weighted blanket.",
        ]
        assert all(s.resource_url for s in result.suggestions)
        assert sink.results == [result]
        await session.close()

    @pytest.mark.asyncio
    async def test_close_while_coaching_pending_discards_tick(self) -> None:
        config = EngineConfig(mode=EngineMode.PERSONALIZED)
        gate = asyncio.Event()
        coaching_model = FakeChatModel(_COACHING_ANSWER, gate=gate)
        sink = RecordingSink()
        session = CoachingSession(
            config,
            profile=profile(),
            client=make_client(FakeChatModel()),
            coach=_remote_coach(coaching_model),
            sinks=[sink],
        )

        tick = asyncio.ensure_future(session.process(snapshot(tick=1)))
        for _ in range(20):
            if coaching_model.calls:
                break
            await asyncio.sleep(0.01)
        assert coaching_model.calls == 1

        final = await session.close()
        gate.set()
        assert await tick is None
        assert final.total_decisions == 0
        assert sink.results == []


class TestSessionFactory:
    def _factory(self, **settings) -> SessionFactory:
        return SessionFactory(
            Settings(**settings),
            ProviderRegistry.with_defaults(),
            StaticKeyProvider({ProviderId.CLAUDE: "test-key"}),
            model_factory=lambda provider, api_key: FakeChatModel(),
        )

    def test_remote_coaching_enabled_for_personalized_sessions(self) -> None:
        factory = self._factory(mode=EngineMode.PERSONALIZED, remote_coaching=True)
        session = factory.create()
        assert isinstance(session.coach, RemoteCoachingGenerator)
        assert session.arbiter.client is not None

    def test_standard_sessions_coach_from_rule_table(self) -> None:
        factory = self._factory(mode=EngineMode.STANDARD, remote_coaching=True)
        session = factory.create()
        assert not isinstance(session.coach, RemoteCoachingGenerator)
        assert session.arbiter.client is None

    def test_remote_coaching_off_by_default(self) -> None:
        session = self._factory(mode=EngineMode.PERSONALIZED).create()
        assert not isinstance(session.coach, RemoteCoachingGenerator)
