"""CoachingSession — the per-session tick loop.

One tick, in order:
    snapshot → arbiter (rule decision, optional remote override)
             → coaching generator
             → history tracker (the tick's only state mutation)
             → presentation sinks

Ticks are processed strictly one at a time on a single event loop, so
decisions publish in tick order.  The only suspension points are
the arbiter's bounded wait for a remote verdict and, when enabled, the
bounded remote coaching call.

Closing the session cancels every in-flight remote call, publishes the
final summary and destroys the aggregate.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, Optional, Protocol, Sequence

from pydantic import BaseModel

from arousal_engine.config import EngineConfig
from arousal_engine.core.arbiter import DecisionArbiter, FailureAlert
from arousal_engine.core.classifier import RuleBasedClassifier
from arousal_engine.core.coaching import CoachingGenerator
from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import FallbackReason
from arousal_engine.domain.profile import ChildProfile
from arousal_engine.domain.session import SessionAggregate
from arousal_engine.domain.snapshot import FeatureSnapshot
from arousal_engine.domain.suggestion import Suggestion
from arousal_engine.remote.client import RemoteReasoningClient
from arousal_engine.store.history import SessionHistoryTracker

logger = logging.getLogger(__name__)


class TickResult(BaseModel):
    """Everything presentation needs for one tick."""

    decision: Decision
    suggestions: tuple[Suggestion, ...] = ()
    fallback_reason: Optional[FallbackReason] = None

    model_config = {"frozen": True}

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class PresentationSink(Protocol):
    """Downstream consumer of tick results and periodic summaries."""

    async def publish(self, result: TickResult) -> None:
        ...

    async def publish_summary(self, aggregate: SessionAggregate) -> None:
        ...


class CoachingSession:
    """Wires the engine components for one caregiving session.

    Args:
        config: Frozen engine configuration for this session.
        profile: Child profile; required for personalized reasoning.
        classifier: Rule-based classifier (defaults provided).
        client: Remote reasoning client; None disables the remote path.
        coach: Coaching generator; built from config when omitted.
        tracker: History tracker; built from config when omitted.
        sinks: Presentation sinks notified of every result.
        on_persistent_failure: Forwarded to the arbiter.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        profile: Optional[ChildProfile] = None,
        classifier: Optional[RuleBasedClassifier] = None,
        client: Optional[RemoteReasoningClient] = None,
        coach: Optional[CoachingGenerator] = None,
        tracker: Optional[SessionHistoryTracker] = None,
        sinks: Sequence[PresentationSink] = (),
        on_persistent_failure: Optional[FailureAlert] = None,
    ) -> None:
        self._config = config
        self._profile = profile
        self._client = client
        self._coach = coach or CoachingGenerator(
            max_suggestions=config.max_suggestions,
            cooldown=config.suggestion_cooldown,
        )
        self._tracker = tracker or SessionHistoryTracker(history_window=config.history_window)
        self._sinks = list(sinks)
        self._arbiter = DecisionArbiter(
            config,
            classifier or RuleBasedClassifier(),
            client,
            profile=profile,
            on_persistent_failure=on_persistent_failure,
        )
        self._ticks = 0
        self._closed = False
        self._close_lock = asyncio.Lock()
        self._final: Optional[SessionAggregate] = None

    # ── Tick processing ──────────────────────────────────────────────────

    async def process(self, snapshot: FeatureSnapshot) -> Optional[TickResult]:
        """Run one tick end to end and publish the result.

        Returns None when the session was closed while the tick waited for
        a remote verdict or remote coaching.  Such a tick is discarded:
        nothing is recorded or published for it.
        """
        if self._closed:
            raise RuntimeError(f"Session {self.session_id} is closed")

        outcome = await self._arbiter.decide(snapshot, self._tracker.rolling_summary())
        if self._closed:
            logger.debug("Session %s closed during tick %d; result discarded", self.session_id, snapshot.tick)
            return None
        decision = outcome.decision

        suggestions = await self._coach.asuggest(
            decision,
            snapshot.behaviors,
            snapshot.environment,
            caregiver_stress=snapshot.caregiver_stress,
            history=self._tracker,
        )
        if self._closed:
            logger.debug("Session %s closed during tick %d; result discarded", self.session_id, snapshot.tick)
            return None

        self._tracker.record(
            decision,
            behaviors=snapshot.behaviors,
            suggestions=suggestions,
            fallback=outcome.fell_back,
        )
        self._ticks += 1

        result = TickResult(
            decision=decision,
            suggestions=tuple(suggestions),
            fallback_reason=outcome.fallback_reason,
        )
        logger.debug(
            "Session %s tick %d → %s via %s (%d suggestions)",
            self.session_id, decision.tick, decision.band.value,
            decision.source.value, len(suggestions),
        )

        for sink in self._sinks:
            await sink.publish(result)

        every = self._config.summary_every_ticks
        if every > 0 and self._ticks % every == 0 and not self._closed:
            await self._publish_summary(self._tracker.summarize())

        return result

    async def run(self, producer: AsyncIterable[FeatureSnapshot]) -> SessionAggregate:
        """Consume *producer* until it ends, then close the session."""
        logger.info("Session %s started in %s mode", self.session_id, self._config.mode.value)
        try:
            async for snapshot in producer:
                if self._closed:
                    break
                await self.process(snapshot)
        finally:
            final = await self.close()
        return final

    async def close(self) -> SessionAggregate:
        """End the session: cancel remote work, publish and discard the aggregate."""
        self._closed = True
        async with self._close_lock:
            if self._final is not None:
                return self._final
            if self._client is not None:
                await self._client.close()
            final = self._tracker.close()
            self._final = final
            await self._publish_summary(final)
        logger.info(
            "Session %s closed after %d ticks (arbiter=%s)",
            self.session_id, final.total_decisions, self._arbiter.stats.to_dict(),
        )
        return final

    # ── Queries ──────────────────────────────────────────────────────────

    def summary(self) -> SessionAggregate:
        if self._final is not None:
            return self._final
        return self._tracker.summarize()

    @property
    def session_id(self) -> str:
        return self._tracker.session_id

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def arbiter(self) -> DecisionArbiter:
        return self._arbiter

    @property
    def coach(self) -> CoachingGenerator:
        return self._coach

    @property
    def closed(self) -> bool:
        return self._closed

    def add_sink(self, sink: PresentationSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: PresentationSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    async def _publish_summary(self, aggregate: SessionAggregate) -> None:
        for sink in self._sinks:
            await sink.publish_summary(aggregate)
