"""DecisionArbiter — publishes exactly one Decision per tick.

Standard mode:
    The rule-based Decision is published as-is.  No network, ever.

Personalized mode:
    1. Start the remote evaluation (it only suspends, never blocks).
    2. Classify synchronously while the remote call is in progress.
    3. Wait at most the tick budget for the remote verdict.
    4. Remote success → publish the remote Decision, stamped for this tick.
       Any RemoteError or budget overrun → publish the rule Decision object
       itself and record the fallback reason.

    A call abandoned at the budget keeps running inside the client (it is
    shielded there) and may still populate the cache for a later tick.  It
    never publishes on its own: late verdicts cannot reorder decisions.
    While it runs, ticks whose context differs are not sent at all and fall
    back with reason ``busy``.

Persistent failure:
    ``failure_alert_threshold`` consecutive fallbacks raise one observability
    event per streak (WARNING + optional callback) recommending standard
    mode.  The arbiter does not switch modes on its own.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from arousal_engine.config import EngineConfig
from arousal_engine.core.classifier import RuleBasedClassifier
from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import EngineMode, FallbackReason
from arousal_engine.domain.profile import ChildProfile
from arousal_engine.domain.session import RollingSessionSummary
from arousal_engine.domain.snapshot import FeatureSnapshot
from arousal_engine.remote.client import RemoteReasoningClient
from arousal_engine.remote.errors import (
    RemoteBusy,
    RemoteError,
    RemoteMalformedResponse,
    RemoteTimeout,
    RemoteUnavailable,
)

logger = logging.getLogger(__name__)

# Called with the current failure streak length
FailureAlert = Callable[[int], None]


@dataclass(frozen=True)
class ArbiterOutcome:
    """The published Decision and, when the remote path failed, why."""

    decision: Decision
    fallback_reason: Optional[FallbackReason] = None

    @property
    def fell_back(self) -> bool:
        return self.fallback_reason is not None


def fallback_reason_for(exc: RemoteError) -> FallbackReason:
    if isinstance(exc, RemoteBusy):
        return FallbackReason.BUSY
    if isinstance(exc, RemoteUnavailable):
        return FallbackReason.UNAVAILABLE
    if isinstance(exc, RemoteTimeout):
        return FallbackReason.TIMEOUT
    if isinstance(exc, RemoteMalformedResponse):
        return FallbackReason.MALFORMED
    # RemoteTransportError and any other remote failure
    return FallbackReason.TRANSPORT


class ArbiterStats:
    """Publication accounting for observability endpoints."""

    __slots__ = ("rule_published", "remote_published", "fallbacks", "alerts_raised")

    def __init__(self) -> None:
        self.rule_published: int = 0
        self.remote_published: int = 0
        self.fallbacks: dict[FallbackReason, int] = {}
        self.alerts_raised: int = 0

    @property
    def total_fallbacks(self) -> int:
        return sum(self.fallbacks.values())

    def to_dict(self) -> dict:
        return {
            "rule_published": self.rule_published,
            "remote_published": self.remote_published,
            "fallbacks": {r.value: n for r, n in self.fallbacks.items()},
            "total_fallbacks": self.total_fallbacks,
            "alerts_raised": self.alerts_raised,
        }


class DecisionArbiter:
    """Chooses between the rule-based and remote Decision for each tick.

    Args:
        config: Session engine configuration (mode, budget, alert threshold).
        classifier: The always-available rule-based path.
        client: Remote reasoning client; None means personalized mode can
            only ever fall back.
        profile: Child profile sent (as traits) with every remote request.
        on_persistent_failure: Optional callback for the failure-streak event.
    """

    def __init__(
        self,
        config: EngineConfig,
        classifier: RuleBasedClassifier,
        client: Optional[RemoteReasoningClient] = None,
        *,
        profile: Optional[ChildProfile] = None,
        on_persistent_failure: Optional[FailureAlert] = None,
    ) -> None:
        self._config = config
        self._classifier = classifier
        self._client = client
        self._profile = profile
        self._on_persistent_failure = on_persistent_failure
        self._last_tick: Optional[int] = None
        self._failure_streak = 0
        self._alerted = False
        self._stats = ArbiterStats()

    # ── Public API ───────────────────────────────────────────────────────

    async def decide(
        self,
        snapshot: FeatureSnapshot,
        summary: Optional[RollingSessionSummary] = None,
    ) -> ArbiterOutcome:
        """Produce this tick's published Decision.

        Raises:
            ValueError: If the tick does not strictly increase.
        """
        if self._last_tick is not None and snapshot.tick <= self._last_tick:
            raise ValueError(
                f"Tick {snapshot.tick} is not after last published tick {self._last_tick}"
            )
        self._last_tick = snapshot.tick

        if self._config.mode == EngineMode.STANDARD:
            decision = self._classifier.classify(snapshot)
            self._stats.rule_published += 1
            return ArbiterOutcome(decision=decision)

        return await self._decide_personalized(snapshot, summary or RollingSessionSummary())

    @property
    def mode(self) -> EngineMode:
        return self._config.mode

    @property
    def stats(self) -> ArbiterStats:
        return self._stats

    @property
    def failure_streak(self) -> int:
        return self._failure_streak

    @property
    def client(self) -> Optional[RemoteReasoningClient]:
        return self._client

    # ── Personalized path ────────────────────────────────────────────────

    async def _decide_personalized(
        self,
        snapshot: FeatureSnapshot,
        summary: RollingSessionSummary,
    ) -> ArbiterOutcome:
        if self._client is None:
            rule_decision = self._classifier.classify(snapshot)
            return self._fallback(rule_decision, FallbackReason.UNAVAILABLE)

        remote_task = asyncio.ensure_future(
            self._client.evaluate(self._profile, snapshot, summary)
        )
        rule_decision = self._classifier.classify(snapshot)

        try:
            remote = await asyncio.wait_for(remote_task, timeout=self._config.tick_budget)
        except asyncio.TimeoutError:
            logger.debug("Remote verdict missed tick %d budget", snapshot.tick)
            return self._fallback(rule_decision, FallbackReason.ABANDONED)
        except RemoteError as exc:
            logger.debug("Remote path failed for tick %d: %s", snapshot.tick, exc)
            return self._fallback(rule_decision, fallback_reason_for(exc))

        self._failure_streak = 0
        self._alerted = False
        self._stats.remote_published += 1
        return ArbiterOutcome(decision=remote.for_tick(snapshot.tick, snapshot.captured_at))

    def _fallback(self, rule_decision: Decision, reason: FallbackReason) -> ArbiterOutcome:
        self._stats.rule_published += 1
        self._stats.fallbacks[reason] = self._stats.fallbacks.get(reason, 0) + 1
        self._failure_streak += 1
        logger.info(
            "Tick %d fell back to rule decision (%s, streak=%d)",
            rule_decision.tick, reason.value, self._failure_streak,
        )

        if self._failure_streak >= self._config.failure_alert_threshold and not self._alerted:
            self._alerted = True
            self._stats.alerts_raised += 1
            logger.warning(
                "Remote reasoning failed %d ticks in a row; standard mode recommended",
                self._failure_streak,
            )
            if self._on_persistent_failure is not None:
                self._on_persistent_failure(self._failure_streak)

        return ArbiterOutcome(decision=rule_decision, fallback_reason=reason)
