"""RemoteReasoningClient — cached, deduplicated, time-bounded remote verdicts.

Request lifecycle for one evaluate():
    1. Credential lookup.  No key → RemoteUnavailable, no network.
    2. Context assembly and fingerprinting (see remote.context).
    3. Under the lock: purge expired entries, then
         cache hit          → return the cached Decision
         same fingerprint   → join the in-flight task
         other call pending → RemoteBusy, no network
         otherwise          → start exactly one provider call
    4. Outside the lock: await the task through ``asyncio.shield`` so a
       caller that stops waiting never cancels the shared call.

A client serves one session, so at most one provider call is ever in
flight per session.  A slow provider therefore costs one abandoned call,
not one call per tick.

Only successful verdicts are cached.  Failures propagate to every waiter
of that call and leave no trace in the cache, so the next tick retries.

The lock guards the cache and in-flight registry only.  It is never held
while the provider call is awaited.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional

from pydantic import SecretStr

from arousal_engine.domain.decision import Decision
from arousal_engine.domain.profile import ChildProfile
from arousal_engine.domain.session import RollingSessionSummary
from arousal_engine.domain.snapshot import FeatureSnapshot
from arousal_engine.foundation.clock import monotonic
from arousal_engine.remote.context import RemoteContext, build_context
from arousal_engine.remote.credentials import KeyProvider
from arousal_engine.remote.errors import (
    RemoteBusy,
    RemoteError,
    RemoteMalformedResponse,
    RemoteTimeout,
    RemoteTransportError,
    RemoteUnavailable,
)
from arousal_engine.remote.providers import ReasoningProvider, response_text

logger = logging.getLogger(__name__)

# (provider, api_key) -> langchain chat model exposing ``ainvoke``
ModelFactory = Callable[[ReasoningProvider, SecretStr], Any]


def _default_model_factory(provider: ReasoningProvider, api_key: SecretStr) -> Any:
    return provider.create_model(api_key)


@dataclass(frozen=True)
class CacheEntry:
    decision: Decision
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class RemoteClientStats:
    """Call accounting for observability endpoints."""

    __slots__ = ("network_calls", "cache_hits", "joined", "busy", "failures")

    def __init__(self) -> None:
        self.network_calls: int = 0
        self.cache_hits: int = 0
        self.joined: int = 0
        self.busy: int = 0
        self.failures: int = 0

    def to_dict(self) -> dict:
        return {
            "network_calls": self.network_calls,
            "cache_hits": self.cache_hits,
            "joined": self.joined,
            "busy": self.busy,
            "failures": self.failures,
        }


class RemoteReasoningClient:
    """Provider-agnostic remote classification with a fingerprint cache.

    One client per session: the cache lifetime never exceeds the session's.
    """

    def __init__(
        self,
        provider: ReasoningProvider,
        keys: KeyProvider,
        *,
        cache_ttl: float = 5.0,
        timeout: float = 8.0,
        model_factory: Optional[ModelFactory] = None,
    ) -> None:
        self._provider = provider
        self._keys = keys
        self._cache_ttl = cache_ttl
        self._timeout = timeout
        self._model_factory = model_factory or _default_model_factory
        self._models: dict[str, Any] = {}

        self._lock = asyncio.Lock()
        self._cache: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Future] = {}
        self._stats = RemoteClientStats()
        self._closed = False

    # ── Public API ───────────────────────────────────────────────────────

    async def evaluate(
        self,
        profile: Optional[ChildProfile],
        snapshot: FeatureSnapshot,
        summary: RollingSessionSummary,
    ) -> Decision:
        """Return a remote Decision for this tick's context.

        Raises:
            RemoteUnavailable: No credential, no profile, or client closed.
            RemoteBusy: A call for a different fingerprint is still pending.
            RemoteTimeout: The provider exceeded the hard timeout.
            RemoteMalformedResponse: The verdict could not be parsed.
            RemoteTransportError: The provider call failed in transport.
        """
        if self._closed:
            raise RemoteUnavailable("Remote reasoning client is closed")

        api_key = self._keys.get(self._provider.identity)
        if api_key is None or not api_key.get_secret_value():
            raise RemoteUnavailable(
                f"No API key configured for provider '{self._provider.identity.value}'"
            )
        if profile is None:
            raise RemoteUnavailable("No child profile available for personalized reasoning")

        context = build_context(profile, snapshot, summary)
        fingerprint = context.fingerprint

        async with self._lock:
            self._purge_expired(monotonic())

            entry = self._cache.get(fingerprint)
            if entry is not None:
                self._stats.cache_hits += 1
                logger.debug("Remote cache hit for tick %d (fp=%s)", snapshot.tick, fingerprint[:12])
                return entry.decision

            task = self._in_flight.get(fingerprint)
            if task is None and self._in_flight:
                self._stats.busy += 1
                logger.debug("Remote call still pending; tick %d not sent", snapshot.tick)
                raise RemoteBusy("A remote call for this session is already in flight")
            if task is None:
                task = asyncio.ensure_future(self._call_remote(context, api_key))
                task.add_done_callback(partial(self._on_call_done, fingerprint))
                self._in_flight[fingerprint] = task
                self._stats.network_calls += 1
                logger.debug("Remote call started for tick %d (fp=%s)", snapshot.tick, fingerprint[:12])
            else:
                self._stats.joined += 1
                logger.debug("Joined in-flight remote call for tick %d", snapshot.tick)

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._closed and task.cancelled():
                raise RemoteUnavailable("Remote call cancelled by session close") from None
            raise

    async def close(self) -> None:
        """Cancel every in-flight call and drop the cache."""
        if self._closed:
            return
        self._closed = True
        async with self._lock:
            pending = list(self._in_flight.values())
            self._in_flight.clear()
            self._cache.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(
            "Remote client closed (cancelled=%d, stats=%s)",
            len(pending), self._stats.to_dict(),
        )

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def provider(self) -> ReasoningProvider:
        return self._provider

    @property
    def stats(self) -> RemoteClientStats:
        return self._stats

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # ── Internals ────────────────────────────────────────────────────────

    def _purge_expired(self, now: float) -> None:
        expired = [fp for fp, entry in self._cache.items() if entry.expired(now)]
        for fp in expired:
            del self._cache[fp]

    def _model_for(self, api_key: SecretStr) -> Any:
        secret = api_key.get_secret_value()
        model = self._models.get(secret)
        if model is None:
            try:
                model = self._model_factory(self._provider, api_key)
            except Exception as exc:
                raise RemoteUnavailable(f"Cannot construct {self._provider!r}: {exc}") from exc
            self._models[secret] = model
        return model

    async def _call_remote(self, context: RemoteContext, api_key: SecretStr) -> Decision:
        started = monotonic()
        try:
            model = self._model_for(api_key)
            messages = self._provider.build_request(context.bundle)
            response = await asyncio.wait_for(model.ainvoke(messages), timeout=self._timeout)
            decision = self._provider.parse_response(response_text(response))
        except asyncio.TimeoutError:
            self._stats.failures += 1
            logger.warning("Remote call timed out after %.1fs", self._timeout)
            raise RemoteTimeout(self._timeout) from None
        except RemoteMalformedResponse as exc:
            self._stats.failures += 1
            logger.warning("Remote verdict rejected: %s", exc)
            raise
        except RemoteError:
            self._stats.failures += 1
            raise
        except Exception as exc:
            self._stats.failures += 1
            logger.warning("Remote transport failure: %s", exc)
            raise RemoteTransportError(str(exc)) from exc

        elapsed = monotonic() - started
        async with self._lock:
            if not self._closed:
                self._cache[context.fingerprint] = CacheEntry(
                    decision=decision,
                    expires_at=monotonic() + self._cache_ttl,
                )
        logger.info(
            "Remote verdict %s (confidence=%.2f) in %.2fs",
            decision.band.value, decision.confidence, elapsed,
        )
        return decision

    def _on_call_done(self, fingerprint: str, task: asyncio.Future) -> None:
        if self._in_flight.get(fingerprint) is task:
            del self._in_flight[fingerprint]
        if not task.cancelled():
            # Abandoned calls may have no waiter left to observe the error
            task.exception()
