"""RemoteCoachingGenerator — model-written coaching with the rule table behind it.

One asuggest() call:
    1. Crisis      always answered from the rule table, so the safety
                   suggestion leads and never waits on the network.
    2. Cache       the last remote answer is reused while the band is
                   unchanged and younger than ``cache_ttl``.
    3. Call        the provider gets a numbered-list coaching prompt,
                   bounded by ``timeout``.
    4. Parse       numbered lines, markdown stripped, at most
                   ``max_suggestions`` items.
    5. Screen      texts over 200 characters, duplicates and texts failing
                   the tone check are dropped; the rest are categorized by
                   keyword and carry their category's resource.
    6. Cooldown    texts issued within the cooldown window are dropped.

Any RemoteError, or nothing left after screening, yields the rule-table
suggestions for the tick instead.  Coaching never fails a tick.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from pydantic import SecretStr

from arousal_engine.core.coaching import DEFAULT_RULES, CoachingGenerator, CoachingRule, tone_violation
from arousal_engine.core.resources import categorize_text, with_resource
from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import (
    ArousalBand,
    Behavior,
    CaregiverStress,
    SuggestionCategory,
    SuggestionSeverity,
)
from arousal_engine.domain.snapshot import EnvironmentDescriptor
from arousal_engine.domain.suggestion import Suggestion
from arousal_engine.foundation.clock import monotonic
from arousal_engine.remote.client import ModelFactory
from arousal_engine.remote.credentials import KeyProvider
from arousal_engine.remote.errors import (
    RemoteError,
    RemoteMalformedResponse,
    RemoteTimeout,
    RemoteTransportError,
    RemoteUnavailable,
)
from arousal_engine.remote.prompts import render_coaching_prompt
from arousal_engine.remote.providers import ReasoningProvider, response_text
from arousal_engine.store.history import SessionHistoryTracker

logger = logging.getLogger(__name__)

_MAX_TEXT = 200
_NUMBERED = re.compile(r"^\s*\d+[.)]\s*(.+?)\s*$", re.MULTILINE)
_BULLET = re.compile(r"^\s*[-•]\s*")
_MARKDOWN = re.compile(r"\*\*|__|[*_`]")


def parse_numbered_list(text: str, limit: int = 3) -> list[str]:
    """Extract up to *limit* list items from a model answer.

    Numbered lines (``1.`` or ``1)``) are preferred.  Without any, every
    non-empty line that is not a heading ending in ``:`` counts as an item.
    """
    items = _NUMBERED.findall(text)
    if not items:
        items = [
            _BULLET.sub("", line)
            for line in text.splitlines()
            if line.strip() and not line.strip().endswith(":")
        ]
    cleaned = (_MARKDOWN.sub("", item).strip() for item in items)
    return [item for item in cleaned if item][:limit]


def _severity(band: ArousalBand, category: SuggestionCategory) -> SuggestionSeverity:
    if band == ArousalBand.HIGH and category in (SuggestionCategory.SAFETY, SuggestionCategory.DEESCALATION):
        return SuggestionSeverity.HIGH
    if band == ArousalBand.CALM:
        return SuggestionSeverity.LOW
    return SuggestionSeverity.MEDIUM


@dataclass(frozen=True)
class _CachedAdvice:
    band: ArousalBand
    suggestions: tuple[Suggestion, ...]
    expires_at: float


class RemoteCoachingStats:
    """Call accounting for remote coaching."""

    __slots__ = ("remote_calls", "cache_hits", "rule_fallbacks", "dropped_texts")

    def __init__(self) -> None:
        self.remote_calls: int = 0
        self.cache_hits: int = 0
        self.rule_fallbacks: int = 0
        self.dropped_texts: int = 0

    def to_dict(self) -> dict:
        return {
            "remote_calls": self.remote_calls,
            "cache_hits": self.cache_hits,
            "rule_fallbacks": self.rule_fallbacks,
            "dropped_texts": self.dropped_texts,
        }


class RemoteCoachingGenerator(CoachingGenerator):
    """Coaching written by a remote chat model, falling back to the rule table.

    Args:
        provider: Reasoning provider whose chat model writes the guidance.
        keys: Credential lookup for the provider.
        rules: Fallback coaching table; defaults to DEFAULT_RULES.
        max_suggestions: Upper bound on suggestions per tick.
        cooldown: Seconds before the same text may be issued again.
        timeout: Hard bound on one coaching call, in seconds.
        cache_ttl: How long an answer is reused for an unchanged band.
        model_factory: Override for chat model construction (tests).
    """

    def __init__(
        self,
        provider: ReasoningProvider,
        keys: KeyProvider,
        *,
        rules: Sequence[CoachingRule] = DEFAULT_RULES,
        max_suggestions: int = 3,
        cooldown: float = 30.0,
        timeout: float = 3.0,
        cache_ttl: float = 10.0,
        model_factory: Optional[ModelFactory] = None,
    ) -> None:
        super().__init__(rules, max_suggestions=max_suggestions, cooldown=cooldown)
        self._provider = provider
        self._keys = keys
        self._timeout = timeout
        self._cache_ttl = cache_ttl
        self._model_factory = model_factory
        self._models: dict[str, Any] = {}
        self._cached: Optional[_CachedAdvice] = None
        self._stats = RemoteCoachingStats()

    @property
    def stats(self) -> RemoteCoachingStats:
        return self._stats

    # ── Public API ───────────────────────────────────────────────────────

    async def asuggest(
        self,
        decision: Decision,
        recent_behaviors: Iterable[Behavior],
        environment: EnvironmentDescriptor,
        *,
        caregiver_stress: Optional[CaregiverStress] = None,
        history: Optional[SessionHistoryTracker] = None,
    ) -> list[Suggestion]:
        behaviors = tuple(recent_behaviors)
        if decision.band == ArousalBand.CRISIS:
            return self.suggest(
                decision, behaviors, environment,
                caregiver_stress=caregiver_stress, history=history,
            )

        try:
            remote = await self._remote_suggestions(decision.band, behaviors, environment, caregiver_stress)
        except RemoteError as exc:
            self._stats.rule_fallbacks += 1
            logger.warning("Remote coaching failed for tick %d (%s); using rule table", decision.tick, exc)
            return self.suggest(
                decision, behaviors, environment,
                caregiver_stress=caregiver_stress, history=history,
            )

        selected = [
            s for s in remote
            if not self._cooling_down(s.text, decision.timestamp, history)
        ]
        if not selected:
            self._stats.rule_fallbacks += 1
            logger.debug("Remote coaching for tick %d all cooling down; using rule table", decision.tick)
            return self.suggest(
                decision, behaviors, environment,
                caregiver_stress=caregiver_stress, history=history,
            )
        return selected[: self.max_suggestions]

    # ── Internals ────────────────────────────────────────────────────────

    async def _remote_suggestions(
        self,
        band: ArousalBand,
        behaviors: tuple[Behavior, ...],
        environment: EnvironmentDescriptor,
        caregiver_stress: Optional[CaregiverStress],
    ) -> tuple[Suggestion, ...]:
        cached = self._cached
        if cached is not None and cached.band == band and monotonic() < cached.expires_at:
            self._stats.cache_hits += 1
            return cached.suggestions

        api_key = self._keys.get(self._provider.identity)
        if api_key is None or not api_key.get_secret_value():
            raise RemoteUnavailable(
                f"No API key configured for provider '{self._provider.identity.value}'"
            )

        prompt = render_coaching_prompt(
            band.value,
            [b.value for b in behaviors],
            sorted(flag.value for flag in environment.flags),
            caregiver_stress.value if caregiver_stress is not None else None,
        )
        messages = self._provider.build_coaching_request(prompt)
        model = self._model_for(api_key)

        self._stats.remote_calls += 1
        try:
            response = await asyncio.wait_for(model.ainvoke(messages), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise RemoteTimeout(self._timeout) from None
        except Exception as exc:
            raise RemoteTransportError(str(exc)) from exc

        suggestions = self._screen(band, parse_numbered_list(response_text(response), self.max_suggestions))
        if not suggestions:
            raise RemoteMalformedResponse("No usable coaching suggestions in provider response")

        self._cached = _CachedAdvice(band, suggestions, monotonic() + self._cache_ttl)
        logger.info("Remote coaching for %s: %d suggestions", band.value, len(suggestions))
        return suggestions

    def _screen(self, band: ArousalBand, texts: list[str]) -> tuple[Suggestion, ...]:
        screened: list[Suggestion] = []
        seen: set[str] = set()
        for text in texts:
            category = categorize_text(text)
            if len(text) > _MAX_TEXT or text in seen:
                self._stats.dropped_texts += 1
                continue
            reason = tone_violation(text, category)
            if reason is not None:
                self._stats.dropped_texts += 1
                logger.warning("Dropped remote coaching text that %s: %r", reason, text)
                continue
            seen.add(text)
            screened.append(with_resource(
                Suggestion(severity=_severity(band, category), text=text, category=category)
            ))
        return tuple(screened)

    def _model_for(self, api_key: SecretStr) -> Any:
        secret = api_key.get_secret_value()
        model = self._models.get(secret)
        if model is None:
            try:
                if self._model_factory is not None:
                    model = self._model_factory(self._provider, api_key)
                else:
                    model = self._provider.create_model(api_key)
            except Exception as exc:
                raise RemoteUnavailable(f"Cannot construct {self._provider!r}: {exc}") from exc
            self._models[secret] = model
        return model
