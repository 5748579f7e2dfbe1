"""CoachingGenerator — ranked, context-aware guidance for the caregiver.

Selection pipeline for one tick:
    1. Match     every CoachingRule whose keys all hold for this tick
                 (band set, behavior category, environment flag, caregiver
                 stress; an unset key matches anything).
    2. Rank      by weight descending, then CATEGORY_ORDER, then table order.
    3. Filter    duplicate texts, texts issued within the cooldown window,
                 and any text failing the tone check.
    4. Crisis    a high-severity safety suggestion is placed first, even if
                 the cooldown would have suppressed it.
    5. Cap       at ``max_suggestions``.

Tone rules:
    - No text may propose restraining a child or suppressing a
      self-regulatory behavior (stimming, rocking, covering ears...).
    - Caregiver-facing texts validate; they never critique.
    A table that violates either rule is rejected at construction.

The generator is total: unknown combinations yield a (possibly empty) list.
Every suggestion carries the learning resource of its category.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from arousal_engine.core.resources import with_resource
from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import (
    CATEGORY_ORDER,
    ArousalBand,
    Behavior,
    BehaviorCategory,
    CaregiverStress,
    EnvironmentFlag,
    SuggestionCategory,
    SuggestionSeverity,
)
from arousal_engine.domain.snapshot import EnvironmentDescriptor
from arousal_engine.domain.suggestion import Suggestion
from arousal_engine.store.history import SessionHistoryTracker

logger = logging.getLogger(__name__)

_RESTRAINT = re.compile(
    r"\b("
    r"restrain\w*"
    r"|hold (them|the child|their \w+) (down|still)"
    r"|pin (them|the child|their \w+)"
    r"|(stop|prevent|block|discourage) (them |the child )?(from )?"
    r"(stimming|stims?|rocking|flapping|hand flapping|spinning|covering)"
    r"|make (them|the child) (stop|be still|sit still|look)"
    r"|(don't|do not) let (them|the child) (stim|rock|flap|spin)"
    r"|force (them|the child)|insist on eye contact"
    r")\b",
    re.IGNORECASE,
)

_CRITIQUE = re.compile(
    r"\b("
    r"you should have|you shouldn't have|your fault|you caused"
    r"|you('re| are) (doing it wrong|overreacting|failing)"
    r"|you failed|calm down|stop panicking|why didn't you"
    r")\b",
    re.IGNORECASE,
)


def tone_violation(text: str, category: SuggestionCategory) -> Optional[str]:
    """Return a reason when *text* breaks the coaching tone rules."""
    if _RESTRAINT.search(text):
        return "proposes restraint or suppression of self-regulation"
    if category == SuggestionCategory.CAREGIVER_SUPPORT and _CRITIQUE.search(text):
        return "critiques the caregiver"
    return None


@dataclass(frozen=True)
class CoachingRule:
    """One row of the coaching table."""

    text: str
    category: SuggestionCategory
    severity: SuggestionSeverity
    weight: float
    bands: Optional[frozenset[ArousalBand]] = None
    behavior: Optional[BehaviorCategory] = None
    environment: Optional[EnvironmentFlag] = None
    caregiver_stress: Optional[CaregiverStress] = None

    def matches(
        self,
        band: ArousalBand,
        behavior_categories: frozenset[BehaviorCategory],
        flags: frozenset[EnvironmentFlag],
        caregiver_stress: Optional[CaregiverStress],
    ) -> bool:
        if self.bands is not None and band not in self.bands:
            return False
        if self.behavior is not None and self.behavior not in behavior_categories:
            return False
        if self.environment is not None and self.environment not in flags:
            return False
        if self.caregiver_stress is not None and self.caregiver_stress != caregiver_stress:
            return False
        return True

    def to_suggestion(self) -> Suggestion:
        return with_resource(
            Suggestion(severity=self.severity, text=self.text, category=self.category)
        )


def _rule(
    text: str,
    category: SuggestionCategory,
    severity: SuggestionSeverity,
    weight: float,
    *,
    bands: Optional[Iterable[ArousalBand]] = None,
    behavior: Optional[BehaviorCategory] = None,
    environment: Optional[EnvironmentFlag] = None,
    caregiver_stress: Optional[CaregiverStress] = None,
) -> CoachingRule:
    return CoachingRule(
        text=text,
        category=category,
        severity=severity,
        weight=weight,
        bands=frozenset(bands) if bands is not None else None,
        behavior=behavior,
        environment=environment,
        caregiver_stress=caregiver_stress,
    )


_S = SuggestionCategory
_V = SuggestionSeverity
_B = ArousalBand

# ── Default table ───────────────────────────────────────────────────────────

DEFAULT_RULES: tuple[CoachingRule, ...] = (
    # Crisis
    _rule("Safety first: move hazards out of reach.", _S.SAFETY, _V.HIGH, 100, bands={_B.CRISIS}),
    _rule("Give space unless there is immediate danger.", _S.SAFETY, _V.HIGH, 95, bands={_B.CRISIS}),
    _rule("Reduce sensory input immediately. Give space. Stay calm.", _S.DEESCALATION, _V.HIGH, 90, bands={_B.CRISIS}),
    _rule("Skip reasoning and eye-contact requests until this passes.", _S.DEESCALATION, _V.HIGH, 88,
          behavior=BehaviorCategory.CRISIS),
    _rule("Minimize talking. Your calm presence is more helpful than words.", _S.DEESCALATION, _V.HIGH, 85,
          bands={_B.CRISIS}),
    _rule("Remove demands and expectations right now.", _S.DEESCALATION, _V.HIGH, 80, bands={_B.CRISIS}),
    _rule("This will pass. Stay nearby and breathe slowly.", _S.CAREGIVER_SUPPORT, _V.MEDIUM, 60,
          bands={_B.CRISIS}),

    # High
    _rule("High arousal detected. Move to a quieter space if possible.", _S.DEESCALATION, _V.HIGH, 75,
          bands={_B.HIGH}),
    _rule("Offer deep pressure or a weighted item.", _S.SENSORY, _V.HIGH, 70, bands={_B.HIGH}),
    _rule("Reduce demands and sensory input.", _S.DEESCALATION, _V.MEDIUM, 55, bands={_B.HIGH}),

    # Building
    _rule("Arousal is building. Offer a movement break or reduce demands.", _S.PREVENTION, _V.MEDIUM, 50,
          bands={_B.BUILDING}),
    _rule("Give a 5-minute warning before any transitions.", _S.PREVENTION, _V.MEDIUM, 45, bands={_B.BUILDING}),
    _rule("Not a crisis yet. Early support can help.", _S.PREVENTION, _V.LOW, 30, bands={_B.BUILDING}),

    # Calm
    _rule("Child is regulated. Keep the current environment and routine.", _S.REGULATION, _V.LOW, 20,
          bands={_B.CALM}),

    # Shutdown
    _rule("Try gentle alerting activities like jumping or dancing together.", _S.REGULATION, _V.MEDIUM, 50,
          bands={_B.SHUTDOWN}),
    _rule("Offer a preferred sensory input to help them re-engage.", _S.SENSORY, _V.MEDIUM, 45,
          bands={_B.SHUTDOWN}),
    _rule("Stay close and keep demands low. Withdrawal needs patience.", _S.CONNECTION, _V.MEDIUM, 40,
          bands={_B.SHUTDOWN}),

    # Behaviors
    _rule("Allow stimming; it is helping them regulate.", _S.REGULATION, _V.LOW, 35,
          behavior=BehaviorCategory.STIMMING),
    _rule("Make sure there is safe space for movement.", _S.SAFETY, _V.LOW, 25,
          behavior=BehaviorCategory.STIMMING),
    _rule("Reduce noise and light right away.", _S.SENSORY, _V.MEDIUM, 65,
          behavior=BehaviorCategory.SENSORY_AVOIDANCE),
    _rule("Offer noise-canceling headphones if available.", _S.SENSORY, _V.MEDIUM, 60,
          behavior=BehaviorCategory.SENSORY_AVOIDANCE),
    _rule("Respect their need for space and reduce demands.", _S.CONNECTION, _V.MEDIUM, 58,
          behavior=BehaviorCategory.WITHDRAWAL),
    _rule("Create a quiet, safe area they can retreat to.", _S.ENVIRONMENT, _V.MEDIUM, 50,
          behavior=BehaviorCategory.WITHDRAWAL),
    _rule("Offer heavy work or a cushion squeeze for pressure input.", _S.SENSORY, _V.LOW, 40,
          behavior=BehaviorCategory.SENSORY_SEEKING),
    _rule("Respond to their bid for connection and follow their lead.", _S.CONNECTION, _V.LOW, 30,
          behavior=BehaviorCategory.COMMUNICATION),
    _rule("Signs of escalation. Lower demands and simplify the space.", _S.DEESCALATION, _V.HIGH, 72,
          behavior=BehaviorCategory.ESCALATION),

    # Environment
    _rule("Turn off flickering lights; they can be triggering.", _S.ENVIRONMENT, _V.HIGH, 62,
          environment=EnvironmentFlag.FLICKERING_LIGHT),
    _rule("It is very loud here. Move to a quieter space.", _S.ENVIRONMENT, _V.HIGH, 64,
          environment=EnvironmentFlag.VERY_LOUD_NOISE),
    _rule("Reduce noise: close windows or turn off the TV.", _S.ENVIRONMENT, _V.MEDIUM, 44,
          environment=EnvironmentFlag.LOUD_NOISE),
    _rule("Try dimming lights or closing blinds.", _S.ENVIRONMENT, _V.MEDIUM, 42,
          environment=EnvironmentFlag.BRIGHT_LIGHT),
    _rule("The space is crowded. Consider a less populated area.", _S.ENVIRONMENT, _V.MEDIUM, 40,
          environment=EnvironmentFlag.CROWDED),
    _rule("The space looks busy. Try moving somewhere calmer.", _S.ENVIRONMENT, _V.MEDIUM, 38,
          environment=EnvironmentFlag.CLUTTERED),

    # Caregiver
    _rule("Take a breath. Your calm helps them regulate.", _S.CAREGIVER_SUPPORT, _V.HIGH, 78,
          caregiver_stress=CaregiverStress.HIGH),
    _rule("It's okay to step back for a moment and reset.", _S.CAREGIVER_SUPPORT, _V.HIGH, 68,
          caregiver_stress=CaregiverStress.HIGH),
    _rule("Take a breath. You've got this.", _S.CAREGIVER_SUPPORT, _V.MEDIUM, 36,
          caregiver_stress=CaregiverStress.BUILDING),
    _rule("You're doing great. Stay present.", _S.CAREGIVER_SUPPORT, _V.LOW, 10,
          caregiver_stress=CaregiverStress.CALM),
)

# Used when a custom table has no crisis safety row of its own
CRISIS_SAFETY_FALLBACK = with_resource(Suggestion(
    severity=SuggestionSeverity.HIGH,
    text="Safety first: clear the area and give space.",
    category=SuggestionCategory.SAFETY,
))


def _is_crisis_safety(suggestion: Suggestion) -> bool:
    return (
        suggestion.severity == SuggestionSeverity.HIGH
        and suggestion.category == SuggestionCategory.SAFETY
    )


class CoachingGenerator:
    """Rule-table coaching over the published Decision and tick context.

    Args:
        rules: Coaching table; defaults to DEFAULT_RULES.
        max_suggestions: Upper bound on suggestions per tick.
        cooldown: Seconds before the same text may be issued again.

    Raises:
        ValueError: If any rule text breaks the tone rules.
    """

    def __init__(
        self,
        rules: Sequence[CoachingRule] = DEFAULT_RULES,
        *,
        max_suggestions: int = 3,
        cooldown: float = 30.0,
    ) -> None:
        if max_suggestions < 1:
            raise ValueError("max_suggestions must be at least 1")
        for rule in rules:
            reason = tone_violation(rule.text, rule.category)
            if reason is not None:
                raise ValueError(f"Coaching rule {rule.text!r} {reason}")
        self._rules = tuple(rules)
        self._max = max_suggestions
        self._cooldown = cooldown

    @property
    def rules(self) -> tuple[CoachingRule, ...]:
        return self._rules

    @property
    def max_suggestions(self) -> int:
        return self._max

    # ── Public API ───────────────────────────────────────────────────────

    def suggest(
        self,
        decision: Decision,
        recent_behaviors: Iterable[Behavior],
        environment: EnvironmentDescriptor,
        *,
        caregiver_stress: Optional[CaregiverStress] = None,
        history: Optional[SessionHistoryTracker] = None,
    ) -> list[Suggestion]:
        """Ranked suggestions for one tick, at most ``max_suggestions``."""
        band = decision.band
        categories = frozenset(b.category for b in recent_behaviors)
        flags = environment.flags

        ranked = sorted(
            (
                (index, rule)
                for index, rule in enumerate(self._rules)
                if rule.matches(band, categories, flags, caregiver_stress)
            ),
            key=lambda item: (-item[1].weight, CATEGORY_ORDER[item[1].category], item[0]),
        )

        selected: list[Suggestion] = []
        seen: set[str] = set()
        cooled_safety: Optional[Suggestion] = None

        for _, rule in ranked:
            if rule.text in seen:
                continue
            seen.add(rule.text)

            suggestion = rule.to_suggestion()
            if tone_violation(suggestion.text, suggestion.category) is not None:
                logger.warning("Dropped coaching text failing tone check: %r", suggestion.text)
                continue
            if self._cooling_down(suggestion.text, decision.timestamp, history):
                if cooled_safety is None and _is_crisis_safety(suggestion):
                    cooled_safety = suggestion
                continue
            selected.append(suggestion)

        if band == ArousalBand.CRISIS:
            selected = self._crisis_first(selected, cooled_safety)

        result = selected[: self._max]
        logger.debug(
            "Coaching tick %d (%s): %d matched, %d issued",
            decision.tick, band.value, len(ranked), len(result),
        )
        return result

    async def asuggest(
        self,
        decision: Decision,
        recent_behaviors: Iterable[Behavior],
        environment: EnvironmentDescriptor,
        *,
        caregiver_stress: Optional[CaregiverStress] = None,
        history: Optional[SessionHistoryTracker] = None,
    ) -> list[Suggestion]:
        """Async form of ``suggest``; the session always calls this one."""
        return self.suggest(
            decision,
            recent_behaviors,
            environment,
            caregiver_stress=caregiver_stress,
            history=history,
        )

    # ── Internals ────────────────────────────────────────────────────────

    def _cooling_down(
        self,
        text: str,
        now: datetime,
        history: Optional[SessionHistoryTracker],
    ) -> bool:
        if history is None:
            return False
        last = history.last_issued(text)
        if last is None:
            return False
        return (now - last).total_seconds() < self._cooldown

    @staticmethod
    def _crisis_first(
        selected: list[Suggestion],
        cooled_safety: Optional[Suggestion],
    ) -> list[Suggestion]:
        for index, suggestion in enumerate(selected):
            if _is_crisis_safety(suggestion):
                return [suggestion] + selected[:index] + selected[index + 1:]
        # Safety guidance outranks the cooldown
        lead = cooled_safety or CRISIS_SAFETY_FALLBACK
        return [lead] + [s for s in selected if s.text != lead.text]
