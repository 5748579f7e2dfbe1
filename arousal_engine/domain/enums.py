"""Controlled enumerations for the arousal-engine domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum


# ── Arousal ─────────────────────────────────────────────────────────────────

class ArousalBand(str, Enum):
    """Discrete arousal level of the observed child.

    Ordering is by clinical severity, not by value:
    shutdown < calm < building < high < crisis.  Shutdown is a distinct
    low-arousal risk state, not a quieter flavour of calm.
    """

    SHUTDOWN = "shutdown"
    CALM = "calm"
    BUILDING = "building"
    HIGH = "high"
    CRISIS = "crisis"

    @property
    def severity(self) -> int:
        return _BAND_SEVERITY[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ArousalBand):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other: object) -> bool:
        if not isinstance(other, ArousalBand):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, ArousalBand):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, ArousalBand):
            return NotImplemented
        return self.severity >= other.severity


_BAND_SEVERITY = {
    ArousalBand.SHUTDOWN: 0,
    ArousalBand.CALM: 1,
    ArousalBand.BUILDING: 2,
    ArousalBand.HIGH: 3,
    ArousalBand.CRISIS: 4,
}


class DecisionSource(str, Enum):
    """Which path produced a published decision."""

    RULE = "rule"
    REMOTE = "remote"


class EngineMode(str, Enum):
    """Arbiter operating mode, selected per session."""

    STANDARD = "standard"
    PERSONALIZED = "personalized"


class ProviderId(str, Enum):
    """Remote reasoning providers the client can target."""

    CLAUDE = "claude"
    GROQ = "groq"
    GEMINI = "gemini"


class FallbackReason(str, Enum):
    """Why a personalized tick published the rule-based decision."""

    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    TRANSPORT = "transport"
    ABANDONED = "abandoned"
    BUSY = "busy"


# ── Signals ─────────────────────────────────────────────────────────────────

class VocalStress(str, Enum):
    """Vocal affect category produced by the audio feature extractor."""

    CALM = "calm"
    ELEVATED = "elevated"
    STRAINED = "strained"
    FLAT = "flat"


class CaregiverStress(str, Enum):
    """Caregiver stress level from the dual-camera facial/vocal analysis."""

    CALM = "calm"
    BUILDING = "building"
    HIGH = "high"


class LightingLevel(str, Enum):
    BRIGHT = "bright"
    NORMAL = "normal"
    DIM = "dim"
    FLICKERING = "flickering"


class NoiseLevel(str, Enum):
    QUIET = "quiet"
    MODERATE = "moderate"
    LOUD = "loud"
    VERY_LOUD = "very_loud"


class EnvironmentFlag(str, Enum):
    """Environment conditions the coaching table can key on."""

    BRIGHT_LIGHT = "bright_light"
    FLICKERING_LIGHT = "flickering_light"
    LOUD_NOISE = "loud_noise"
    VERY_LOUD_NOISE = "very_loud_noise"
    CLUTTERED = "cluttered"
    CROWDED = "crowded"


# ── Behaviors ───────────────────────────────────────────────────────────────

class BehaviorCategory(str, Enum):
    """Coarse grouping of observed behaviors used by the coaching table."""

    STIMMING = "stimming"
    SENSORY_AVOIDANCE = "sensory_avoidance"
    SENSORY_SEEKING = "sensory_seeking"
    WITHDRAWAL = "withdrawal"
    COMMUNICATION = "communication"
    ESCALATION = "escalation"
    CRISIS = "crisis"
    PASSIVE = "passive"


class Behavior(str, Enum):
    """Behavior labels the pose/behavior detector may emit."""

    HAND_FLAPPING = "hand_flapping"
    ROCKING = "rocking"
    SPINNING = "spinning"
    JUMPING = "jumping"
    PACING = "pacing"
    STILLNESS = "stillness"
    COVERING_EARS = "covering_ears"
    COVERING_EYES = "covering_eyes"
    RETREATING = "retreating"
    SEEKING_PRESSURE = "seeking_pressure"
    POINTING = "pointing"
    REACHING = "reaching"
    APPROACHING = "approaching"
    ESCALATING = "escalating"
    MELTDOWN = "meltdown"
    UNKNOWN = "unknown"

    @property
    def category(self) -> BehaviorCategory:
        return _BEHAVIOR_CATEGORY[self]

    @property
    def is_active(self) -> bool:
        """Passive labels (stillness, unknown) do not count as activity."""
        return self.category != BehaviorCategory.PASSIVE

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ")


_BEHAVIOR_CATEGORY = {
    Behavior.HAND_FLAPPING: BehaviorCategory.STIMMING,
    Behavior.ROCKING: BehaviorCategory.STIMMING,
    Behavior.SPINNING: BehaviorCategory.STIMMING,
    Behavior.JUMPING: BehaviorCategory.STIMMING,
    Behavior.PACING: BehaviorCategory.STIMMING,
    Behavior.STILLNESS: BehaviorCategory.PASSIVE,
    Behavior.COVERING_EARS: BehaviorCategory.SENSORY_AVOIDANCE,
    Behavior.COVERING_EYES: BehaviorCategory.SENSORY_AVOIDANCE,
    Behavior.RETREATING: BehaviorCategory.WITHDRAWAL,
    Behavior.SEEKING_PRESSURE: BehaviorCategory.SENSORY_SEEKING,
    Behavior.POINTING: BehaviorCategory.COMMUNICATION,
    Behavior.REACHING: BehaviorCategory.COMMUNICATION,
    Behavior.APPROACHING: BehaviorCategory.COMMUNICATION,
    Behavior.ESCALATING: BehaviorCategory.ESCALATION,
    Behavior.MELTDOWN: BehaviorCategory.CRISIS,
    Behavior.UNKNOWN: BehaviorCategory.PASSIVE,
}


# ── Coaching ────────────────────────────────────────────────────────────────

class SuggestionSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class SuggestionCategory(str, Enum):
    """Coaching categories in declared tie-break order.

    Safety-critical first, sensory/environment second, relational and
    coaching-tone last.  ``CATEGORY_ORDER`` is derived from this order.
    """

    SAFETY = "safety"
    DEESCALATION = "deescalation"
    SENSORY = "sensory"
    ENVIRONMENT = "environment"
    PREVENTION = "prevention"
    REGULATION = "regulation"
    CAREGIVER_SUPPORT = "caregiver_support"
    CONNECTION = "connection"


CATEGORY_ORDER: dict[SuggestionCategory, int] = {
    category: index for index, category in enumerate(SuggestionCategory)
}


# ── Profile ─────────────────────────────────────────────────────────────────

class Diagnosis(str, Enum):
    AUTISM = "autism"
    ADHD = "adhd"
    SENSORY_PROCESSING = "sensory_processing"
    ANXIETY = "anxiety"
    OTHER = "other"


class CommunicationMode(str, Enum):
    VERBAL = "verbal"
    MINIMALLY_VERBAL = "minimally_verbal"
    NON_SPEAKING = "non_speaking"
    AAC = "aac"


class SessionTrend(str, Enum):
    """Shape of the recent band timeline, reported to the remote provider."""

    JUST_STARTED = "just_started"
    STABLE = "stable"
    ESCALATING = "escalating"
    IMPROVING = "improving"
    CYCLING = "cycling"
    VARIABLE = "variable"
