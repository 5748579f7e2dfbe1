from arousal_engine.domain.decision import Decision
from arousal_engine.domain.profile import ChildProfile
from arousal_engine.domain.session import RollingSessionSummary, SessionAggregate
from arousal_engine.domain.snapshot import EnvironmentDescriptor, FeatureSnapshot
from arousal_engine.domain.suggestion import Suggestion

__all__ = [
    "ChildProfile",
    "Decision",
    "EnvironmentDescriptor",
    "FeatureSnapshot",
    "RollingSessionSummary",
    "SessionAggregate",
    "Suggestion",
]
