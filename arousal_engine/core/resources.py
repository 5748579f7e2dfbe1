"""Learning resources attached to coaching suggestions.

Each suggestion category maps to one reputable, caregiver-facing article.
Free-text suggestions (from a remote coaching model) are first placed in a
category by keyword, then enriched the same way as table suggestions.
"""

from __future__ import annotations

from dataclasses import dataclass

from arousal_engine.domain.enums import SuggestionCategory
from arousal_engine.domain.suggestion import Suggestion


@dataclass(frozen=True)
class Resource:
    title: str
    url: str


_CO_REGULATION = Resource(
    "Understanding Co-Regulation",
    "https://www.autismspeaks.org/expert-opinion/co-regulation-tool-supporting-emotional-development",
)
_SENSORY = Resource(
    "Sensory Processing in Autism",
    "https://www.autism.org.uk/advice-and-guidance/topics/sensory-differences/sensory-differences/all-audiences",
)
_SELF_CARE = Resource(
    "Caregiver Self-Care Strategies",
    "https://www.autismspeaks.org/caregiver-skills-training",
)
_ENVIRONMENTS = Resource(
    "Creating Autism-Friendly Environments",
    "https://www.autism.org.uk/advice-and-guidance/topics/behaviour/meltdowns/autistic-environment",
)
_DEESCALATION = Resource(
    "Crisis Prevention & De-escalation",
    "https://www.autism.org.uk/advice-and-guidance/topics/behaviour/meltdowns/all-audiences",
)
_COMMUNICATION = Resource(
    "Supporting Autistic Communication",
    "https://www.autism.org.uk/advice-and-guidance/topics/communication/communication/all-audiences",
)
GENERAL_RESOURCE = Resource(
    "Evidence-Based Autism Support",
    "https://www.autismspeaks.org/tool-kit",
)

RESOURCES: dict[SuggestionCategory, Resource] = {
    SuggestionCategory.SAFETY: _DEESCALATION,
    SuggestionCategory.DEESCALATION: _DEESCALATION,
    SuggestionCategory.SENSORY: _SENSORY,
    SuggestionCategory.ENVIRONMENT: _ENVIRONMENTS,
    SuggestionCategory.PREVENTION: GENERAL_RESOURCE,
    SuggestionCategory.REGULATION: _CO_REGULATION,
    SuggestionCategory.CAREGIVER_SUPPORT: _SELF_CARE,
    SuggestionCategory.CONNECTION: _COMMUNICATION,
}


def resource_for(category: SuggestionCategory) -> Resource:
    return RESOURCES.get(category, GENERAL_RESOURCE)


def with_resource(suggestion: Suggestion) -> Suggestion:
    """Return *suggestion* carrying its category's resource.

    A suggestion that already names a resource is returned unchanged.
    """
    if suggestion.resource_url is not None:
        return suggestion
    resource = resource_for(suggestion.category)
    return suggestion.model_copy(
        update={"resource_title": resource.title, "resource_url": resource.url}
    )


# ── Keyword categorization ──────────────────────────────────────────────────

# First match wins
_KEYWORDS: tuple[tuple[SuggestionCategory, tuple[str, ...]], ...] = (
    (SuggestionCategory.SAFETY, ("safety", "safe ", "hazard", "injur", "danger")),
    (SuggestionCategory.CAREGIVER_SUPPORT, (
        "breath", "yourself", "your own", "caregiver", "parent", "oxygen mask",
    )),
    (SuggestionCategory.DEESCALATION, ("crisis", "escalat", "meltdown", "reduce demands", "remove demands")),
    (SuggestionCategory.SENSORY, (
        "sensory", "headphones", "pressure", "tactile", "proprioceptive", "weighted",
    )),
    (SuggestionCategory.ENVIRONMENT, ("light", "environment", "space", "quiet", "noise", "room")),
    (SuggestionCategory.CONNECTION, ("communicat", "express", "signal", "connect", "their lead")),
    (SuggestionCategory.REGULATION, ("regulat", "nervous system", "autonomic", "calm")),
)


def categorize_text(text: str) -> SuggestionCategory:
    """Place a free-text suggestion in a category by keyword.

    Text matching no keyword is treated as prevention guidance.
    """
    lowered = text.lower()
    for category, keywords in _KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return SuggestionCategory.PREVENTION
