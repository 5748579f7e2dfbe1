"""Suggestion — a single piece of coaching guidance for the caregiver.

Suggestions are produced transiently per tick and are not persisted beyond
the tick's presentation; only their issuance counts survive, inside the
session aggregate.

Every suggestion may carry one learning resource (title and URL) chosen
by its category, so a caregiver can read further after the moment passes.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from arousal_engine.domain.enums import SuggestionCategory, SuggestionSeverity


class Suggestion(BaseModel):
    severity: SuggestionSeverity
    text: str = Field(..., min_length=1, max_length=200)
    category: SuggestionCategory
    resource_title: Optional[str] = None
    resource_url: Optional[str] = None

    model_config = {"frozen": True}
