"""ChildProfile — personalization data sent to the remote reasoning provider.

The profile is owned by the (external) settings layer and handed to a
session at start.  Only ``traits()`` crosses the network boundary: it
deliberately omits the child's name and any free-text notes that could
identify the family.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from arousal_engine.domain.enums import CommunicationMode, Diagnosis


class ExpressionTraits(BaseModel):
    """How this child typically shows emotion."""

    flat_affect: bool = False
    stims_when_happy: bool = False
    stims_when_distressed: bool = False
    non_speaking: bool = False

    model_config = {"frozen": True}


class ChildProfile(BaseModel):
    name: str = Field(default="", max_length=100)
    age: Optional[int] = Field(default=None, ge=0, le=21)
    diagnoses: tuple[Diagnosis, ...] = ()
    communication_mode: CommunicationMode = CommunicationMode.VERBAL
    expression: ExpressionTraits = Field(default_factory=ExpressionTraits)
    sensory_triggers: tuple[str, ...] = Field(default=(), max_length=20)
    calming_strategies: tuple[str, ...] = Field(default=(), max_length=20)
    baseline_movement: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Typical movement energy captured during calm baseline calibration",
    )

    model_config = {"frozen": True}

    def traits(self) -> dict:
        """Profile traits for the remote context bundle (no identifying fields)."""
        return {
            "age": self.age,
            "diagnoses": sorted(d.value for d in self.diagnoses),
            "communication_mode": self.communication_mode.value,
            "expression": self.expression.model_dump(),
            "sensory_triggers": list(self.sensory_triggers),
            "calming_strategies": list(self.calming_strategies[:5]),
            "baseline_movement": (
                round(self.baseline_movement, 2) if self.baseline_movement is not None else None
            ),
        }
