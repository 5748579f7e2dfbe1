"""Remote context assembly — the information barrier for remote reasoning.

The bundle exposes ONLY profile traits, the current tick's typed features and
a short rolling session summary.  No names, no timestamps, no tick numbers,
no raw buffers.

The fingerprint covers the profile traits, the observation and the session
trend.  The recent band list and duration stay in the prompt but are left
out of the hash, so two ticks that observe the same scene share a cached
verdict or an in-flight call.

Floats are rounded to two decimals before hashing so sensor jitter below
that resolution does not defeat the cache.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Optional

from pydantic import BaseModel

from arousal_engine.domain.profile import ChildProfile
from arousal_engine.domain.session import RollingSessionSummary
from arousal_engine.domain.snapshot import FeatureSnapshot

logger = logging.getLogger(__name__)


class RemoteContext(BaseModel):
    """A structured request bundle and its content fingerprint."""

    bundle: dict[str, Any]
    fingerprint: str

    model_config = {"frozen": True}


def _round(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def snapshot_features(snapshot: FeatureSnapshot) -> dict[str, Any]:
    """Current observations, without tick or timestamp."""
    env = snapshot.environment
    return {
        "movement_intensity": _round(snapshot.movement_intensity),
        "tension_score": _round(snapshot.tension_score),
        "behaviors": [b.value for b in snapshot.behaviors],
        "vocal_stress": snapshot.vocal_stress.value if snapshot.vocal_stress else None,
        "environment": {
            "lighting": env.lighting.value,
            "noise": env.noise.value,
            "cluttered": env.cluttered,
            "crowded": env.crowded,
        },
        "caregiver_stress": (
            snapshot.caregiver_stress.value if snapshot.caregiver_stress else None
        ),
        "missing_signals": sorted(snapshot.missing_signals),
    }


def fingerprint_bundle(bundle: dict[str, Any]) -> str:
    """Stable SHA-256 over the canonical JSON form of *bundle*."""
    canonical = json.dumps(bundle, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_context(
    profile: ChildProfile,
    snapshot: FeatureSnapshot,
    summary: RollingSessionSummary,
) -> RemoteContext:
    """Assemble the remote request bundle for one tick."""
    bundle = {
        "profile": profile.traits(),
        "observation": snapshot_features(snapshot),
        "session": summary.to_bundle(),
    }
    # Band window and duration change every tick and stay out of the hash
    fingerprint = fingerprint_bundle({
        "profile": bundle["profile"],
        "observation": bundle["observation"],
        "trend": summary.trend.value,
    })
    logger.debug("Assembled remote context for tick %d (fp=%s)", snapshot.tick, fingerprint[:12])
    return RemoteContext(bundle=bundle, fingerprint=fingerprint)
