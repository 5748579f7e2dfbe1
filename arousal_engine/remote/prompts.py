"""Prompt templates for remote arousal classification and coaching."""

from __future__ import annotations

from typing import Any, Iterable, Optional

SYSTEM_PROMPT = """You are an arousal state classifier for neurodivergent children (ages 2-8), with expertise in autism, ADHD and sensory processing differences.

Analyze the child's profile, the current multimodal observations and the recent session history, then classify the child's current arousal band.

AROUSAL BANDS:
- shutdown: under-aroused, withdrawn, freeze response. Very low movement, flat or quiet vocal affect, minimal response to the environment.
- calm: regulated, optimal arousal, socially engaged.
- building: elevated arousal, early warning signs. Increased movement or stimming, raised vocal pitch or volume, emerging sensory sensitivity.
- high: dysregulation building. High-energy movement, strained vocal patterns, visible sensory overwhelm.
- crisis: meltdown occurring or imminent; safety concern.

IMPORTANT:
- Stimming can occur in regulated AND dysregulated states.
- Flat affect is normal for many autistic children; do not assume distress.
- Compare observations to THIS child's baseline, not neurotypical norms.
- Caregiver stress describes the adult, not the child.

Respond with ONLY a JSON object in this exact format:
{"arousalBand": "shutdown|calm|building|high|crisis", "confidence": 0.0-1.0, "reasoning": "brief explanation", "keyIndicators": ["indicator1", "indicator2"]}"""

_USER_TEMPLATE = """# CHILD PROFILE
Age: {age}
Diagnoses: {diagnoses}
Communication: {communication_mode}
Expression traits: {expression}
Sensory triggers: {sensory_triggers}
Effective calming strategies: {calming_strategies}
Baseline movement energy: {baseline_movement}

# CURRENT OBSERVATIONS
Movement intensity: {movement_intensity} (0=still, 1=high energy)
Body tension: {tension_score} (0=relaxed, 1=tense)
Observed behaviors: {behaviors}
Vocal stress: {vocal_stress}
Environment: lighting={lighting}, noise={noise}, cluttered={cluttered}, crowded={crowded}
Caregiver stress: {caregiver_stress}
Unavailable signals: {missing_signals}

# SESSION CONTEXT
Duration: {duration_minutes} minutes
Recent bands (oldest first): {recent_bands}
Trend: {trend}

Classify the child's current arousal band. Respond with valid JSON only."""


def _fmt(value: Any) -> str:
    if value is None:
        return "unavailable"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) if value else "none"
    if isinstance(value, dict):
        active = [k.replace("_", " ") for k, v in value.items() if v]
        return ", ".join(active) if active else "none noted"
    return str(value)


def render_user_prompt(bundle: dict[str, Any]) -> str:
    """Render a context bundle into the user-turn prompt text."""
    profile = bundle.get("profile", {})
    obs = bundle.get("observation", {})
    env = obs.get("environment", {})
    session = bundle.get("session", {})
    return _USER_TEMPLATE.format(
        age=_fmt(profile.get("age")),
        diagnoses=_fmt(profile.get("diagnoses", [])),
        communication_mode=_fmt(profile.get("communication_mode")),
        expression=_fmt(profile.get("expression", {})),
        sensory_triggers=_fmt(profile.get("sensory_triggers", [])),
        calming_strategies=_fmt(profile.get("calming_strategies", [])),
        baseline_movement=_fmt(profile.get("baseline_movement")),
        movement_intensity=_fmt(obs.get("movement_intensity")),
        tension_score=_fmt(obs.get("tension_score")),
        behaviors=_fmt(obs.get("behaviors", [])),
        vocal_stress=_fmt(obs.get("vocal_stress")),
        lighting=_fmt(env.get("lighting")),
        noise=_fmt(env.get("noise")),
        cluttered=_fmt(env.get("cluttered")),
        crowded=_fmt(env.get("crowded")),
        caregiver_stress=_fmt(obs.get("caregiver_stress")),
        missing_signals=_fmt(obs.get("missing_signals", [])),
        duration_minutes=_fmt(session.get("duration_minutes", 0)),
        recent_bands=_fmt(session.get("recent_bands", [])),
        trend=_fmt(session.get("trend")),
    )


# ── Coaching ────────────────────────────────────────────────────────────────

COACHING_SYSTEM_PROMPT = """You are a neurodiversity-affirming specialist giving live, evidence-based guidance to a caregiver supporting a neurodivergent child (autism, ADHD, sensory processing differences).

Format requirements:
- Give exactly 3 recommendations as a numbered list (1., 2., 3.)
- Start each recommendation with an action verb
- Use clear, empathetic, non-clinical language
- Each recommendation: 1-2 sentences, under 200 characters
- Focus on immediate, practical steps

Principles:
- Neurodiversity-affirming: no ABA or compliance terminology
- Never suggest restraining the child or stopping stimming, rocking or other self-regulation
- Prioritize nervous system regulation and co-regulation
- Consider sensory processing needs
- Support the caregiver without judging them

Priority order:
1. Most urgent safety or regulation need
2. Environmental or sensory modification
3. Caregiver self-regulation support

Respond with the numbered list only."""

_COACHING_TEMPLATE = """# CURRENT MOMENT
Arousal state: {band}
Observed behaviors: {behaviors}
Environment: {environment}
Caregiver stress: {caregiver_stress}

Recommendations:"""


def render_coaching_prompt(
    band: str,
    behaviors: Iterable[str],
    environment: Iterable[str],
    caregiver_stress: Optional[str],
) -> str:
    """Render one tick's coaching context into the user-turn prompt text."""
    return _COACHING_TEMPLATE.format(
        band=band,
        behaviors=_fmt([b.replace("_", " ") for b in behaviors]),
        environment=_fmt([e.replace("_", " ") for e in environment]),
        caregiver_stress=_fmt(caregiver_stress),
    )
