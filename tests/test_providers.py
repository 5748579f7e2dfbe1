"""Tests for remote context assembly, providers and verdict parsing."""

from __future__ import annotations

import json

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from arousal_engine.domain.enums import ArousalBand, Behavior, DecisionSource, ProviderId, SessionTrend
from arousal_engine.domain.session import RollingSessionSummary
from arousal_engine.remote.context import build_context, fingerprint_bundle
from arousal_engine.remote.credentials import EnvKeyProvider, StaticKeyProvider
from arousal_engine.remote.errors import RemoteMalformedResponse
from arousal_engine.remote.providers import (
    ClaudeProvider,
    GeminiProvider,
    GroqProvider,
    ProviderRegistry,
    parse_verdict,
    response_text,
)

from tests.factories import profile, snapshot, verdict_json


# ── Context ──────────────────────────────────────────────────────────────────

class TestRemoteContext:
    def test_bundle_sections(self) -> None:
        ctx = build_context(profile(), snapshot(), RollingSessionSummary())
        assert set(ctx.bundle) == {"profile", "observation", "session"}

    def test_bundle_has_no_name_tick_or_timestamp(self) -> None:
        ctx = build_context(profile(name="Jordan"), snapshot(tick=42), RollingSessionSummary())
        text = json.dumps(ctx.bundle)
        assert "Jordan" not in text
        assert "tick" not in ctx.bundle["observation"]
        assert "captured_at" not in ctx.bundle["observation"]

    def test_same_scene_different_tick_same_fingerprint(self) -> None:
        a = build_context(profile(), snapshot(tick=1), RollingSessionSummary())
        b = build_context(profile(), snapshot(tick=2), RollingSessionSummary())
        assert a.fingerprint == b.fingerprint

    def test_jitter_below_rounding_shares_fingerprint(self) -> None:
        a = build_context(profile(), snapshot(movement_intensity=0.701), RollingSessionSummary())
        b = build_context(profile(), snapshot(movement_intensity=0.704), RollingSessionSummary())
        assert a.fingerprint == b.fingerprint

    def test_different_features_change_fingerprint(self) -> None:
        a = build_context(profile(), snapshot(), RollingSessionSummary())
        b = build_context(profile(), snapshot(behaviors=(Behavior.ROCKING,)), RollingSessionSummary())
        assert a.fingerprint != b.fingerprint

    def test_band_window_and_duration_do_not_change_fingerprint(self) -> None:
        early = RollingSessionSummary(
            duration_minutes=0, recent_bands=(ArousalBand.CALM,), trend=SessionTrend.STABLE,
        )
        later = RollingSessionSummary(
            duration_minutes=3,
            recent_bands=(ArousalBand.CALM,) * 4,
            trend=SessionTrend.STABLE,
        )
        a = build_context(profile(), snapshot(tick=1), early)
        b = build_context(profile(), snapshot(tick=200), later)
        assert a.fingerprint == b.fingerprint
        assert a.bundle["session"] != b.bundle["session"]

    def test_trend_change_changes_fingerprint(self) -> None:
        stable = RollingSessionSummary(trend=SessionTrend.STABLE)
        rising = RollingSessionSummary(trend=SessionTrend.ESCALATING)
        a = build_context(profile(), snapshot(), stable)
        b = build_context(profile(), snapshot(), rising)
        assert a.fingerprint != b.fingerprint

    def test_fingerprint_ignores_key_order(self) -> None:
        assert fingerprint_bundle({"a": 1, "b": 2}) == fingerprint_bundle({"b": 2, "a": 1})


# ── Verdict parsing ──────────────────────────────────────────────────────────

class TestParseVerdict:
    def test_canonical_shape(self) -> None:
        result = parse_verdict(verdict_json("building", 0.7))
        assert result.band == ArousalBand.BUILDING
        assert result.confidence == 0.7
        assert result.source == DecisionSource.REMOTE
        assert result.key_indicators == ("rapid movement", "strained voice")

    def test_code_fences_tolerated(self) -> None:
        text = "```json\n" + verdict_json("calm") + "\n```"
        assert parse_verdict(text).band == ArousalBand.CALM

    def test_surrounding_prose_tolerated(self) -> None:
        text = "Here is my assessment: " + verdict_json("crisis") + " Hope this helps."
        assert parse_verdict(text).band == ArousalBand.CRISIS

    @pytest.mark.parametrize(
        "colour,band",
        [("green", ArousalBand.CALM), ("yellow", ArousalBand.BUILDING),
         ("orange", ArousalBand.HIGH), ("RED", ArousalBand.CRISIS)],
    )
    def test_colour_aliases(self, colour: str, band: ArousalBand) -> None:
        assert parse_verdict(verdict_json(colour)).band == band

    def test_snake_case_aliases(self) -> None:
        text = json.dumps({"band": "shutdown", "confidence": 0.5, "rationale": "r", "key_indicators": ["x"]})
        result = parse_verdict(text)
        assert result.band == ArousalBand.SHUTDOWN
        assert result.rationale == "r"

    def test_confidence_clamped(self) -> None:
        assert parse_verdict(verdict_json(confidence=1.7)).confidence == 1.0
        assert parse_verdict(verdict_json(confidence=-2)).confidence == 0.0

    def test_unknown_band_rejected(self) -> None:
        with pytest.raises(RemoteMalformedResponse):
            parse_verdict(verdict_json("purple"))

    def test_no_json_rejected(self) -> None:
        with pytest.raises(RemoteMalformedResponse):
            parse_verdict("I cannot classify this.")

    def test_broken_json_rejected(self) -> None:
        with pytest.raises(RemoteMalformedResponse):
            parse_verdict('{"arousalBand": "calm", }')

    def test_missing_band_rejected(self) -> None:
        with pytest.raises(RemoteMalformedResponse):
            parse_verdict(json.dumps({"confidence": 0.5}))


class TestResponseText:
    def test_string_content(self) -> None:
        assert response_text(type("R", (), {"content": "abc"})()) == "abc"

    def test_block_content(self) -> None:
        response = type("R", (), {"content": [{"type": "text", "text": "a"}, {"type": "image"}, "b"]})()
        assert response_text(response) == "ab"


# ── Providers ────────────────────────────────────────────────────────────────

class TestProviders:
    def test_claude_request_has_system_and_user_turns(self) -> None:
        ctx = build_context(profile(), snapshot(), RollingSessionSummary())
        messages = ClaudeProvider().build_request(ctx.bundle)
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert "CURRENT OBSERVATIONS" in messages[1].content

    def test_gemini_folds_system_prompt(self) -> None:
        ctx = build_context(profile(), snapshot(), RollingSessionSummary())
        messages = GeminiProvider().build_request(ctx.bundle)
        assert len(messages) == 1
        assert "AROUSAL BANDS" in messages[0].content

    def test_coaching_request_uses_coaching_system_prompt(self) -> None:
        messages = ClaudeProvider().build_coaching_request("Arousal state: high")
        assert isinstance(messages[0], SystemMessage)
        assert "numbered list" in messages[0].content
        assert messages[1].content == "Arousal state: high"

    def test_gemini_folds_coaching_system_prompt(self) -> None:
        messages = GeminiProvider().build_coaching_request("Arousal state: high")
        assert len(messages) == 1
        assert messages[0].content.endswith("Arousal state: high")
        assert "numbered list" in messages[0].content

    def test_identities(self) -> None:
        assert ClaudeProvider().identity == ProviderId.CLAUDE
        assert GroqProvider().identity == ProviderId.GROQ
        assert GeminiProvider().identity == ProviderId.GEMINI

    def test_default_models(self) -> None:
        assert ClaudeProvider().model == "claude-sonnet-4-20250514"
        assert GroqProvider().model == "llama-3.1-70b-versatile"


class TestProviderRegistry:
    def test_with_defaults_registers_all(self) -> None:
        registry = ProviderRegistry.with_defaults()
        assert set(registry.provider_ids) == set(ProviderId)

    def test_find_returns_none(self) -> None:
        assert ProviderRegistry().find(ProviderId.GROQ) is None


class TestKeyProviders:
    def test_static_keys(self) -> None:
        keys = StaticKeyProvider({ProviderId.CLAUDE: "k", ProviderId.GROQ: ""})
        assert keys.get(ProviderId.CLAUDE).get_secret_value() == "k"
        assert keys.get(ProviderId.GROQ) is None

    def test_env_keys(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AROUSAL_GROQ_API_KEY", raising=False)
        monkeypatch.setenv("GROQ_API_KEY", "from-env")
        assert EnvKeyProvider().get(ProviderId.GROQ).get_secret_value() == "from-env"

    def test_env_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AROUSAL_GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        assert EnvKeyProvider().get(ProviderId.GEMINI) is None
