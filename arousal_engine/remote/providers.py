"""Remote reasoning providers — request shaping and verdict parsing.

A provider knows three things about its backend:
    1. How to turn a context bundle (or a coaching prompt) into chat messages.
    2. How to construct a langchain chat model for a given API key.
    3. How to parse the model's text answer into a remote Decision.

Providers never perform I/O themselves.  The RemoteReasoningClient owns
the call, the timeout and the cache; providers are stateless and cheap.

Chat model classes are imported lazily inside ``create_model`` so the
engine can run in standard mode without any provider SDK installed.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import AliasChoices, BaseModel, Field, SecretStr, ValidationError, field_validator

from arousal_engine.domain.decision import Decision
from arousal_engine.domain.enums import ArousalBand, DecisionSource, ProviderId
from arousal_engine.remote.errors import RemoteMalformedResponse
from arousal_engine.remote.prompts import COACHING_SYSTEM_PROMPT, SYSTEM_PROMPT, render_user_prompt

logger = logging.getLogger(__name__)

# Colour names used by earlier clients of the verdict format
_BAND_ALIASES = {
    "green": ArousalBand.CALM,
    "yellow": ArousalBand.BUILDING,
    "orange": ArousalBand.HIGH,
    "red": ArousalBand.CRISIS,
}


# ── Verdict parsing ─────────────────────────────────────────────────────────

class RemoteVerdict(BaseModel):
    """Wire shape of a provider's JSON answer."""

    band: ArousalBand = Field(validation_alias=AliasChoices("arousalBand", "arousal_band", "band"))
    confidence: float = 0.5
    rationale: str = Field(
        default="",
        validation_alias=AliasChoices("reasoning", "rationale"),
    )
    key_indicators: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("keyIndicators", "key_indicators"),
    )

    @field_validator("band", mode="before")
    @classmethod
    def normalise_band(cls, v: Any) -> Any:
        if isinstance(v, str):
            key = v.strip().lower()
            return _BAND_ALIASES.get(key, key)
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        value = float(v)
        if value != value:  # NaN
            raise ValueError("confidence is NaN")
        return max(0.0, min(value, 1.0))

    @field_validator("key_indicators", mode="before")
    @classmethod
    def coerce_indicators(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v]


def extract_json_object(text: str) -> str:
    """Return the outermost ``{...}`` span of *text*.

    Tolerates markdown code fences and prose around the object.
    """
    text = text.strip()
    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise RemoteMalformedResponse("No JSON object found in provider response")
    return text[start:end + 1]


def parse_verdict(text: str) -> Decision:
    """Parse a provider answer into a remote Decision.

    Raises:
        RemoteMalformedResponse: If the text is not a valid verdict.
    """
    raw = extract_json_object(text)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RemoteMalformedResponse(f"Invalid JSON in provider response: {exc}") from exc
    if not isinstance(payload, dict):
        raise RemoteMalformedResponse("Provider response is not a JSON object")

    try:
        verdict = RemoteVerdict.model_validate(payload)
    except (ValidationError, ValueError, TypeError) as exc:
        raise RemoteMalformedResponse(f"Invalid verdict: {exc}") from exc

    return Decision(
        band=verdict.band,
        confidence=verdict.confidence,
        source=DecisionSource.REMOTE,
        rationale=verdict.rationale[:500],
        key_indicators=tuple(verdict.key_indicators[:8]),
    )


def response_text(response: Any) -> str:
    """Flatten a chat model response into plain text.

    Some providers return ``content`` as a list of blocks rather than a str.
    """
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


# ── Providers ───────────────────────────────────────────────────────────────

class ReasoningProvider(ABC):
    """Base class for remote arousal classification backends."""

    def __init__(
        self,
        model: str,
        *,
        temperature: float = 0.3,
        max_output_tokens: int = 1024,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    @property
    @abstractmethod
    def identity(self) -> ProviderId:
        """Which provider this is; used for key lookup."""
        ...

    @abstractmethod
    def create_model(self, api_key: SecretStr) -> Any:
        """Construct a langchain chat model bound to *api_key*."""
        ...

    def build_request(self, bundle: dict[str, Any]) -> list[BaseMessage]:
        """Shape the context bundle into chat messages."""
        return self._messages(SYSTEM_PROMPT, render_user_prompt(bundle))

    def build_coaching_request(self, prompt: str) -> list[BaseMessage]:
        """Shape a rendered coaching prompt into chat messages."""
        return self._messages(COACHING_SYSTEM_PROMPT, prompt)

    def _messages(self, system: str, user: str) -> list[BaseMessage]:
        return [SystemMessage(content=system), HumanMessage(content=user)]

    def parse_response(self, text: str) -> Decision:
        return parse_verdict(text)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


class ClaudeProvider(ReasoningProvider):
    """Anthropic Claude via langchain-anthropic."""

    def __init__(self, model: str = "claude-sonnet-4-20250514", **kwargs: Any) -> None:
        super().__init__(model, **kwargs)

    @property
    def identity(self) -> ProviderId:
        return ProviderId.CLAUDE

    def create_model(self, api_key: SecretStr) -> Any:
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=self.model,
            api_key=api_key,
            temperature=self.temperature,
            max_tokens=self.max_output_tokens,
            max_retries=0,
        )


class GroqProvider(ReasoningProvider):
    """Groq-hosted Llama via langchain-groq."""

    def __init__(self, model: str = "llama-3.1-70b-versatile", **kwargs: Any) -> None:
        super().__init__(model, **kwargs)

    @property
    def identity(self) -> ProviderId:
        return ProviderId.GROQ

    def create_model(self, api_key: SecretStr) -> Any:
        from langchain_groq import ChatGroq

        return ChatGroq(
            model=self.model,
            api_key=api_key,
            temperature=self.temperature,
            max_tokens=self.max_output_tokens,
            max_retries=0,
        )


class GeminiProvider(ReasoningProvider):
    """Google Gemini via langchain-google-genai.

    The system prompt is folded into the single user turn.
    """

    def __init__(self, model: str = "gemini-2.0-flash", **kwargs: Any) -> None:
        super().__init__(model, **kwargs)

    @property
    def identity(self) -> ProviderId:
        return ProviderId.GEMINI

    def create_model(self, api_key: SecretStr) -> Any:
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(
            model=self.model,
            google_api_key=api_key,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )

    def _messages(self, system: str, user: str) -> list[BaseMessage]:
        return [HumanMessage(content=f"{system}\n\n{user}")]


# ── Registry ────────────────────────────────────────────────────────────────

class ProviderRegistry:
    """Resolves a ProviderId to a configured provider instance.

    Usage:
        registry = ProviderRegistry()
        registry.register(ClaudeProvider())
        provider = registry.find(ProviderId.CLAUDE)
    """

    def __init__(self) -> None:
        self._providers: dict[ProviderId, ReasoningProvider] = {}

    def register(self, provider: ReasoningProvider) -> None:
        self._providers[provider.identity] = provider
        logger.info("Registered reasoning provider: %s", provider)

    def find(self, provider_id: ProviderId) -> Optional[ReasoningProvider]:
        return self._providers.get(provider_id)

    @property
    def provider_ids(self) -> list[ProviderId]:
        return list(self._providers)

    @classmethod
    def with_defaults(
        cls,
        *,
        claude_model: str = "claude-sonnet-4-20250514",
        groq_model: str = "llama-3.1-70b-versatile",
        gemini_model: str = "gemini-2.0-flash",
        temperature: float = 0.3,
        max_output_tokens: int = 1024,
    ) -> ProviderRegistry:
        """Registry with all three providers configured."""
        registry = cls()
        common = {"temperature": temperature, "max_output_tokens": max_output_tokens}
        registry.register(ClaudeProvider(claude_model, **common))
        registry.register(GroqProvider(groq_model, **common))
        registry.register(GeminiProvider(gemini_model, **common))
        return registry
