"""Application configuration loaded from environment variables.

``settings`` is read by the service entry point only.  Engine components
receive an explicit, frozen EngineConfig at session start so a running
session never observes a configuration change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings

from arousal_engine.domain.enums import EngineMode, ProviderId


@dataclass(frozen=True)
class EngineConfig:
    """Per-session engine parameters."""

    mode: EngineMode = EngineMode.STANDARD
    provider: ProviderId = ProviderId.CLAUDE
    cache_ttl: float = 5.0
    remote_timeout: float = 8.0
    tick_interval: float = 1.0
    max_suggestions: int = 3
    suggestion_cooldown: float = 30.0
    failure_alert_threshold: int = 5
    summary_every_ticks: int = 10
    history_window: int = 30
    remote_coaching: bool = False
    coaching_timeout: float = 3.0
    coaching_cache_ttl: float = 10.0

    def __post_init__(self) -> None:
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        if self.remote_timeout <= 0:
            raise ValueError("remote_timeout must be positive")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if self.max_suggestions < 1:
            raise ValueError("max_suggestions must be at least 1")
        if self.failure_alert_threshold < 1:
            raise ValueError("failure_alert_threshold must be at least 1")
        if self.history_window < 1:
            raise ValueError("history_window must be at least 1")
        if self.coaching_timeout <= 0:
            raise ValueError("coaching_timeout must be positive")
        if self.coaching_cache_ttl <= 0:
            raise ValueError("coaching_cache_ttl must be positive")

    @property
    def tick_budget(self) -> float:
        """How long the arbiter may wait for a remote verdict each tick."""
        return self.tick_interval


class Settings(BaseSettings):
    app_name: str = "arousal-engine"
    debug: bool = False
    log_level: str = "INFO"

    # Arbiter
    mode: EngineMode = EngineMode.STANDARD
    provider: ProviderId = ProviderId.CLAUDE
    tick_interval_seconds: float = 1.0
    failure_alert_threshold: int = 5

    # Remote reasoning
    cache_ttl_seconds: float = 5.0
    remote_timeout_seconds: float = 8.0
    claude_model: str = "claude-sonnet-4-20250514"
    groq_model: str = "llama-3.1-70b-versatile"
    gemini_model: str = "gemini-2.0-flash"
    temperature: float = 0.3
    max_output_tokens: int = 1024

    # Coaching
    max_suggestions: int = 3
    suggestion_cooldown_seconds: float = 30.0
    remote_coaching: bool = False
    coaching_timeout_seconds: float = 3.0
    coaching_cache_ttl_seconds: float = 10.0

    # Session
    summary_every_ticks: int = 10
    history_window: int = 30
    profile_path: Optional[str] = None

    model_config = {"env_prefix": "AROUSAL_"}

    def engine_config(self, mode: Optional[EngineMode] = None) -> EngineConfig:
        return EngineConfig(
            mode=mode or self.mode,
            provider=self.provider,
            cache_ttl=self.cache_ttl_seconds,
            remote_timeout=self.remote_timeout_seconds,
            tick_interval=self.tick_interval_seconds,
            max_suggestions=self.max_suggestions,
            suggestion_cooldown=self.suggestion_cooldown_seconds,
            failure_alert_threshold=self.failure_alert_threshold,
            summary_every_ticks=self.summary_every_ticks,
            history_window=self.history_window,
            remote_coaching=self.remote_coaching,
            coaching_timeout=self.coaching_timeout_seconds,
            coaching_cache_ttl=self.coaching_cache_ttl_seconds,
        )


settings = Settings()
