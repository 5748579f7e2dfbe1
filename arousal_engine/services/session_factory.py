"""Builds CoachingSessions from service settings.

Settings are read once, here, and frozen into an EngineConfig for each
session.  A session in personalized mode gets its own RemoteReasoningClient
so its cache and in-flight calls die with it.  With remote coaching
enabled, a personalized session also gets a RemoteCoachingGenerator on the
same provider; standard sessions always coach from the rule table.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from arousal_engine.config import EngineConfig, Settings
from arousal_engine.core.arbiter import FailureAlert
from arousal_engine.core.classifier import RuleBasedClassifier
from arousal_engine.core.coaching import CoachingGenerator
from arousal_engine.core.session import CoachingSession
from arousal_engine.domain.enums import EngineMode
from arousal_engine.domain.profile import ChildProfile
from arousal_engine.remote.client import ModelFactory, RemoteReasoningClient
from arousal_engine.remote.coaching import RemoteCoachingGenerator
from arousal_engine.remote.credentials import KeyProvider
from arousal_engine.remote.providers import ProviderRegistry

logger = logging.getLogger(__name__)


def load_profile(path: Optional[str]) -> Optional[ChildProfile]:
    """Read a ChildProfile JSON file; None when no path is configured."""
    if not path:
        return None
    profile = ChildProfile.model_validate_json(Path(path).read_text(encoding="utf-8"))
    logger.info("Loaded child profile from %s", path)
    return profile


class SessionFactory:
    """Creates fully wired sessions.

    Args:
        settings: Service settings (read once per session).
        providers: Registry of remote reasoning providers.
        keys: Credential lookup for the configured provider.
        default_profile: Profile used when a client does not send one.
        model_factory: Override for chat model construction (tests).
    """

    def __init__(
        self,
        settings: Settings,
        providers: ProviderRegistry,
        keys: KeyProvider,
        *,
        default_profile: Optional[ChildProfile] = None,
        model_factory: Optional[ModelFactory] = None,
    ) -> None:
        self._settings = settings
        self._providers = providers
        self._keys = keys
        self._default_profile = default_profile
        self._model_factory = model_factory

    def engine_config(self, mode: Optional[EngineMode] = None) -> EngineConfig:
        return self._settings.engine_config(mode)

    def create(
        self,
        *,
        profile: Optional[ChildProfile] = None,
        mode: Optional[EngineMode] = None,
        on_persistent_failure: Optional[FailureAlert] = None,
    ) -> CoachingSession:
        config = self.engine_config(mode)
        profile = profile or self._default_profile

        client = None
        coach = CoachingGenerator(
            max_suggestions=config.max_suggestions,
            cooldown=config.suggestion_cooldown,
        )
        if config.mode == EngineMode.PERSONALIZED:
            provider = self._providers.find(config.provider)
            if provider is None:
                logger.warning(
                    "Provider '%s' not registered; session will fall back every tick",
                    config.provider.value,
                )
            else:
                client = RemoteReasoningClient(
                    provider,
                    self._keys,
                    cache_ttl=config.cache_ttl,
                    timeout=config.remote_timeout,
                    model_factory=self._model_factory,
                )
                if config.remote_coaching:
                    coach = RemoteCoachingGenerator(
                        provider,
                        self._keys,
                        max_suggestions=config.max_suggestions,
                        cooldown=config.suggestion_cooldown,
                        timeout=config.coaching_timeout,
                        cache_ttl=config.coaching_cache_ttl,
                        model_factory=self._model_factory,
                    )

        return CoachingSession(
            config,
            profile=profile,
            classifier=RuleBasedClassifier(),
            client=client,
            coach=coach,
            on_persistent_failure=on_persistent_failure,
        )
