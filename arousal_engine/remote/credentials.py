"""Credential lookup for remote reasoning providers.

Keys are opaque secrets obtained from an external secure store.  The engine
only ever asks "is there a key for this provider?"; a missing key is not an
error here, it surfaces as RemoteUnavailable before any network attempt.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional, Protocol

from pydantic import SecretStr

from arousal_engine.domain.enums import ProviderId

# Environment variables consulted per provider, in order.
_ENV_KEYS: dict[ProviderId, tuple[str, ...]] = {
    ProviderId.CLAUDE: ("AROUSAL_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
    ProviderId.GROQ: ("AROUSAL_GROQ_API_KEY", "GROQ_API_KEY"),
    ProviderId.GEMINI: ("AROUSAL_GEMINI_API_KEY", "GOOGLE_API_KEY"),
}


class KeyProvider(Protocol):
    """Opaque secure key lookup by provider identity."""

    def get(self, provider_id: ProviderId) -> Optional[SecretStr]:
        ...


class EnvKeyProvider:
    """Reads provider keys from environment variables."""

    def get(self, provider_id: ProviderId) -> Optional[SecretStr]:
        for name in _ENV_KEYS.get(provider_id, ()):
            value = os.environ.get(name)
            if value:
                return SecretStr(value)
        return None


class StaticKeyProvider:
    """In-memory key mapping (tests, embedding hosts with their own keystore)."""

    def __init__(self, keys: Mapping[ProviderId, str] | None = None) -> None:
        self._keys = {pid: SecretStr(k) for pid, k in (keys or {}).items() if k}

    def get(self, provider_id: ProviderId) -> Optional[SecretStr]:
        return self._keys.get(provider_id)
