"""arousal-engine — real-time arousal classification and caregiver coaching.

This is the application entry point.  It wires the provider registry,
session factory, session registry and WebSocket/REST endpoints together.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from arousal_engine.api.dependencies import ui_manager
from arousal_engine.api.sessions import create_sessions_router
from arousal_engine.api.ws_decisions import create_decisions_router
from arousal_engine.api.ws_session import create_session_router
from arousal_engine.config import settings
from arousal_engine.remote.credentials import EnvKeyProvider
from arousal_engine.remote.providers import ProviderRegistry
from arousal_engine.services.session_factory import SessionFactory, load_profile
from arousal_engine.store.session_registry import SessionRegistry

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ── Remote reasoning ─────────────────────────────────────────────────────────

providers = ProviderRegistry.with_defaults(
    claude_model=settings.claude_model,
    groq_model=settings.groq_model,
    gemini_model=settings.gemini_model,
    temperature=settings.temperature,
    max_output_tokens=settings.max_output_tokens,
)

# ── State ────────────────────────────────────────────────────────────────────

sessions = SessionRegistry()

factory = SessionFactory(
    settings,
    providers,
    EnvKeyProvider(),
    default_profile=load_profile(settings.profile_path),
)

# ── App ──────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await sessions.close_all()


app = FastAPI(
    title=settings.app_name,
    description="Arousal classification, remote reasoning fallback and coaching",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

# ── Routes ───────────────────────────────────────────────────────────────────

app.include_router(create_session_router(sessions, factory, ui_manager))
app.include_router(create_decisions_router(ui_manager))
app.include_router(create_sessions_router(sessions))


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    overview = await sessions.overview()
    return {
        "status": "ok",
        "mode": settings.mode.value,
        "provider": settings.provider.value,
        "ui_clients": ui_manager.active_count,
        **overview.to_dict(),
    }
