"""Shared resources for the API routers."""

from __future__ import annotations

from arousal_engine.services.connection_manager import ConnectionManager

# Singleton connection manager for frontend WebSocket clients
ui_manager = ConnectionManager()
