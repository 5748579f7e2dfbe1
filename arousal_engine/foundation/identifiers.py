"""ID generation for sessions."""

from __future__ import annotations

from uuid import uuid4


def new_id() -> str:
    """Generate a session id: a random UUID v4 in hex form, safe for JSON and URLs."""
    return uuid4().hex
