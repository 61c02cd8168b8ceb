"""ULID generation for edit-session handles."""

from __future__ import annotations

from ulid import ULID


def generate_session_id() -> str:
    """Generate a new edit-session ID with the sess_ prefix."""
    return f"sess_{ULID()}"
