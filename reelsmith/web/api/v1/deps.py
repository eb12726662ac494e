"""Dependency providers for v1 API."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from ....engine.coordinator import RunCoordinator

LOCAL_USER = "local-dev"


def get_coordinator(request: Request) -> RunCoordinator:
    """Access the shared run coordinator from app state."""
    return request.app.state.coordinator


def get_user_id(request: Request) -> str:
    """Return user identifier resolved by auth middleware."""
    user_id = getattr(request.state, "user_id", None)
    return user_id or LOCAL_USER


def get_auth_token(request: Request) -> Optional[str]:
    """Capability token forwarded to internal endpoints on the caller's behalf."""
    header = (request.headers.get("Authorization") or "").strip()
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer ") :].strip()
    return token or None
