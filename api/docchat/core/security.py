"""
Security module for API key handling and session identity.

The Gemini API key is either injected through configuration at start time
or entered by the user for the running session. Session-entered keys live
in memory only and are never written to disk.
"""

from dataclasses import dataclass

from fastapi import Request

from docchat.core.config import Settings
from docchat.core.errors import CredentialError

SESSION_HEADER = "X-Session-ID"
DEFAULT_SESSION_ID = "default"


@dataclass
class ApiKey:
    """A Gemini API key and where it came from."""

    value: str
    source: str = "session"

    def __repr__(self) -> str:
        return f"ApiKey(source={self.source!r}, value='***')"


def normalize_api_key(raw: str | None) -> str:
    """Strip whitespace; reject blank keys."""
    key = (raw or "").strip()
    if not key:
        raise CredentialError("An API key is required.")
    return key


def configured_api_key(settings: Settings) -> ApiKey | None:
    """Return the key injected through configuration, if any."""
    if settings.gemini_api_key.strip():
        return ApiKey(value=settings.gemini_api_key.strip(), source="config")
    return None


def get_session_id(request: Request) -> str:
    """
    Extract the session identifier from the request.

    Browser frontends send a random id in the X-Session-ID header. When the
    header is absent (local development, single user), all requests share
    one session.
    """
    session_id = request.headers.get(SESSION_HEADER, "").strip()
    return session_id or DEFAULT_SESSION_ID
