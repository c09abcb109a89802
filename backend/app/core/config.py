"""Google integration settings.

Values come from the environment (``backend/.env`` is loaded by ``main``):
  GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET: OAuth client used for the consent flow and refresh
  GOOGLE_REDIRECT_URI: callback registered with Google (defaults to the local API callback)
  GOOGLE_TOKEN_URI / GOOGLE_REVOKE_URI: token and revoke endpoints
  GOOGLE_CALENDAR_ID: target calendar for pushed events (default 'primary')

The config is passed explicitly to the client factories so tests can build one
with fake values instead of mutating process state.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List
import os

GOOGLE_SCOPES = [
    'openid',
    'https://www.googleapis.com/auth/userinfo.email',
    'https://www.googleapis.com/auth/userinfo.profile',
    'https://www.googleapis.com/auth/calendar',
    'https://www.googleapis.com/auth/gmail.readonly',
    'https://www.googleapis.com/auth/gmail.send',
    'https://www.googleapis.com/auth/gmail.compose',
    'https://www.googleapis.com/auth/gmail.labels',
]


@dataclass(frozen=True)
class GoogleConfig:
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str = 'http://localhost:8000/api/google/callback'
    token_uri: str = 'https://oauth2.googleapis.com/token'
    revoke_uri: str = 'https://oauth2.googleapis.com/revoke'
    calendar_id: str = 'primary'
    scopes: List[str] = field(default_factory=lambda: list(GOOGLE_SCOPES))

    @property
    def can_refresh(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @classmethod
    def from_env(cls) -> 'GoogleConfig':
        defaults = cls()
        return cls(
            client_id=os.getenv('GOOGLE_CLIENT_ID') or None,
            client_secret=os.getenv('GOOGLE_CLIENT_SECRET') or None,
            redirect_uri=os.getenv('GOOGLE_REDIRECT_URI', defaults.redirect_uri),
            token_uri=os.getenv('GOOGLE_TOKEN_URI', defaults.token_uri),
            revoke_uri=os.getenv('GOOGLE_REVOKE_URI', defaults.revoke_uri),
            calendar_id=os.getenv('GOOGLE_CALENDAR_ID', defaults.calendar_id),
        )


def get_google_config() -> GoogleConfig:
    """FastAPI dependency; re-reads the environment on every request."""
    return GoogleConfig.from_env()
