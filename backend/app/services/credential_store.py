"""Per-user Google credential persisted on the ``accounts`` table."""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from ..core.config import GoogleConfig
from ..core.errors import NotAuthenticated, NotConnected
from ..db.database import as_utc, utcnow
from ..models.user_model import Account
from .google_clients import refresh_access_token

PROVIDER = 'google'
# treat tokens this close to expiry as already expired
EXPIRY_SKEW = timedelta(seconds=60)

log = logging.getLogger(__name__)

Refresher = Callable[[GoogleConfig, str], Tuple[str, Optional[datetime]]]


@dataclass(frozen=True)
class Credential:
    access_token: str | None
    refresh_token: str | None
    expires_at: datetime | None
    scope: str | None = None
    connected: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        if not self.access_token:
            return True
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at - EXPIRY_SKEW


class CredentialStore:
    def __init__(self, db: Session, config: GoogleConfig, refresher: Refresher = refresh_access_token):
        self.db = db
        self.config = config
        self.refresher = refresher

    def _account(self, user_id: int) -> Account | None:
        return self.db.query(Account).filter(Account.user_id == user_id, Account.provider == PROVIDER).first()

    def get(self, user_id: int) -> Credential | None:
        acc = self._account(user_id)
        if acc is None:
            return None
        return Credential(
            access_token=acc.access_token,
            refresh_token=acc.refresh_token,
            expires_at=as_utc(acc.expires_at),
            scope=acc.scope,
            connected=bool(acc.connected),
        )

    def set(self, user_id: int, access_token: str | None, refresh_token: str | None = None,
            expires_at: datetime | None = None, scope: str | None = None) -> Credential:
        """Upsert the credential. A missing refresh token keeps the stored one (Google omits it on re-consent)."""
        acc = self._account(user_id)
        if acc is None:
            acc = Account(user_id=user_id, provider=PROVIDER)
            self.db.add(acc)
        acc.access_token = access_token
        if refresh_token:
            acc.refresh_token = refresh_token
        acc.expires_at = as_utc(expires_at)
        if scope is not None:
            acc.scope = scope
        acc.connected = bool(acc.refresh_token)
        self.db.commit()
        self.db.refresh(acc)
        return self.get(user_id)

    def clear(self, user_id: int) -> bool:
        acc = self._account(user_id)
        if acc is None:
            return False
        acc.access_token = None
        acc.refresh_token = None
        acc.expires_at = None
        acc.connected = False
        self.db.commit()
        return True

    def valid_access_token(self, user_id: int) -> str:
        """Return a usable access token, refreshing it when expired.

        Raises NotConnected when there is no connected account and
        NotAuthenticated when the token is expired and cannot be refreshed.
        """
        cred = self.get(user_id)
        if cred is None or not cred.connected:
            raise NotConnected("Google account not connected")
        if not cred.is_expired():
            return cred.access_token
        if not cred.refresh_token:
            raise NotAuthenticated("Google access token expired and no refresh token is stored")
        try:
            token, expiry = self.refresher(self.config, cred.refresh_token)
        except NotAuthenticated:
            log.warning("google_token_refresh_failed", extra={"user_id": user_id})
            raise
        if not token:
            raise NotAuthenticated("Google token refresh returned no access token")
        acc = self._account(user_id)
        acc.access_token = token
        acc.expires_at = as_utc(expiry)
        self.db.commit()
        log.info("google_token_refreshed", extra={"user_id": user_id})
        return token
