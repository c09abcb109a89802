from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import logging

from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from sqlalchemy.orm import Session

from ..core.config import GoogleConfig
from ..core.errors import NotAuthenticated, SyncError
from ..models.user_model import User
from ..schemas.google import GoogleStatus
from . import sync_ledger
from .credential_store import CredentialStore
from .google_clients import build_flow, google_call, revoke_token

log = logging.getLogger(__name__)

Revoker = Callable[[GoogleConfig, str], None]


class GoogleAccountService:
    """Connect / disconnect / status of a user's Google account."""

    def __init__(
        self,
        db: Session,
        config: GoogleConfig,
        credentials: Optional[CredentialStore] = None,
        revoker: Revoker = revoke_token,
        flow_factory=build_flow,
    ):
        self.db = db
        self.config = config
        self.credentials = credentials or CredentialStore(db, config)
        self.revoker = revoker
        self.flow_factory = flow_factory

    def disconnect(self, user_id: int) -> bool:
        """Revoke the token at Google if possible, then always clear the stored credential.

        Returns whether the revoke call succeeded (False also when there was nothing to revoke).
        """
        cred = self.credentials.get(user_id)
        revoked = False
        token = cred and (cred.access_token or cred.refresh_token)
        if token:
            try:
                self.revoker(self.config, token)
                revoked = True
            except SyncError as e:
                log.warning("google_revoke_failed", exc_info=e, extra={"user_id": user_id, "error_type": type(e).__name__})
        self.credentials.clear(user_id)
        log.info("google_disconnected", extra={"user_id": user_id})
        return revoked

    def status(self, user_id: int) -> GoogleStatus:
        cred = self.credentials.get(user_id)
        if cred is None or not cred.connected:
            return GoogleStatus(is_connected=False)
        user = self.db.get(User, user_id)
        last = sync_ledger.latest(self.db, user_id)
        return GoogleStatus(
            is_connected=True,
            email=user.email if user else None,
            scopes=(cred.scope or '').split(),
            last_synced=last.synced_at if last else None,
        )

    def authorization_url(self, state: str) -> str:
        flow = self.flow_factory(self.config, state)
        url, _ = flow.authorization_url(access_type='offline', prompt='consent', include_granted_scopes='true')
        return url

    def complete_authorization(self, user_id: int, code: str):
        """Exchange the OAuth code for tokens and store them on the user's account."""
        flow = self.flow_factory(self.config, None)
        with google_call('oauth_code_exchange'):
            try:
                flow.fetch_token(code=code)
            except OAuth2Error as e:
                raise NotAuthenticated(f"authorization code rejected: {e}") from e
        creds = flow.credentials
        expires_at = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else datetime.now(timezone.utc) + timedelta(hours=1)
        scope = ' '.join(creds.scopes or self.config.scopes)
        stored = self.credentials.set(user_id, creds.token, creds.refresh_token, expires_at, scope)
        log.info("google_connected", extra={"user_id": user_id})
        return stored
