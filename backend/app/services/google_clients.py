"""Thin factories around the Google client libraries.

Everything that talks to Google goes through here so the rest of the code only
sees the error taxonomy in ``core.errors``:
  - HttpError 404/410 -> RemoteNotFound
  - HttpError 401 / RefreshError -> NotAuthenticated
  - any other HttpError, transport or socket failure -> ProviderUnavailable
"""
from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Tuple
from urllib.parse import urlencode
import logging

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..core.config import GoogleConfig
from ..core.errors import NotAuthenticated, ProviderUnavailable, RemoteNotFound

log = logging.getLogger(__name__)


@contextmanager
def google_call(operation: str) -> Iterator[None]:
    try:
        yield
    except HttpError as e:
        status = int(e.resp.status)
        if status in (404, 410):
            raise RemoteNotFound(f"{operation}: remote resource not found") from e
        if status == 401:
            raise NotAuthenticated(f"{operation}: access token rejected") from e
        raise ProviderUnavailable(f"{operation}: Google returned HTTP {status}", status=status) from e
    except RefreshError as e:
        raise NotAuthenticated(f"{operation}: credentials could not be refreshed") from e
    except (TransportError, httplib2.HttpLib2Error, OSError) as e:
        raise ProviderUnavailable(f"{operation}: {type(e).__name__}: {e}") from e


def _bearer(access_token: str) -> Credentials:
    return Credentials(token=access_token)


def build_calendar_service(access_token: str):
    return build('calendar', 'v3', credentials=_bearer(access_token), cache_discovery=False)


def build_gmail_service(access_token: str):
    return build('gmail', 'v1', credentials=_bearer(access_token), cache_discovery=False)


def refresh_access_token(config: GoogleConfig, refresh_token: str) -> Tuple[str, datetime | None]:
    """Exchange a refresh token for a new access token. Returns (token, expiry in UTC)."""
    if not config.can_refresh:
        raise NotAuthenticated("Google client id/secret not configured; token refresh unavailable")
    creds = Credentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=config.token_uri,
        client_id=config.client_id,
        client_secret=config.client_secret,
    )
    with google_call('token_refresh'):
        creds.refresh(GoogleRequest())
    expiry = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None
    return creds.token, expiry


def revoke_token(config: GoogleConfig, token: str) -> None:
    """Revoke an access or refresh token. Google answers 400 for tokens that are already invalid."""
    request = GoogleRequest()
    with google_call('token_revoke'):
        response = request(
            url=config.revoke_uri,
            method='POST',
            body=urlencode({'token': token}),
            headers={'content-type': 'application/x-www-form-urlencoded'},
        )
    if response.status != 200:
        raise ProviderUnavailable(f"token_revoke: Google returned HTTP {response.status}", status=response.status)


def build_flow(config: GoogleConfig, state: str | None = None) -> Flow:
    client_config = {
        'web': {
            'client_id': config.client_id,
            'client_secret': config.client_secret,
            'auth_uri': 'https://accounts.google.com/o/oauth2/auth',
            'token_uri': config.token_uri,
            'redirect_uris': [config.redirect_uri],
        }
    }
    return Flow.from_client_config(
        client_config,
        scopes=config.scopes,
        redirect_uri=config.redirect_uri,
        state=state,
        autogenerate_code_verifier=False,
    )
