import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import APIKeyCookie, HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..db.database import get_db
from ..models.user_model import User

JWT_ALGORITHM = 'HS256'
SESSION_COOKIE = 'token'
SESSION_TTL = timedelta(days=7)

session_cookie = APIKeyCookie(name=SESSION_COOKIE, auto_error=False)
bearer = HTTPBearer(auto_error=False)


def _secret() -> str:
    return os.getenv('JWT_SECRET', 'dev-secret-change-me')


def create_session_token(user_id: int, ttl: timedelta = SESSION_TTL) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode({'id': user_id, 'iat': now, 'exp': now + ttl}, _secret(), algorithm=JWT_ALGORITHM)


def verify_session_token(token: str) -> Optional[int]:
    try:
        payload = jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if 'purpose' in payload:
        # consent-flow state travels in URLs and never authenticates a request
        return None
    user_id = payload.get('id')
    return user_id if isinstance(user_id, int) else None


def get_current_user(
    cookie_token: Optional[str] = Security(session_cookie),
    authorization: Optional[HTTPAuthorizationCredentials] = Security(bearer),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the caller from the `token` cookie (or an Authorization: Bearer header)."""
    token = cookie_token or (authorization.credentials if authorization else None)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user_id = verify_session_token(token)
    user = db.get(User, user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


OAUTH_STATE_TTL = timedelta(minutes=10)


def create_oauth_state(user_id: int, ttl: timedelta = OAUTH_STATE_TTL) -> str:
    """Signed consent-flow state carrying the user id; nothing is stored server side."""
    now = datetime.now(timezone.utc)
    payload = {'id': user_id, 'purpose': 'google_oauth', 'nonce': secrets.token_urlsafe(8), 'iat': now, 'exp': now + ttl}
    return jwt.encode(payload, _secret(), algorithm=JWT_ALGORITHM)


def verify_oauth_state(state: str) -> Optional[int]:
    try:
        payload = jwt.decode(state, _secret(), algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None
    if payload.get('purpose') != 'google_oauth':
        return None
    user_id = payload.get('id')
    return user_id if isinstance(user_id, int) else None
