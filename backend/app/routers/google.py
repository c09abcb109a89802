from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.errors import SyncError
from ..models.user_model import User
from ..schemas.google import AuthorizationUrl, GoogleStatus
from ..security.session import create_oauth_state, get_current_user, verify_oauth_state
from ..services.google_account import GoogleAccountService
from .common import get_google_account, to_http

router = APIRouter()


@router.get("/status", response_model=GoogleStatus)
def google_status(user: User = Depends(get_current_user), account: GoogleAccountService = Depends(get_google_account)):
    return account.status(user.id)


@router.post("/disconnect")
def disconnect(user: User = Depends(get_current_user), account: GoogleAccountService = Depends(get_google_account)):
    """Always succeeds for an authenticated caller; a failed revoke is only logged."""
    revoked = account.disconnect(user.id)
    return {"success": True, "revoked": revoked, "message": "Google account disconnected successfully"}


@router.get("/authorize", response_model=AuthorizationUrl)
def authorize(user: User = Depends(get_current_user), account: GoogleAccountService = Depends(get_google_account)):
    if not account.config.can_refresh:
        raise HTTPException(status_code=500, detail="Google OAuth client is not configured")
    state = create_oauth_state(user.id)
    return AuthorizationUrl(authorization_url=account.authorization_url(state), state=state)


@router.get("/callback", response_model=GoogleStatus)
def callback(
    code: str = Query(...),
    state: str = Query(...),
    account: GoogleAccountService = Depends(get_google_account),
):
    """State is signed and expires after a few minutes, so abandoned consent flows leave nothing behind."""
    user_id = verify_oauth_state(state)
    if user_id is None:
        raise HTTPException(status_code=400, detail="Invalid or expired authorization state")
    try:
        account.complete_authorization(user_id, code)
    except SyncError as e:
        raise to_http(e)
    return account.status(user_id)
