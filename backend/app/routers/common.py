from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.config import GoogleConfig, get_google_config
from ..core.errors import (
    NotAuthenticated,
    NotConnected,
    PersistenceError,
    ProviderUnavailable,
    RecordNotFound,
    RemoteNotFound,
    SyncError,
    SyncInProgress,
)
from ..db.database import get_db
from ..services.calendar_sync import CalendarReconciler
from ..services.email_ingest import EmailIngestor
from ..services.google_account import GoogleAccountService

STATUS_BY_ERROR = [
    (RecordNotFound, 404),
    (NotConnected, 400),
    (NotAuthenticated, 401),
    (SyncInProgress, 409),
    (ProviderUnavailable, 502),
    (RemoteNotFound, 502),
    (PersistenceError, 500),
]

DETAIL_BY_ERROR = {
    NotConnected: "Google account not connected",
    NotAuthenticated: "Google authorization expired or was revoked; reconnect your Google account",
}


def to_http(exc: SyncError) -> HTTPException:
    for cls, status in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return HTTPException(status_code=status, detail=DETAIL_BY_ERROR.get(cls, str(exc)))
    return HTTPException(status_code=500, detail=str(exc))


def get_reconciler(db: Session = Depends(get_db), config: GoogleConfig = Depends(get_google_config)) -> CalendarReconciler:
    return CalendarReconciler(db, config)


def get_email_ingestor(db: Session = Depends(get_db), config: GoogleConfig = Depends(get_google_config)) -> EmailIngestor:
    return EmailIngestor(db, config)


def get_google_account(db: Session = Depends(get_db), config: GoogleConfig = Depends(get_google_config)) -> GoogleAccountService:
    return GoogleAccountService(db, config)
