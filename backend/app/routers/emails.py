from fastapi import APIRouter, Depends, HTTPException, Query, Body
from typing import Optional
from sqlalchemy.orm import Session
import logging

from ..core.errors import SyncError
from ..core.events import broadcaster
from ..db.database import get_db
from ..models.user_model import User
from ..schemas.email import EmailApplicationLink, EmailOut, EmailSend, EmailSyncOut, EmailSyncRequest
from ..security.session import get_current_user
from ..services.email_ingest import EmailIngestor
from ..services.email_service import attach_application, get_email, list_emails as list_db_emails
from ..services.event_repository import get_application
from .common import get_email_ingestor, to_http

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/sync", response_model=EmailSyncOut)
def sync_emails(
    payload: Optional[EmailSyncRequest] = Body(None),
    user: User = Depends(get_current_user),
    ingestor: EmailIngestor = Depends(get_email_ingestor),
):
    """Fetch one page of Gmail messages and store the ones not seen before."""
    req = payload or EmailSyncRequest()
    try:
        result = ingestor.fetch_and_store_emails(
            user.id,
            max_results=req.max_results,
            query=req.query,
            label_ids=req.label_ids,
            page_token=req.page_token,
        )
    except SyncError as e:
        raise to_http(e)
    out = EmailSyncOut(count=result.fetched, stored=result.stored, failed=result.failed, next_page_token=result.next_page_token)
    try:
        broadcaster.publish("emails_synced", out.model_dump(), user_id=user.id)
    except RuntimeError:
        log.debug("emails_synced_publish_skipped")
    return out


@router.get("/")
def list_emails(
    application_id: Optional[int] = Query(None),
    thread_id: Optional[str] = Query(None, description="Gmail thread id"),
    q: Optional[str] = Query(None, description="Free text search across sender, subject, body"),
    unread: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    records, total = list_db_emails(db, user.id, application_id=application_id, thread_id=thread_id, q_search=q, unread_only=unread, limit=limit, offset=offset)
    items = [EmailOut.model_validate(r).model_dump() for r in records]
    return {"total": total, "count": len(items), "items": items, "limit": limit, "offset": offset}


@router.post("/send", response_model=EmailOut)
def send_email(payload: EmailSend, user: User = Depends(get_current_user), ingestor: EmailIngestor = Depends(get_email_ingestor)):
    if payload.application_id is not None and get_application(ingestor.db, user.id, payload.application_id) is None:
        raise HTTPException(status_code=404, detail="Application not found")
    try:
        return ingestor.send_email(
            user.id, payload.to, payload.subject, payload.body,
            cc=payload.cc, bcc=payload.bcc, is_html=payload.is_html, application_id=payload.application_id,
        )
    except SyncError as e:
        raise to_http(e)


@router.get("/labels")
def list_labels(user: User = Depends(get_current_user), ingestor: EmailIngestor = Depends(get_email_ingestor)):
    try:
        labels = ingestor.list_labels(user.id)
    except SyncError as e:
        raise to_http(e)
    return {"labels": labels}


@router.get("/{email_id}", response_model=EmailOut)
def get_single_email(email_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    record = get_email(db, user.id, email_id)
    if not record:
        raise HTTPException(status_code=404, detail="Email not found")
    return record


@router.patch("/{email_id}/application", response_model=EmailOut)
def link_application(email_id: int, payload: EmailApplicationLink, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    record = get_email(db, user.id, email_id)
    if not record:
        raise HTTPException(status_code=404, detail="Email not found")
    application = None
    if payload.application_id is not None:
        application = get_application(db, user.id, payload.application_id)
        if application is None:
            raise HTTPException(status_code=404, detail="Application not found")
    return attach_application(db, record, application)
