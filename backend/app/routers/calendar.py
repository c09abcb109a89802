from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional
from sqlalchemy.orm import Session
import logging

from ..core.errors import SyncError
from ..core.events import broadcaster
from ..db.database import get_db
from ..models.user_model import User
from ..schemas.calendar import (
    ApplicationEventCreate,
    CalendarEventCreate,
    CalendarEventOut,
    CalendarEventUpdate,
    RemoteEventList,
    SyncResult,
)
from ..security.session import get_current_user
from ..services import event_repository
from ..services.calendar_sync import CalendarReconciler
from .common import get_reconciler, to_http

router = APIRouter()
log = logging.getLogger(__name__)


@router.post("/sync", response_model=SyncResult)
def sync_calendar(user: User = Depends(get_current_user), reconciler: CalendarReconciler = Depends(get_reconciler)):
    """Push every event that has no Google id yet. Per-event failures only show up in the counts."""
    try:
        result = reconciler.sync_user_calendar(user.id)
    except SyncError as e:
        raise to_http(e)
    try:
        broadcaster.publish("calendar_synced", result.model_dump(), user_id=user.id)
    except RuntimeError:
        log.debug("calendar_synced_publish_skipped")
    return result


@router.get("/events", response_model=List[CalendarEventOut])
def list_events(
    application_id: Optional[int] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return event_repository.list_events(db, user.id, application_id)


@router.post("/events", response_model=CalendarEventOut, status_code=201)
def create_event(payload: CalendarEventCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if event_repository.get_application(db, user.id, payload.application_id) is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return event_repository.create_event(db, user.id, payload)


@router.post("/applications/{application_id}/events", response_model=CalendarEventOut, status_code=201)
def create_application_event(
    application_id: int,
    payload: ApplicationEventCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create an event titled after the application (e.g. 'Interview: Acme - Backend Engineer')."""
    application = event_repository.get_application(db, user.id, application_id)
    if application is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return event_repository.create_for_application(
        db, application, payload.event_type, payload.start_time,
        end_time=payload.end_time, location=payload.location, description=payload.description,
    )


@router.get("/events/{event_id}", response_model=CalendarEventOut)
def get_event(event_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    event = event_repository.get_event(db, user.id, event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.patch("/events/{event_id}", response_model=CalendarEventOut)
def update_event(
    event_id: int,
    payload: CalendarEventUpdate,
    user: User = Depends(get_current_user),
    reconciler: CalendarReconciler = Depends(get_reconciler),
):
    try:
        return reconciler.update_event(user.id, event_id, payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SyncError as e:
        raise to_http(e)


@router.delete("/events/{event_id}")
def delete_event(event_id: int, user: User = Depends(get_current_user), reconciler: CalendarReconciler = Depends(get_reconciler)):
    """Remote delete first; the local row is kept if Google fails with anything but not-found."""
    try:
        reconciler.delete_event(user.id, event_id)
    except SyncError as e:
        raise to_http(e)
    return {"success": True, "message": "Calendar event deleted successfully"}


@router.get("/remote", response_model=RemoteEventList)
def list_remote_events(
    days: int = Query(30, ge=1, le=365),
    max_results: int = Query(10, ge=1, le=250),
    application_id: Optional[int] = Query(None),
    user: User = Depends(get_current_user),
    reconciler: CalendarReconciler = Depends(get_reconciler),
):
    try:
        items = reconciler.list_remote_events(user.id, days=days, max_results=max_results, application_id=application_id)
    except SyncError as e:
        raise to_http(e)
    return {"items": items, "count": len(items)}
