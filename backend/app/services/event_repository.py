from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime, timedelta

from ..core.errors import PersistenceError
from ..db.database import utcnow
from ..models.application_model import JobApplication
from ..models.calendar_event_model import CalendarEvent
from ..schemas.calendar import CalendarEventCreate

DEFAULT_EVENT_LENGTH = timedelta(hours=1)

EVENT_TITLE_PREFIX = {
    'interview': 'Interview',
    'follow-up': 'Follow-up',
    'deadline': 'Application Deadline',
}


def list_unsynced(db: Session, user_id: int) -> List[CalendarEvent]:
    """Sync candidates: events never pushed to Google, oldest first."""
    return (
        db.query(CalendarEvent)
        .filter(CalendarEvent.user_id == user_id, CalendarEvent.calendar_event_id.is_(None))
        .order_by(CalendarEvent.created_at.asc(), CalendarEvent.id.asc())
        .all()
    )


def backfill_remote_id(db: Session, event_id: int, calendar_id: str, remote_event_id: str) -> None:
    """Record the Google ids on an unsynced event and commit.

    Only applies to a row that is still unsynced; a row that disappeared or was
    synced by someone else meanwhile raises PersistenceError like a failed write.
    """
    try:
        result = db.execute(
            update(CalendarEvent)
            .where(CalendarEvent.id == event_id, CalendarEvent.calendar_event_id.is_(None))
            .values(calendar_id=calendar_id, calendar_event_id=remote_event_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise PersistenceError(f"event {event_id} is no longer an unsynced row", remote_id=remote_event_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"could not store remote id for event {event_id}: {e}", remote_id=remote_event_id) from e


def clear_remote_id(db: Session, event: CalendarEvent) -> None:
    event.calendar_id = None
    event.calendar_event_id = None


def get_event(db: Session, user_id: int, event_id: int) -> Optional[CalendarEvent]:
    return db.query(CalendarEvent).filter(CalendarEvent.id == event_id, CalendarEvent.user_id == user_id).first()


def list_events(db: Session, user_id: int, application_id: Optional[int] = None) -> List[CalendarEvent]:
    q = db.query(CalendarEvent).filter(CalendarEvent.user_id == user_id)
    if application_id is not None:
        q = q.filter(CalendarEvent.application_id == application_id)
    return q.order_by(CalendarEvent.start_time.asc()).all()


def get_application(db: Session, user_id: int, application_id: int) -> Optional[JobApplication]:
    return db.query(JobApplication).filter(JobApplication.id == application_id, JobApplication.user_id == user_id).first()


def create_event(db: Session, user_id: int, payload: CalendarEventCreate) -> CalendarEvent:
    event = CalendarEvent(
        title=payload.title,
        description=payload.description,
        location=payload.location,
        start_time=payload.start_time,
        end_time=payload.end_time,
        event_type=payload.event_type,
        user_id=user_id,
        application_id=payload.application_id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def application_event_title(application: JobApplication, event_type: str) -> str:
    prefix = EVENT_TITLE_PREFIX.get(event_type.lower(), event_type)
    return f"{prefix}: {application.company} - {application.job_title}"


def application_event_description(application: JobApplication) -> str:
    lines = [f"Job application: {application.job_title} at {application.company}", ""]
    if application.location:
        lines.append(f"Location: {application.location}")
    if application.status:
        lines.append(f"Status: {application.status}")
    if application.application_url:
        lines.append(f"Job posting: {application.application_url}")
    lines.append("")
    lines.append("Manage this application in JobTracker CRM")
    return "\n".join(lines)


def create_for_application(
    db: Session,
    application: JobApplication,
    event_type: str,
    start_time: datetime,
    end_time: Optional[datetime] = None,
    location: Optional[str] = None,
    description: Optional[str] = None,
) -> CalendarEvent:
    """Create a local event titled after the application, e.g. 'Interview: Acme - Engineer'."""
    return create_event(db, application.user_id, CalendarEventCreate(
        title=application_event_title(application, event_type),
        description=description or application_event_description(application),
        location=location or application.location,
        start_time=start_time,
        end_time=end_time or start_time + DEFAULT_EVENT_LENGTH,
        event_type=event_type,
        application_id=application.id,
    ))


def delete_event(db: Session, event: CalendarEvent) -> None:
    db.delete(event)
    db.commit()
