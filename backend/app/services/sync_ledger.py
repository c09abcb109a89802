from sqlalchemy.orm import Session
from typing import Optional
from ..models.sync_log_model import SyncLog

CALENDAR = 'calendar'
GMAIL = 'gmail'


def append(db: Session, user_id: int, service: str, details: str, success: bool) -> SyncLog:
    entry = SyncLog(user_id=user_id, service=service, details=details, success=success)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def latest(db: Session, user_id: int, service: Optional[str] = None) -> Optional[SyncLog]:
    q = db.query(SyncLog).filter(SyncLog.user_id == user_id)
    if service:
        q = q.filter(SyncLog.service == service)
    return q.order_by(SyncLog.synced_at.desc(), SyncLog.id.desc()).first()
