from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from datetime import datetime, timezone
from ..models.email_model import Email
from ..models.application_model import JobApplication


def create_email(db: Session, user_id: int, gmail_id: str, subject: str, body: str, sender: str,
                 recipients: str, date: Optional[datetime] = None, is_read: bool = False,
                 thread_id: Optional[str] = None, application_id: Optional[int] = None) -> Email:
    email = Email(
        subject=subject or '',
        body=body or '',
        sender=sender or '',
        recipients=recipients or '',
        date=date or datetime.now(timezone.utc),
        is_read=is_read,
        gmail_id=gmail_id,
        thread_id=thread_id,
        user_id=user_id,
        application_id=application_id,
    )
    db.add(email)
    db.commit()
    db.refresh(email)
    return email

def email_exists(db: Session, user_id: int, gmail_id: str) -> bool:
    return db.query(Email.id).filter(Email.user_id == user_id, Email.gmail_id == gmail_id).first() is not None


def list_emails(
    db: Session,
    user_id: int,
    application_id: Optional[int] = None,
    thread_id: Optional[str] = None,
    q_search: Optional[str] = None,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Email], int]:
    """List a user's stored emails, newest first.

    thread_id: only messages of one Gmail conversation.
    q_search: case-insensitive containment on subject/body/sender.
    """
    q = db.query(Email).filter(Email.user_id == user_id)
    if application_id is not None:
        q = q.filter(Email.application_id == application_id)
    if thread_id:
        q = q.filter(Email.thread_id == thread_id)
    if unread_only:
        q = q.filter(Email.is_read.is_(False))
    if q_search:
        like = f"%{q_search.lower()}%"
        q = q.filter((Email.subject.ilike(like)) | (Email.body.ilike(like)) | (Email.sender.ilike(like)))
    total = q.count()
    items = q.order_by(Email.date.desc(), Email.id.desc()).offset(offset).limit(limit).all()
    return items, total

def get_email(db: Session, user_id: int, email_id: int) -> Optional[Email]:
    return db.query(Email).filter(Email.id == email_id, Email.user_id == user_id).first()

def attach_application(db: Session, email: Email, application: Optional[JobApplication]) -> Email:
    email.application_id = application.id if application else None
    db.commit()
    db.refresh(email)
    return email
