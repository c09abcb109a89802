from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, UniqueConstraint
from ..db.database import Base, utcnow

class Email(Base):
    __tablename__ = 'emails'
    __table_args__ = (UniqueConstraint('user_id', 'gmail_id', name='uq_email_user_gmail_id'),)
    id = Column(Integer, primary_key=True, index=True)
    subject = Column(String, index=True, default='')
    body = Column(Text, default='')
    sender = Column(String, index=True, default='')
    recipients = Column(Text, default='')
    date = Column(DateTime(timezone=True), default=utcnow, index=True)
    is_read = Column(Boolean, default=False)
    gmail_id = Column(String, nullable=False, index=True)
    thread_id = Column(String, nullable=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    application_id = Column(Integer, ForeignKey('job_applications.id', ondelete='SET NULL'), nullable=True, index=True)
