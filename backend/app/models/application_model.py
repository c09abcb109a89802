from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from ..db.database import Base, utcnow

class JobApplication(Base):
    __tablename__ = 'job_applications'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    job_title = Column(String, nullable=False)
    company = Column(String, index=True, nullable=False)
    location = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String, default='Applied', index=True)
    application_url = Column(String, nullable=True)
    date_applied = Column(DateTime(timezone=True), default=utcnow)
