from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey
from ..db.database import Base, utcnow

class SyncLog(Base):
    """Append-only record of one sync invocation."""
    __tablename__ = 'sync_logs'
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    service = Column(String, index=True, nullable=False)  # calendar | gmail
    details = Column(Text, default='')
    success = Column(Boolean, nullable=False)
    synced_at = Column(DateTime(timezone=True), default=utcnow, index=True)
