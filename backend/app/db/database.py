from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from datetime import datetime, timezone
import os

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///./jobtracker.db')

def _engine_kwargs(url: str) -> dict:
    if not url.startswith('sqlite'):
        return {}
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ('sqlite://', 'sqlite:///:memory:'):
        # in-memory database must be shared by every session / thread
        kwargs["poolclass"] = StaticPool
    return kwargs

engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def init_db():
    from ..models import user_model, application_model, calendar_event_model, email_model, sync_log_model  # noqa: F401
    Base.metadata.create_all(bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
