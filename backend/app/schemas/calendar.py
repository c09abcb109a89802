from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from ..db.database import as_utc

class CalendarEventBase(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    event_type: Optional[str] = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def _as_utc(cls, v):
        return as_utc(v)

    @model_validator(mode='after')
    def _check_window(self):
        if self.start_time > self.end_time:
            raise ValueError('start_time must not be after end_time')
        return self

class CalendarEventCreate(CalendarEventBase):
    application_id: int

class ApplicationEventCreate(BaseModel):
    event_type: str = 'interview'
    start_time: datetime
    end_time: Optional[datetime] = None  # defaults to one hour after start
    location: Optional[str] = None
    description: Optional[str] = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def _as_utc(cls, v):
        return as_utc(v)

    @model_validator(mode='after')
    def _check_window(self):
        if self.end_time is not None and self.start_time > self.end_time:
            raise ValueError('start_time must not be after end_time')
        return self

class CalendarEventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    event_type: Optional[str] = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def _as_utc(cls, v):
        return as_utc(v)

    @field_validator('title', 'start_time', 'end_time', mode='before')
    @classmethod
    def _not_null(cls, v, info):
        # omit the key to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

class CalendarEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    event_type: Optional[str] = None
    application_id: int
    calendar_id: Optional[str] = None
    calendar_event_id: Optional[str] = None
    synced: bool = False

    @field_validator('start_time', 'end_time')
    @classmethod
    def _as_utc(cls, v):
        return as_utc(v)

class SyncResult(BaseModel):
    synced: int
    failed: int
    total: int

class RemoteEventList(BaseModel):
    items: List[Dict[str, Any]]
    count: int
