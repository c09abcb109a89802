from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List

class EmailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subject: str
    body: str
    sender: str
    recipients: str
    date: datetime
    is_read: bool
    gmail_id: str
    thread_id: Optional[str] = None
    application_id: Optional[int] = None

class EmailSyncRequest(BaseModel):
    max_results: int = Field(default=50, ge=1, le=500)
    query: str = ''
    label_ids: List[str] = Field(default_factory=lambda: ['INBOX'])
    page_token: Optional[str] = None

class EmailSyncOut(BaseModel):
    count: int
    stored: int
    failed: int
    next_page_token: Optional[str] = None

class EmailSend(BaseModel):
    to: str = Field(min_length=3)
    subject: str
    body: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    is_html: bool = False
    application_id: Optional[int] = None

class EmailApplicationLink(BaseModel):
    application_id: Optional[int]
