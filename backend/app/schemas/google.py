from datetime import datetime
from pydantic import BaseModel
from typing import Optional, List

class GoogleStatus(BaseModel):
    is_connected: bool
    email: Optional[str] = None
    scopes: List[str] = []
    last_synced: Optional[datetime] = None

class AuthorizationUrl(BaseModel):
    authorization_url: str
    state: str
