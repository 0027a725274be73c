from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class AgendaCreate(BaseModel):
    forum_id: Optional[int] = None
    image_url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None


class AgendaResponse(BaseModel):
    id: int
    forum_id: Optional[int] = None
    image_url: str
    title: str
    description: str
    start_date: datetime
    created_at: datetime
    updated_at: datetime


class AgendaListResponse(BaseModel):
    agenda: List[AgendaResponse]
    total: int
    page: int
    limit: int
