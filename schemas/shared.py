from typing import Optional

from pydantic import BaseModel


class UserSummary(BaseModel):
    id: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None
    is_verified: bool = False


class MessageResponse(BaseModel):
    message: str
