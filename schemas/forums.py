from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from schemas.shared import UserSummary


class ForumResponse(BaseModel):
    id: int
    creator_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_url: Optional[str] = None
    is_coi: bool
    members_count: int
    created_at: datetime
    updated_at: datetime


class ForumDetailResponse(ForumResponse):
    creator: Optional[UserSummary] = None
    is_core_member: bool = False
    is_following: bool = False
    membership_status: str = "none"


class JoinedForumResponse(ForumResponse):
    role: str
    approved_at: Optional[datetime] = None


class ForumListResponse(BaseModel):
    forums: List[ForumResponse]
    total: int
    page: int
    limit: int


class JoinedForumListResponse(BaseModel):
    forums: List[JoinedForumResponse]
    total: int
    page: int
    limit: int


class ApproveRequest(BaseModel):
    user_id: Optional[str] = None


class JoinRequestResponse(BaseModel):
    user: UserSummary
    joined_at: datetime
