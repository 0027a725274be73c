from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from schemas.shared import UserSummary


class CommentCreate(BaseModel):
    post_id: Optional[int] = None
    content: Optional[str] = None
    parent_comment_id: Optional[int] = None

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if v is not None and len(v) > 2000:
            raise ValueError('Comment must be at most 2000 characters long')
        return v


class CommentResponse(BaseModel):
    id: int
    user_id: str
    post_id: int
    parent_comment_id: Optional[int] = None
    content: str
    is_deleted: bool
    likes_count: int
    bookmarks_count: int
    replies_count: int
    created_at: datetime
    updated_at: datetime
    author: Optional[UserSummary] = None
    has_liked: bool = False
    has_bookmarked: bool = False


class CommentListResponse(BaseModel):
    comments: List[CommentResponse]
    total: int
    page: int
    size: int
