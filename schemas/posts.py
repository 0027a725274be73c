from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from schemas.shared import UserSummary

POST_TYPES = ("personal", "article", "polling")


# Validated creation input, one model per post type

class PersonalPostInput(BaseModel):
    type: Literal["personal"] = "personal"
    content: str


class ArticlePostInput(BaseModel):
    type: Literal["article"] = "article"
    title: str
    content: str


class PollingPostInput(BaseModel):
    type: Literal["polling"] = "polling"
    question: str
    start_datetime: datetime
    end_datetime: datetime
    is_anonymous: bool = False
    allow_multiple_choices: bool = False
    options: List[str]


PostInput = Union[PersonalPostInput, ArticlePostInput, PollingPostInput]


# Stored detail, as returned to clients

class PostMediaResponse(BaseModel):
    id: int
    url: str
    type: str
    size: int


class PollingOptionResponse(BaseModel):
    id: int
    text: str
    votes_count: int


class PersonalDetail(BaseModel):
    type: Literal["personal"] = "personal"
    content: str
    media: List[PostMediaResponse] = []


class ArticleDetail(BaseModel):
    type: Literal["article"] = "article"
    title: str
    content: str


class PollingDetail(BaseModel):
    type: Literal["polling"] = "polling"
    question: str
    start_datetime: datetime
    end_datetime: datetime
    is_anonymous: bool
    allow_multiple_choices: bool
    options: List[PollingOptionResponse] = []


PostDetail = Annotated[Union[PersonalDetail, ArticleDetail, PollingDetail], Field(discriminator="type")]


class PostResponse(BaseModel):
    id: int
    user_id: str
    forum_id: Optional[int] = None
    type: str
    original_post_id: Optional[int] = None
    likes_count: int
    comments_count: int
    shares_count: int
    bookmarks_count: int
    created_at: datetime
    updated_at: datetime
    author: Optional[UserSummary] = None
    # None for a plain repost, which has no content of its own
    detail: Optional[PostDetail] = None
    original_post: Optional["PostResponse"] = None
    has_liked: bool = False
    has_bookmarked: bool = False
    has_commented: bool = False
    has_shared: bool = False
    shared_post_id: Optional[int] = None
    shared_type: Optional[str] = None


PostResponse.model_rebuild()


class PostListResponse(BaseModel):
    posts: List[PostResponse]
    total: int
    page: int
    limit: int


class PostUpdateResponse(BaseModel):
    message: str
    post: PostResponse


class RepostRequest(BaseModel):
    original_post_id: Optional[int] = None
    interaction: Optional[str] = None
    type: Optional[str] = None
    content: Optional[str] = None


class UnrepostRequest(BaseModel):
    post_id: Optional[int] = None


class VoteRequest(BaseModel):
    post_id: Optional[int] = None
    selected_options: Optional[List[int]] = None


class PollResultsResponse(BaseModel):
    post_id: int
    is_anonymous: bool
    allow_multiple_choices: bool
    total_votes: int
    options: List[PollingOptionResponse]
    voted_option_ids: List[int] = []
