from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from schemas.shared import UserSummary

ZONES = ("DPD", "DPW", "DPP")


class UserProfileResponse(BaseModel):
    id: str
    email: str
    username: str
    display_name: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_url: Optional[str] = None
    is_verified: bool
    is_private: bool
    created_at: datetime
    updated_at: datetime
    is_admin: bool = False
    is_member: bool = False
    zone: Optional[str] = None
    position: Optional[str] = None
    is_following: bool = False
    followers_count: int = 0
    following_count: int = 0


class UserListEntry(UserSummary):
    email: str
    zone: Optional[str] = None
    position: Optional[str] = None
    status: Optional[str] = None


class UserMetrics(BaseModel):
    total_members: int
    total_registrants: int
    members_by_zone: Dict[str, int]


class UserListResponse(BaseModel):
    users: List[UserListEntry]
    total: int
    page: int
    limit: int
    metrics: UserMetrics


class FollowEntry(UserSummary):
    is_following: bool = False


class FollowListResponse(BaseModel):
    users: List[FollowEntry]
    total: int
    page: int
    limit: int


class RegistrationResponse(BaseModel):
    id: int
    user_id: str
    id_card_url: Optional[str] = None
    birth_place: Optional[str] = None
    birth_date: Optional[str] = None
    zone: Optional[str] = None
    latest_education: Optional[str] = None
    address: Optional[str] = None
    nik: Optional[str] = None
    phone_number: Optional[str] = None
    referral: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


class MemberResponse(BaseModel):
    id: int
    user_id: str
    id_card_url: Optional[str] = None
    birth_place: Optional[str] = None
    birth_date: Optional[str] = None
    zone: Optional[str] = None
    latest_education: Optional[str] = None
    address: Optional[str] = None
    nik: Optional[str] = None
    phone_number: Optional[str] = None
    referral: Optional[str] = None
    position: Optional[str] = None
    created_at: datetime


class AcceptMemberRequest(BaseModel):
    position: Optional[str] = None
