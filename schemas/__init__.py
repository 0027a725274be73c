# Schemas package
from .shared import UserSummary, MessageResponse
from .posts import PostResponse, PostListResponse, PostUpdateResponse, RepostRequest, UnrepostRequest, VoteRequest, PollResultsResponse
from .comments import CommentCreate, CommentResponse, CommentListResponse
from .forums import ForumResponse, ForumDetailResponse, ForumListResponse, JoinedForumListResponse, ApproveRequest
from .users import UserProfileResponse, UserListResponse, FollowListResponse, RegistrationResponse, MemberResponse, AcceptMemberRequest
from .agenda import AgendaCreate, AgendaResponse, AgendaListResponse
