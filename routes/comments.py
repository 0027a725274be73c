import logging
from typing import Optional

from fastapi import APIRouter, Depends

from auth import get_app_settings, get_current_user_id
from config import Settings
from database import Database, get_database
from errors import ConflictError, NotFoundError, ValidationError
from schemas.comments import CommentCreate, CommentListResponse, CommentResponse
from schemas.shared import MessageResponse
from utils.permissions import ensure, is_owner
from utils.route_helpers import page_window, user_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comment", tags=["comments"])

# (table, counter, verb, past tense) for each comment reaction kind
LIKE = ("comment_likes", "likes_count", "like", "liked")
BOOKMARK = ("comment_bookmarks", "bookmarks_count", "bookmark", "bookmarked")


def get_comment_row(conn, comment_id: int):
    return conn.execute("SELECT * FROM comments WHERE id = ?", (comment_id,)).fetchone()


def build_comment_response(conn, row, viewer_id: str) -> CommentResponse:
    flags = conn.execute("""
        SELECT
            EXISTS(SELECT 1 FROM comment_likes WHERE comment_id = ? AND user_id = ?) AS has_liked,
            EXISTS(SELECT 1 FROM comment_bookmarks WHERE comment_id = ? AND user_id = ?) AS has_bookmarked
    """, (row["id"], viewer_id) * 2).fetchone()
    return CommentResponse(
        **dict(row),
        author=user_summary(conn, row["user_id"]),
        has_liked=bool(flags["has_liked"]),
        has_bookmarked=bool(flags["has_bookmarked"]),
    )


def recount_comments(uow, post_id: int, parent_comment_id: Optional[int]) -> None:
    uow.execute("""
        UPDATE posts
        SET comments_count = (SELECT COUNT(*) FROM comments WHERE post_id = ? AND is_deleted = 0)
        WHERE id = ?
    """, (post_id, post_id))
    if parent_comment_id is not None:
        uow.execute("""
            UPDATE comments
            SET replies_count = (SELECT COUNT(*) FROM comments WHERE parent_comment_id = ? AND is_deleted = 0)
            WHERE id = ?
        """, (parent_comment_id, parent_comment_id))


@router.post("/", response_model=CommentResponse, status_code=201)
def create_comment(
    body: CommentCreate,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    if body.post_id is None:
        raise ValidationError("Post ID is required.")
    with db.transaction() as uow:
        if not uow.fetchone("SELECT 1 FROM posts WHERE id = ?", (body.post_id,)):
            raise NotFoundError("Post not found.")
        if not body.content or not body.content.strip():
            raise ValidationError("Comment content is required.")
        if body.parent_comment_id is not None:
            parent = get_comment_row(uow, body.parent_comment_id)
            if not parent or parent["post_id"] != body.post_id or parent["is_deleted"]:
                raise NotFoundError("Parent comment not found.")
            if parent["parent_comment_id"] is not None:
                raise ValidationError("Replies can only be one level deep.")
        comment_id = uow.execute(
            "INSERT INTO comments (user_id, post_id, parent_comment_id, content) VALUES (?, ?, ?, ?)",
            (current_user_id, body.post_id, body.parent_comment_id, body.content),
        ).lastrowid
        uow.execute("UPDATE posts SET comments_count = comments_count + 1 WHERE id = ?", (body.post_id,))
        if body.parent_comment_id is not None:
            uow.execute(
                "UPDATE comments SET replies_count = replies_count + 1 WHERE id = ?",
                (body.parent_comment_id,),
            )
    with db.connect() as conn:
        return build_comment_response(conn, get_comment_row(conn, comment_id), current_user_id)


@router.get("/{post_id}", response_model=CommentListResponse)
def list_comments(
    post_id: int,
    parent_comment_id: Optional[int] = None,
    page: int = 1,
    size: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    """Top-level comments of a post, or the replies to ``parent_comment_id``."""
    page, size, offset = page_window(page, size, settings)
    if parent_comment_id is None:
        where, params = "post_id = ? AND parent_comment_id IS NULL", [post_id]
    else:
        where, params = "post_id = ? AND parent_comment_id = ?", [post_id, parent_comment_id]
    with db.connect() as conn:
        if not conn.execute("SELECT 1 FROM posts WHERE id = ?", (post_id,)).fetchone():
            raise NotFoundError("Post not found.")
        total = conn.execute(f"SELECT COUNT(*) FROM comments WHERE {where}", params).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM comments WHERE {where} ORDER BY created_at ASC, id ASC LIMIT ? OFFSET ?",
            params + [size, offset],
        ).fetchall()
        comments = [build_comment_response(conn, row, current_user_id) for row in rows]
    return CommentListResponse(comments=comments, total=total, page=page, size=size)


@router.delete("/{comment_id}", response_model=MessageResponse)
def delete_comment(
    comment_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    with db.transaction() as uow:
        comment = get_comment_row(uow, comment_id)
        if not comment or comment["is_deleted"]:
            raise NotFoundError("Comment not found.")
        ensure(is_owner(comment["user_id"], current_user_id), "You are not authorized to delete this comment.")
        uow.execute(
            "UPDATE comments SET is_deleted = 1, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (comment_id,),
        )
        recount_comments(uow, comment["post_id"], comment["parent_comment_id"])
    logger.info("Comment %s soft-deleted by %s", comment_id, current_user_id)
    return {"message": "Comment deleted successfully."}


def add_comment_reaction(db: Database, comment_id: int, user_id: str, kind) -> None:
    table, counter, verb, past = kind
    with db.transaction() as uow:
        comment = get_comment_row(uow, comment_id)
        if not comment:
            raise NotFoundError("Comment not found.")
        if is_owner(comment["user_id"], user_id):
            raise ValidationError(f"You cannot {verb} your own comment.")
        if comment["is_deleted"]:
            raise ValidationError(f"Cannot {verb} a deleted comment.")
        if uow.fetchone(f"SELECT 1 FROM {table} WHERE comment_id = ? AND user_id = ?", (comment_id, user_id)):
            raise ConflictError(f"You have already {past} this comment.")
        uow.execute(f"INSERT INTO {table} (comment_id, user_id) VALUES (?, ?)", (comment_id, user_id))
        uow.execute(f"UPDATE comments SET {counter} = {counter} + 1 WHERE id = ?", (comment_id,))


def remove_comment_reaction(db: Database, comment_id: int, user_id: str, kind) -> None:
    table, counter, _, past = kind
    with db.transaction() as uow:
        if not get_comment_row(uow, comment_id):
            raise NotFoundError("Comment not found.")
        deleted = uow.execute(f"DELETE FROM {table} WHERE comment_id = ? AND user_id = ?", (comment_id, user_id))
        if not deleted.rowcount:
            raise ConflictError(f"You have not {past} this comment.")
        uow.execute(f"UPDATE comments SET {counter} = MAX({counter} - 1, 0) WHERE id = ?", (comment_id,))


@router.post("/{comment_id}/like", response_model=MessageResponse, status_code=201)
def like_comment(comment_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    add_comment_reaction(db, comment_id, current_user_id, LIKE)
    return {"message": "Comment liked successfully."}


@router.delete("/{comment_id}/like", response_model=MessageResponse)
def unlike_comment(comment_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    remove_comment_reaction(db, comment_id, current_user_id, LIKE)
    return {"message": "Comment unliked successfully."}


@router.post("/{comment_id}/bookmark", response_model=MessageResponse, status_code=201)
def bookmark_comment(comment_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    add_comment_reaction(db, comment_id, current_user_id, BOOKMARK)
    return {"message": "Comment bookmarked successfully."}


@router.delete("/{comment_id}/bookmark", response_model=MessageResponse)
def unbookmark_comment(comment_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    remove_comment_reaction(db, comment_id, current_user_id, BOOKMARK)
    return {"message": "Comment unbookmarked successfully."}
