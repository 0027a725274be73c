import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile

from auth import get_app_settings, get_current_user_id
from config import Settings
from database import Database, UnitOfWork, get_database
from errors import ConflictError, NotFoundError, ValidationError
from schemas.posts import (
    POST_TYPES,
    ArticleDetail,
    ArticlePostInput,
    PersonalDetail,
    PersonalPostInput,
    PollingDetail,
    PollingOptionResponse,
    PollingPostInput,
    PostInput,
    PostListResponse,
    PostMediaResponse,
    PostResponse,
    PostUpdateResponse,
    RepostRequest,
    UnrepostRequest,
)
from schemas.shared import MessageResponse
from storage import StorageSession, get_storage_session
from utils.permissions import ensure, is_admin, is_forum_core, is_owner
from utils.route_helpers import as_utc, forum_exists, page_window, parse_json_list, user_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/post", tags=["posts"])


# Helper: get post row by id
def get_post_row(conn, post_id: int):
    return conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,)).fetchone()


def require_post(conn, post_id: int, message: str = "Post not found."):
    post = get_post_row(conn, post_id)
    if not post:
        raise NotFoundError(message)
    return post


def get_post_media(conn, post_id: int) -> List[PostMediaResponse]:
    rows = conn.execute(
        "SELECT id, url, type, size FROM post_media WHERE post_id = ? ORDER BY id",
        (post_id,),
    ).fetchall()
    return [PostMediaResponse(**dict(row)) for row in rows]


def get_polling_options(conn, post_id: int) -> List[PollingOptionResponse]:
    rows = conn.execute(
        "SELECT id, text, votes_count FROM polling_options WHERE polling_post_id = ? ORDER BY id",
        (post_id,),
    ).fetchall()
    return [PollingOptionResponse(**dict(row)) for row in rows]


def load_post_detail(conn, post):
    """Type-specific content of a post, or None when it has none (plain reposts)."""
    post_id = post["id"]
    post_type = post["type"]
    if post_type == "personal":
        row = conn.execute("SELECT content FROM posts_personal WHERE post_id = ?", (post_id,)).fetchone()
        if not row:
            return None
        return PersonalDetail(content=row["content"], media=get_post_media(conn, post_id))
    if post_type == "article":
        row = conn.execute("SELECT title, content FROM posts_article WHERE post_id = ?", (post_id,)).fetchone()
        if not row:
            return None
        return ArticleDetail(title=row["title"], content=row["content"])
    if post_type == "polling":
        row = conn.execute("SELECT * FROM posts_polling WHERE post_id = ?", (post_id,)).fetchone()
        if not row:
            return None
        return PollingDetail(
            question=row["question"],
            start_datetime=row["start_datetime"],
            end_datetime=row["end_datetime"],
            is_anonymous=row["is_anonymous"],
            allow_multiple_choices=row["allow_multiple_choices"],
            options=get_polling_options(conn, post_id),
        )
    raise ValueError(f"Unknown post type {post_type!r}")


def get_interaction_flags(conn, post_id: int, viewer_id: str) -> dict:
    row = conn.execute("""
        SELECT
            EXISTS(SELECT 1 FROM post_likes WHERE post_id = ? AND user_id = ?) AS has_liked,
            EXISTS(SELECT 1 FROM post_bookmarks WHERE post_id = ? AND user_id = ?) AS has_bookmarked,
            EXISTS(SELECT 1 FROM comments WHERE post_id = ? AND user_id = ? AND is_deleted = 0) AS has_commented
    """, (post_id, viewer_id) * 3).fetchone()
    share = conn.execute("""
        SELECT p.id, EXISTS(SELECT 1 FROM posts_personal pp WHERE pp.post_id = p.id) AS is_quote
        FROM posts p
        WHERE p.original_post_id = ? AND p.user_id = ?
        ORDER BY p.id DESC
        LIMIT 1
    """, (post_id, viewer_id)).fetchone()
    return {
        "has_liked": bool(row["has_liked"]),
        "has_bookmarked": bool(row["has_bookmarked"]),
        "has_commented": bool(row["has_commented"]),
        "has_shared": share is not None,
        "shared_post_id": share["id"] if share else None,
        "shared_type": ("quote" if share["is_quote"] else "repost") if share else None,
    }


def build_post_response(conn, post, viewer_id: str, include_original: bool = True) -> PostResponse:
    original_post = None
    if include_original and post["original_post_id"]:
        source = get_post_row(conn, post["original_post_id"])
        if source:
            original_post = build_post_response(conn, source, viewer_id, include_original=False)
    return PostResponse(
        **dict(post),
        author=user_summary(conn, post["user_id"]),
        detail=load_post_detail(conn, post),
        original_post=original_post,
        **get_interaction_flags(conn, post["id"], viewer_id),
    )


def get_post_response(db: Database, post_id: int, viewer_id: str) -> PostResponse:
    with db.connect() as conn:
        post = require_post(conn, post_id)
        return build_post_response(conn, post, viewer_id)


def parse_post_input(
    post_type: Optional[str],
    content: Optional[str],
    title: Optional[str],
    start_datetime: Optional[datetime],
    end_datetime: Optional[datetime],
    is_anonymous: bool,
    allow_multiple_choices: bool,
    polling_options: Optional[str],
) -> PostInput:
    if post_type == "personal":
        if not content:
            raise ValidationError("Content is required for a personal post.")
        return PersonalPostInput(content=content)
    if post_type == "article":
        if not title or not content:
            raise ValidationError("Title and content are required for an article post.")
        return ArticlePostInput(title=title, content=content)
    if post_type == "polling":
        options = [str(option).strip() for option in parse_json_list(polling_options, "polling_options")]
        options = [option for option in options if option]
        if not content or start_datetime is None or end_datetime is None or not options:
            raise ValidationError(
                "Question, start date, end date, and polling options are required for a polling post."
            )
        start, end = as_utc(start_datetime), as_utc(end_datetime)
        if end <= start:
            raise ValidationError("End date must be after start date.")
        if len(options) < 2:
            raise ValidationError("At least two polling options are required.")
        return PollingPostInput(
            question=content,
            start_datetime=start,
            end_datetime=end,
            is_anonymous=is_anonymous,
            allow_multiple_choices=allow_multiple_choices,
            options=options,
        )
    raise ValidationError("Invalid or missing post type.")


def insert_post_detail(uow: UnitOfWork, post_id: int, body: PostInput) -> None:
    if isinstance(body, PersonalPostInput):
        uow.execute("INSERT INTO posts_personal (post_id, content) VALUES (?, ?)", (post_id, body.content))
    elif isinstance(body, ArticlePostInput):
        uow.execute(
            "INSERT INTO posts_article (post_id, title, content) VALUES (?, ?, ?)",
            (post_id, body.title, body.content),
        )
    elif isinstance(body, PollingPostInput):
        uow.execute("""
            INSERT INTO posts_polling (post_id, question, start_datetime, end_datetime, is_anonymous, allow_multiple_choices)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            post_id,
            body.question,
            body.start_datetime.isoformat(),
            body.end_datetime.isoformat(),
            body.is_anonymous,
            body.allow_multiple_choices,
        ))
        for text in body.options:
            uow.execute("INSERT INTO polling_options (polling_post_id, text) VALUES (?, ?)", (post_id, text))
    else:
        raise TypeError(f"Unsupported post input {type(body).__name__}")


def delete_post_detail(uow: UnitOfWork, post) -> List[str]:
    """Remove the type-specific rows of a post; returns media URLs to purge from storage."""
    post_id = post["id"]
    media_urls: List[str] = []
    if post["type"] == "personal":
        media_urls = [row["url"] for row in uow.fetchall("SELECT url FROM post_media WHERE post_id = ?", (post_id,))]
        uow.execute("DELETE FROM post_media WHERE post_id = ?", (post_id,))
        uow.execute("DELETE FROM posts_personal WHERE post_id = ?", (post_id,))
    elif post["type"] == "article":
        uow.execute("DELETE FROM posts_article WHERE post_id = ?", (post_id,))
    elif post["type"] == "polling":
        uow.execute("DELETE FROM polling_votes WHERE polling_post_id = ?", (post_id,))
        uow.execute("DELETE FROM polling_options WHERE polling_post_id = ?", (post_id,))
        uow.execute("DELETE FROM posts_polling WHERE post_id = ?", (post_id,))
    else:
        raise ValueError(f"Unknown post type {post['type']!r}")
    return media_urls


def upload_media(storage: StorageSession, bucket: str, post_id: int, files) -> List[dict]:
    """Upload media files; call this outside any unit of work."""
    uploaded = []
    for file in files or []:
        stored = storage.upload_file(bucket, file, "posts", post_id, "media")
        if stored is not None:
            uploaded.append(stored)
    return uploaded


def attach_media(db: Database, storage: StorageSession, bucket: str, post_id: int, uploaded: List[dict]) -> None:
    """Record uploaded media in a short unit of work; on failure the objects are removed again."""
    if not uploaded:
        return
    try:
        with db.transaction() as uow:
            require_post(uow, post_id)
            for stored in uploaded:
                uow.execute(
                    "INSERT INTO post_media (post_id, url, type, size) VALUES (?, ?, ?, ?)",
                    (post_id, stored["url"], stored["type"], stored["size"]),
                )
    except Exception:
        for stored in uploaded:
            storage.delete(bucket, stored["url"])
        raise


@router.post("/create", response_model=PostResponse, status_code=201)
def create_post(
    post_type: Optional[str] = Form(None, alias="type"),
    forum_id: Optional[int] = Form(None),
    content: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    start_datetime: Optional[datetime] = Form(None),
    end_datetime: Optional[datetime] = Form(None),
    is_anonymous: bool = Form(False),
    allow_multiple_choices: bool = Form(False),
    polling_options: Optional[str] = Form(None),  # JSON list
    media: Optional[List[UploadFile]] = File(None),
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    if post_type not in POST_TYPES:
        raise ValidationError("Invalid or missing post type.")
    with db.transaction() as uow:
        if forum_id is not None:
            if not forum_exists(uow, forum_id):
                raise NotFoundError("Forum ID does not exist.")
            ensure(is_forum_core(uow, forum_id, current_user_id), "Only core members can post in a forum.")
        body = parse_post_input(
            post_type, content, title, start_datetime, end_datetime,
            is_anonymous, allow_multiple_choices, polling_options,
        )
        post_id = uow.execute(
            "INSERT INTO posts (user_id, forum_id, type) VALUES (?, ?, ?)",
            (current_user_id, forum_id, body.type),
        ).lastrowid
        insert_post_detail(uow, post_id, body)
    if isinstance(body, PersonalPostInput):
        uploaded = upload_media(storage, settings.post_media_bucket, post_id, media)
        attach_media(db, storage, settings.post_media_bucket, post_id, uploaded)
    logger.info("Post %s (%s) created by %s", post_id, body.type, current_user_id)
    return get_post_response(db, post_id, current_user_id)


@router.get("/", response_model=PostListResponse)
def list_posts(
    post_type: Optional[str] = Query(None, alias="type"),
    forum_id: Optional[int] = None,
    user_id: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    last_id: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    """List posts newest first; ``last_id`` switches to keyset paging."""
    if post_type is not None and post_type not in POST_TYPES:
        raise ValidationError("Invalid post type filter.")
    page, limit, offset = page_window(page, limit, settings)
    clauses = []
    params = []
    if post_type:
        clauses.append("p.type = ?")
        params.append(post_type)
    if forum_id is not None:
        clauses.append("p.forum_id = ?")
        params.append(forum_id)
    if user_id:
        clauses.append("p.user_id = ?")
        params.append(user_id)
    with db.connect() as conn:
        if forum_id is not None and not forum_exists(conn, forum_id):
            raise NotFoundError("Forum ID does not exist.")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        total = conn.execute(f"SELECT COUNT(*) FROM posts p {where}", params).fetchone()[0]
        if last_id is not None:
            clauses.append("p.id < ?")
            params.append(last_id)
            where = f"WHERE {' AND '.join(clauses)}"
            offset = 0
        rows = conn.execute(
            f"SELECT p.* FROM posts p {where} ORDER BY p.id DESC LIMIT ? OFFSET ?",
            params + [limit, offset],
        ).fetchall()
        posts = [build_post_response(conn, row, current_user_id) for row in rows]
    return PostListResponse(posts=posts, total=total, page=page, limit=limit)


@router.get("/bookmarks", response_model=PostListResponse)
def list_bookmarked_posts(
    page: int = 1,
    limit: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    page, limit, offset = page_window(page, limit, settings)
    with db.connect() as conn:
        total = conn.execute(
            "SELECT COUNT(*) FROM post_bookmarks WHERE user_id = ?", (current_user_id,)
        ).fetchone()[0]
        rows = conn.execute("""
            SELECT p.* FROM posts p
            JOIN post_bookmarks b ON b.post_id = p.id
            WHERE b.user_id = ?
            ORDER BY b.id DESC
            LIMIT ? OFFSET ?
        """, (current_user_id, limit, offset)).fetchall()
        posts = [build_post_response(conn, row, current_user_id) for row in rows]
    return PostListResponse(posts=posts, total=total, page=page, limit=limit)


@router.post("/repost-quote", response_model=PostResponse, status_code=201)
def repost_or_quote(
    body: RepostRequest,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    if body.original_post_id is None:
        raise ValidationError("Original post ID is required.")
    if body.interaction not in ("repost", "quote"):
        raise ValidationError("Invalid interaction. Must be either 'repost' or 'quote'.")
    with db.transaction() as uow:
        original = require_post(uow, body.original_post_id, "Original post not found.")
        requested_type = body.type or original["type"]
        if requested_type not in (original["type"], "personal"):
            raise ValidationError("Invalid type. Type must match the original post or be 'personal'.")
        if body.interaction == "quote":
            if not body.content or not body.content.strip():
                raise ValidationError("Content is required for a quote post.")
            # Quotes carry their own commentary, so they are always personal posts
            requested_type = "personal"
        post_id = uow.execute(
            "INSERT INTO posts (user_id, type, original_post_id) VALUES (?, ?, ?)",
            (current_user_id, requested_type, original["id"]),
        ).lastrowid
        uow.execute("UPDATE posts SET shares_count = shares_count + 1 WHERE id = ?", (original["id"],))
        if body.interaction == "quote":
            uow.execute("INSERT INTO posts_personal (post_id, content) VALUES (?, ?)", (post_id, body.content))
    logger.info("Post %s shared as %s by %s", original["id"], body.interaction, current_user_id)
    return get_post_response(db, post_id, current_user_id)


@router.delete("/repost-quote", response_model=MessageResponse)
def unrepost_or_unquote(
    body: UnrepostRequest = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    if body.post_id is None:
        raise ValidationError("Post ID is required.")
    with db.transaction() as uow:
        post = uow.fetchone(
            "SELECT * FROM posts WHERE id = ? AND user_id = ? AND original_post_id IS NOT NULL",
            (body.post_id, current_user_id),
        )
        if not post:
            raise NotFoundError("Repost or quote not found.")
        uow.execute("DELETE FROM posts_personal WHERE post_id = ?", (post["id"],))
        uow.execute("DELETE FROM posts WHERE id = ?", (post["id"],))
        uow.execute(
            "UPDATE posts SET shares_count = MAX(shares_count - 1, 0) WHERE id = ?",
            (post["original_post_id"],),
        )
    return {"message": "Repost or quote deleted successfully."}


@router.get("/{post_id}", response_model=PostResponse)
def get_post(
    post_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    return get_post_response(db, post_id, current_user_id)


@router.put("/{post_id}", response_model=PostUpdateResponse)
def update_post(
    post_id: int,
    content: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    previous_media_urls: Optional[str] = Form(None),  # JSON list of URLs to drop
    media: Optional[List[UploadFile]] = File(None),
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    removed_urls = [str(url) for url in parse_json_list(previous_media_urls, "previous_media_urls")]
    purged: List[str] = []
    with db.transaction() as uow:
        post = require_post(uow, post_id)
        ensure(
            is_owner(post["user_id"], current_user_id) or is_admin(uow, current_user_id),
            "You are not authorized to update this post.",
        )
        # Plain reposts have no detail row of their own
        if post["type"] not in ("personal", "article") or not uow.fetchone(
            f"SELECT 1 FROM posts_{post['type']} WHERE post_id = ?", (post_id,)
        ):
            raise ValidationError("Only personal and article posts can be updated.")
        if post["type"] == "article":
            if not title or not content:
                raise ValidationError("Title and content are required to update an article post.")
            uow.execute(
                "UPDATE posts_article SET title = ?, content = ? WHERE post_id = ?",
                (title, content, post_id),
            )
        else:
            if content is not None:
                uow.execute("UPDATE posts_personal SET content = ? WHERE post_id = ?", (content, post_id))
            for url in removed_urls:
                deleted = uow.execute("DELETE FROM post_media WHERE post_id = ? AND url = ?", (post_id, url))
                if deleted.rowcount:
                    purged.append(url)
        uow.execute("UPDATE posts SET updated_at = CURRENT_TIMESTAMP WHERE id = ?", (post_id,))
    if post["type"] == "personal":
        uploaded = upload_media(storage, settings.post_media_bucket, post_id, media)
        attach_media(db, storage, settings.post_media_bucket, post_id, uploaded)
    for url in purged:
        storage.delete(settings.post_media_bucket, url)
    return PostUpdateResponse(
        message="Post updated successfully.",
        post=get_post_response(db, post_id, current_user_id),
    )


@router.delete("/{post_id}", response_model=MessageResponse)
def delete_post(
    post_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    with db.transaction() as uow:
        post = require_post(uow, post_id)
        ensure(is_owner(post["user_id"], current_user_id), "You are not authorized to delete this post.")
        media_urls = delete_post_detail(uow, post)
        if post["original_post_id"]:
            uow.execute(
                "UPDATE posts SET shares_count = MAX(shares_count - 1, 0) WHERE id = ?",
                (post["original_post_id"],),
            )
        uow.execute("DELETE FROM posts WHERE id = ?", (post_id,))
    for url in media_urls:
        storage.delete(settings.post_media_bucket, url)
    logger.info("Post %s deleted by %s", post_id, current_user_id)
    return {"message": "Post deleted successfully."}


def add_post_reaction(db: Database, post_id: int, user_id: str, table: str, counter: str, duplicate_message: str):
    with db.transaction() as uow:
        require_post(uow, post_id)
        if uow.fetchone(f"SELECT 1 FROM {table} WHERE post_id = ? AND user_id = ?", (post_id, user_id)):
            raise ConflictError(duplicate_message)
        uow.execute(f"INSERT INTO {table} (post_id, user_id) VALUES (?, ?)", (post_id, user_id))
        uow.execute(f"UPDATE posts SET {counter} = {counter} + 1 WHERE id = ?", (post_id,))


def remove_post_reaction(db: Database, post_id: int, user_id: str, table: str, counter: str, missing_message: str):
    with db.transaction() as uow:
        require_post(uow, post_id)
        deleted = uow.execute(f"DELETE FROM {table} WHERE post_id = ? AND user_id = ?", (post_id, user_id))
        if not deleted.rowcount:
            raise ConflictError(missing_message)
        uow.execute(f"UPDATE posts SET {counter} = MAX({counter} - 1, 0) WHERE id = ?", (post_id,))


@router.post("/{post_id}/like", response_model=MessageResponse, status_code=201)
def like_post(post_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    add_post_reaction(db, post_id, current_user_id, "post_likes", "likes_count", "You have already liked this post.")
    return {"message": "Post liked successfully."}


@router.delete("/{post_id}/like", response_model=MessageResponse)
def unlike_post(post_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    remove_post_reaction(db, post_id, current_user_id, "post_likes", "likes_count", "You have not liked this post.")
    return {"message": "Post unliked successfully."}


@router.post("/{post_id}/bookmark", response_model=MessageResponse, status_code=201)
def bookmark_post(post_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    add_post_reaction(
        db, post_id, current_user_id, "post_bookmarks", "bookmarks_count", "You have already bookmarked this post."
    )
    return {"message": "Post bookmarked successfully."}


@router.delete("/{post_id}/bookmark", response_model=MessageResponse)
def unbookmark_post(post_id: int, current_user_id: str = Depends(get_current_user_id), db: Database = Depends(get_database)):
    remove_post_reaction(
        db, post_id, current_user_id, "post_bookmarks", "bookmarks_count", "You have not bookmarked this post."
    )
    return {"message": "Post unbookmarked successfully."}
