import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from auth import get_app_settings, get_current_user_id
from config import Settings
from database import Database, get_database
from errors import ConflictError, NotFoundError, ValidationError
from schemas.forums import (
    ApproveRequest,
    ForumDetailResponse,
    ForumListResponse,
    ForumResponse,
    JoinedForumListResponse,
    JoinRequestResponse,
)
from schemas.shared import MessageResponse
from storage import StorageSession, get_storage_session
from utils.permissions import ensure, forum_membership, is_admin, is_forum_core, is_owner
from utils.route_helpers import page_window, user_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/forums", tags=["forums"])


def get_forum_row(conn, forum_id: int):
    return conn.execute("SELECT * FROM forums WHERE id = ?", (forum_id,)).fetchone()


def require_forum(conn, forum_id: int):
    forum = get_forum_row(conn, forum_id)
    if not forum:
        raise NotFoundError("Forum not found.")
    return forum


def upload_images(storage: StorageSession, bucket: str, forum_id: int, **files) -> Dict[str, str]:
    """Upload avatar/cover files outside any unit of work; returns column -> new URL."""
    images = {}
    for subpath, upload in files.items():
        stored = storage.upload_file(bucket, upload, "forums", forum_id, subpath)
        if stored is not None:
            images[f"{subpath}_url"] = stored["url"]
    return images


def apply_images(db: Database, storage: StorageSession, bucket: str, forum_id: int, images: Dict[str, str]) -> None:
    try:
        with db.transaction() as uow:
            require_forum(uow, forum_id)
            assignments = ", ".join(f"{column} = ?" for column in images)
            uow.execute(f"UPDATE forums SET {assignments} WHERE id = ?", list(images.values()) + [forum_id])
    except Exception:
        for url in images.values():
            storage.delete(bucket, url)
        raise


@router.post("/", response_model=ForumResponse, status_code=201)
def create_forum(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    is_coi: bool = Form(False),
    avatar: Optional[UploadFile] = File(None),
    cover: Optional[UploadFile] = File(None),
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    """Create a forum; the creator becomes its first, approved core member."""
    if not name or not name.strip():
        raise ValidationError("Forum name is required.")
    with db.transaction() as uow:
        ensure(is_coi or is_admin(uow, current_user_id), "Only admins are allowed to create Bidang forums.")
        forum_id = uow.execute(
            "INSERT INTO forums (creator_id, name, description, is_coi) VALUES (?, ?, ?, ?)",
            (current_user_id, name.strip(), description, is_coi),
        ).lastrowid
        uow.execute("""
            INSERT INTO forum_members (forum_id, user_id, role, is_approved, approved_at)
            VALUES (?, ?, 'core', 1, CURRENT_TIMESTAMP)
        """, (forum_id, current_user_id))
        uow.execute("UPDATE forums SET members_count = members_count + 1 WHERE id = ?", (forum_id,))
    logger.info("Forum %s created by %s (is_coi=%s)", forum_id, current_user_id, is_coi)
    images = upload_images(storage, settings.forum_media_bucket, forum_id, avatar=avatar, cover=cover)
    if images:
        apply_images(db, storage, settings.forum_media_bucket, forum_id, images)
    with db.connect() as conn:
        return ForumResponse(**dict(get_forum_row(conn, forum_id)))


@router.get("/", response_model=ForumListResponse)
def list_forums(
    is_coi: Optional[bool] = None,
    page: int = 1,
    limit: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    page, limit, offset = page_window(page, limit, settings)
    where, params = "", []
    if is_coi is not None:
        where, params = "WHERE is_coi = ?", [is_coi]
    with db.connect() as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM forums {where}", params).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM forums {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            params + [limit, offset],
        ).fetchall()
    return ForumListResponse(forums=[dict(row) for row in rows], total=total, page=page, limit=limit)


@router.get("/joined", response_model=JoinedForumListResponse)
def list_joined_forums(
    is_coi: Optional[bool] = None,
    role: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    if role is not None and role not in ("core", "member"):
        raise ValidationError("Invalid role filter.")
    page, limit, offset = page_window(page, limit, settings)
    clauses = ["m.user_id = ?", "m.is_approved = 1"]
    params: List = [current_user_id]
    if is_coi is not None:
        clauses.append("f.is_coi = ?")
        params.append(is_coi)
    if role is not None:
        clauses.append("m.role = ?")
        params.append(role)
    where = " AND ".join(clauses)
    with db.connect() as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM forum_members m JOIN forums f ON f.id = m.forum_id WHERE {where}", params
        ).fetchone()[0]
        rows = conn.execute(f"""
            SELECT f.*, m.role, m.approved_at
            FROM forum_members m JOIN forums f ON f.id = m.forum_id
            WHERE {where}
            ORDER BY m.approved_at DESC, f.id DESC
            LIMIT ? OFFSET ?
        """, params + [limit, offset]).fetchall()
    return JoinedForumListResponse(forums=[dict(row) for row in rows], total=total, page=page, limit=limit)


@router.get("/{forum_id}", response_model=ForumDetailResponse)
def get_forum(
    forum_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    with db.connect() as conn:
        forum = require_forum(conn, forum_id)
        membership = forum_membership(conn, forum_id, current_user_id)
        status = "none"
        if membership is not None:
            status = "approved" if membership["is_approved"] else "pending"
        return ForumDetailResponse(
            **dict(forum),
            creator=user_summary(conn, forum["creator_id"]),
            is_core_member=is_forum_core(conn, forum_id, current_user_id),
            is_following=status == "approved",
            membership_status=status,
        )


@router.put("/{forum_id}", response_model=ForumResponse)
def update_forum(
    forum_id: int,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    is_coi: Optional[bool] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover: Optional[UploadFile] = File(None),
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    """Edit forum fields (core member or admin); new images replace the old objects."""
    with db.connect() as conn:
        require_forum(conn, forum_id)
        admin = is_admin(conn, current_user_id)
        ensure(admin or is_forum_core(conn, forum_id, current_user_id), "You are not authorized to edit this forum.")
    if name is not None and not name.strip():
        raise ValidationError("Forum name cannot be empty.")
    if is_coi is not None:
        ensure(admin, "Only admins can change the forum category.")
    images = upload_images(storage, settings.forum_media_bucket, forum_id, avatar=avatar, cover=cover)
    replaced: List[str] = []
    try:
        with db.transaction() as uow:
            forum = require_forum(uow, forum_id)
            fields = []
            params = []
            if name is not None:
                fields.append("name = ?")
                params.append(name.strip())
            if description is not None:
                fields.append("description = ?")
                params.append(description)
            if is_coi is not None:
                fields.append("is_coi = ?")
                params.append(is_coi)
            for column, url in images.items():
                if forum[column]:
                    replaced.append(forum[column])
                fields.append(f"{column} = ?")
                params.append(url)
            if not fields:
                raise ValidationError("No fields provided for update.")
            fields.append("updated_at = CURRENT_TIMESTAMP")
            params.append(forum_id)
            uow.execute(f"UPDATE forums SET {', '.join(fields)} WHERE id = ?", params)
    except Exception:
        for url in images.values():
            storage.delete(settings.forum_media_bucket, url)
        raise
    for url in replaced:
        storage.delete(settings.forum_media_bucket, url)
    with db.connect() as conn:
        return ForumResponse(**dict(get_forum_row(conn, forum_id)))


@router.delete("/{forum_id}", response_model=MessageResponse)
def delete_forum(
    forum_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    with db.transaction() as uow:
        forum = require_forum(uow, forum_id)
        ensure(
            is_owner(forum["creator_id"], current_user_id) or is_admin(uow, current_user_id),
            "You are not authorized to delete this forum.",
        )
        uow.execute("DELETE FROM forums WHERE id = ?", (forum_id,))
    for url in (forum["avatar_url"], forum["cover_url"]):
        storage.delete(settings.forum_media_bucket, url)
    logger.info("Forum %s deleted by %s", forum_id, current_user_id)
    return {"message": "Forum deleted successfully."}


@router.post("/{forum_id}/join", response_model=MessageResponse, status_code=201)
def join_forum(
    forum_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """Request to join; the row stays pending (and uncounted) until a core member approves it."""
    with db.transaction() as uow:
        require_forum(uow, forum_id)
        membership = forum_membership(uow, forum_id, current_user_id)
        if membership is not None:
            if membership["is_approved"]:
                raise ConflictError("You are already a member of this forum.")
            raise ConflictError("You have already requested to join this forum. Please wait for approval.")
        uow.execute(
            "INSERT INTO forum_members (forum_id, user_id, role, is_approved) VALUES (?, ?, 'member', 0)",
            (forum_id, current_user_id),
        )
    return {"message": "Join request sent. Please wait for approval."}


@router.post("/{forum_id}/leave", response_model=MessageResponse)
def leave_forum(
    forum_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    with db.transaction() as uow:
        forum = require_forum(uow, forum_id)
        membership = forum_membership(uow, forum_id, current_user_id)
        if membership is None:
            raise ConflictError("You are not a member of this forum.")
        if is_owner(forum["creator_id"], current_user_id):
            raise ValidationError("Forum creator cannot leave the forum.")
        uow.execute(
            "DELETE FROM forum_members WHERE forum_id = ? AND user_id = ?",
            (forum_id, current_user_id),
        )
        if membership["is_approved"]:
            uow.execute(
                "UPDATE forums SET members_count = MAX(members_count - 1, 0) WHERE id = ?",
                (forum_id,),
            )
    if membership["is_approved"]:
        return {"message": "You have left the forum."}
    return {"message": "Join request cancelled."}


@router.get("/{forum_id}/requests", response_model=List[JoinRequestResponse])
def list_join_requests(
    forum_id: int,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    with db.connect() as conn:
        require_forum(conn, forum_id)
        ensure(
            is_forum_core(conn, forum_id, current_user_id) or is_admin(conn, current_user_id),
            "Only core members can view join requests.",
        )
        rows = conn.execute("""
            SELECT user_id, joined_at FROM forum_members
            WHERE forum_id = ? AND is_approved = 0
            ORDER BY joined_at ASC, id ASC
        """, (forum_id,)).fetchall()
        return [
            JoinRequestResponse(user=user_summary(conn, row["user_id"]), joined_at=row["joined_at"])
            for row in rows
        ]


@router.put("/{forum_id}/approve", response_model=MessageResponse)
def approve_join_request(
    forum_id: int,
    body: ApproveRequest,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    if not body.user_id:
        raise ValidationError("User ID to approve is required.")
    with db.transaction() as uow:
        require_forum(uow, forum_id)
        ensure(is_forum_core(uow, forum_id, current_user_id), "Only core members can approve join requests.")
        membership = forum_membership(uow, forum_id, body.user_id)
        if membership is None:
            raise NotFoundError("No join request found for this user.")
        if membership["is_approved"]:
            raise ConflictError("This user is already a member of the forum.")
        uow.execute("""
            UPDATE forum_members SET is_approved = 1, approved_at = CURRENT_TIMESTAMP
            WHERE forum_id = ? AND user_id = ?
        """, (forum_id, body.user_id))
        uow.execute("UPDATE forums SET members_count = members_count + 1 WHERE id = ?", (forum_id,))
    logger.info("User %s approved into forum %s by %s", body.user_id, forum_id, current_user_id)
    return {"message": "Join request approved successfully."}
