import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, File, Form, UploadFile

from auth import get_app_settings, get_current_user_id
from config import Settings
from database import Database, get_database
from errors import ConflictError, NotFoundError, ValidationError
from schemas.users import (
    ZONES,
    AcceptMemberRequest,
    FollowListResponse,
    MemberResponse,
    RegistrationResponse,
    UserListResponse,
    UserMetrics,
    UserProfileResponse,
)
from schemas.shared import MessageResponse
from storage import StorageSession, get_storage_session
from utils.permissions import ensure, is_admin, is_owner
from utils.route_helpers import page_window

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

REGISTRATION_FIELDS = (
    "id_card_url", "birth_place", "birth_date", "zone", "latest_education",
    "address", "nik", "phone_number", "referral",
)


def require_admin(
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
) -> str:
    with db.connect() as conn:
        ensure(is_admin(conn, current_user_id), "You are not authorized to access this resource.")
    return current_user_id


def get_user_row(conn, user_id: str):
    return conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()


def require_user(conn, user_id: str):
    user = get_user_row(conn, user_id)
    if not user:
        raise NotFoundError("User not found.")
    return user


def is_following(conn, follower_id: str, following_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM user_follows WHERE follower_id = ? AND following_id = ?",
        (follower_id, following_id),
    ).fetchone()
    return row is not None


def build_profile(conn, user, viewer_id: str) -> UserProfileResponse:
    member = conn.execute("SELECT zone, position FROM users_member WHERE user_id = ?", (user["id"],)).fetchone()
    counts = conn.execute("""
        SELECT
            (SELECT COUNT(*) FROM user_follows WHERE following_id = ?) AS followers_count,
            (SELECT COUNT(*) FROM user_follows WHERE follower_id = ?) AS following_count
    """, (user["id"], user["id"])).fetchone()
    return UserProfileResponse(
        **dict(user),
        is_admin=is_admin(conn, user["id"]),
        is_member=member is not None,
        zone=member["zone"] if member else None,
        position=member["position"] if member else None,
        is_following=viewer_id != user["id"] and is_following(conn, viewer_id, user["id"]),
        followers_count=counts["followers_count"],
        following_count=counts["following_count"],
    )


def get_metrics(conn) -> UserMetrics:
    total_members = conn.execute("SELECT COUNT(*) FROM users_member").fetchone()[0]
    total_registrants = conn.execute(
        "SELECT COUNT(*) FROM users_registration WHERE status = 'pending'"
    ).fetchone()[0]
    by_zone = {zone: 0 for zone in ZONES}
    for row in conn.execute("SELECT zone, COUNT(*) AS total FROM users_member GROUP BY zone").fetchall():
        if row["zone"] in by_zone:
            by_zone[row["zone"]] = row["total"]
    return UserMetrics(total_members=total_members, total_registrants=total_registrants, members_by_zone=by_zone)


@router.get("/", response_model=UserListResponse)
def list_users(
    status: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    current_user_id: str = Depends(require_admin),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    """List users, members or pending registrants, with membership metrics."""
    if status is not None and status not in ("member", "registrant"):
        raise ValidationError("Invalid status filter.")
    page, limit, offset = page_window(page, limit, settings)
    if status == "member":
        source = """
            FROM users u JOIN users_member m ON m.user_id = u.id
        """
        columns = "u.*, m.zone, m.position, 'member' AS status"
    elif status == "registrant":
        source = """
            FROM users u JOIN users_registration r ON r.user_id = u.id AND r.status = 'pending'
        """
        columns = "u.*, r.zone, NULL AS position, 'registrant' AS status"
    else:
        source = "FROM users u LEFT JOIN users_member m ON m.user_id = u.id"
        columns = "u.*, m.zone, m.position, NULL AS status"
    with db.connect() as conn:
        total = conn.execute(f"SELECT COUNT(*) {source}").fetchone()[0]
        rows = conn.execute(
            f"SELECT {columns} {source} ORDER BY u.created_at DESC, u.id LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        metrics = get_metrics(conn)
    return UserListResponse(users=[dict(row) for row in rows], total=total, page=page, limit=limit, metrics=metrics)


def check_can_register(conn, user_id: str) -> bool:
    """Raise if the user may not apply; True when a rejected registration must be replaced."""
    if conn.execute("SELECT 1 FROM users_member WHERE user_id = ?", (user_id,)).fetchone():
        raise ConflictError("You are already a member.")
    existing = conn.execute("SELECT status FROM users_registration WHERE user_id = ?", (user_id,)).fetchone()
    if existing is not None and existing["status"] != "rejected":
        raise ConflictError("You have already submitted a registration.")
    return existing is not None


@router.post("/register-member", response_model=RegistrationResponse, status_code=201)
def register_as_member(
    birth_place: Optional[str] = Form(None),
    birth_date: Optional[str] = Form(None),
    zone: Optional[str] = Form(None),
    latest_education: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    nik: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None),
    referral: Optional[str] = Form(None),
    id_card: Optional[UploadFile] = File(None),
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    if not all((birth_place, birth_date, zone, address, nik, phone_number)):
        raise ValidationError("Required registration fields are missing.")
    if zone not in ZONES:
        raise ValidationError("Invalid zone.")
    with db.connect() as conn:
        check_can_register(conn, current_user_id)
    stored = storage.upload_file(settings.user_media_bucket, id_card, "user", current_user_id, "id-card")
    try:
        with db.transaction() as uow:
            if check_can_register(uow, current_user_id):
                # A rejected applicant may apply again
                uow.execute("DELETE FROM users_registration WHERE user_id = ?", (current_user_id,))
            uow.execute("""
                INSERT INTO users_registration
                    (user_id, id_card_url, birth_place, birth_date, zone, latest_education, address, nik, phone_number, referral)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                current_user_id, stored["url"] if stored else None, birth_place, birth_date, zone,
                latest_education, address, nik, phone_number, referral,
            ))
            registration = uow.fetchone("SELECT * FROM users_registration WHERE user_id = ?", (current_user_id,))
    except Exception:
        if stored is not None:
            storage.delete(settings.user_media_bucket, stored["url"])
        raise
    logger.info("Member registration submitted by %s", current_user_id)
    return RegistrationResponse(**dict(registration))


@router.get("/registrant/{user_id}", response_model=RegistrationResponse)
def get_registrant(
    user_id: str,
    current_user_id: str = Depends(require_admin),
    db: Database = Depends(get_database),
):
    with db.connect() as conn:
        registration = conn.execute("SELECT * FROM users_registration WHERE user_id = ?", (user_id,)).fetchone()
    if not registration:
        raise NotFoundError("Registrant not found.")
    return RegistrationResponse(**dict(registration))


@router.patch("/registrant/{user_id}/accept")
def accept_as_member(
    user_id: str,
    body: Optional[AcceptMemberRequest] = Body(None),
    current_user_id: str = Depends(require_admin),
    db: Database = Depends(get_database),
):
    """Promote a pending registrant: member row, verified flag and registration status move together."""
    position = body.position if body else None
    with db.transaction() as uow:
        registration = uow.fetchone("SELECT * FROM users_registration WHERE user_id = ?", (user_id,))
        if not registration:
            raise NotFoundError("Registrant not found.")
        if registration["status"] != "pending":
            raise ConflictError("Registrant has already been processed.")
        if uow.fetchone("SELECT 1 FROM users_member WHERE user_id = ?", (user_id,)):
            raise ConflictError("User is already a member.")
        columns = ", ".join(REGISTRATION_FIELDS)
        placeholders = ", ".join("?" for _ in REGISTRATION_FIELDS)
        uow.execute(
            f"INSERT INTO users_member (user_id, {columns}, position) VALUES (?, {placeholders}, ?)",
            [user_id] + [registration[field] for field in REGISTRATION_FIELDS] + [position],
        )
        uow.execute(
            "UPDATE users SET is_verified = 1, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (user_id,),
        )
        uow.execute(
            "UPDATE users_registration SET status = 'active', updated_at = CURRENT_TIMESTAMP WHERE user_id = ?",
            (user_id,),
        )
        member = uow.fetchone("SELECT * FROM users_member WHERE user_id = ?", (user_id,))
    logger.info("Registrant %s promoted to member by %s", user_id, current_user_id)
    return {"message": "Registrant accepted as member successfully.", "member": MemberResponse(**dict(member))}


@router.patch("/registrant/{user_id}/reject", response_model=MessageResponse)
def reject_registrant(
    user_id: str,
    current_user_id: str = Depends(require_admin),
    db: Database = Depends(get_database),
):
    with db.transaction() as uow:
        registration = uow.fetchone("SELECT status FROM users_registration WHERE user_id = ?", (user_id,))
        if not registration:
            raise NotFoundError("Registrant not found.")
        if registration["status"] != "pending":
            raise ConflictError("Registrant has already been processed.")
        uow.execute(
            "UPDATE users_registration SET status = 'rejected', updated_at = CURRENT_TIMESTAMP WHERE user_id = ?",
            (user_id,),
        )
    return {"message": "Registrant rejected successfully."}


@router.patch("/{user_id}/toggle-admin", response_model=MessageResponse)
def toggle_admin_status(
    user_id: str,
    current_user_id: str = Depends(require_admin),
    db: Database = Depends(get_database),
):
    with db.transaction() as uow:
        require_user(uow, user_id)
        if is_admin(uow, user_id):
            uow.execute("DELETE FROM users_admin WHERE user_id = ?", (user_id,))
            message = "Admin status removed successfully."
        else:
            uow.execute("INSERT INTO users_admin (user_id) VALUES (?)", (user_id,))
            message = "Admin status granted successfully."
    logger.info("Admin status of %s toggled by %s", user_id, current_user_id)
    return {"message": message}


@router.get("/{user_id}", response_model=UserProfileResponse)
def get_user(
    user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    with db.connect() as conn:
        return build_profile(conn, require_user(conn, user_id), current_user_id)


@router.put("/{user_id}", response_model=UserProfileResponse)
def update_profile(
    user_id: str,
    display_name: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    is_private: Optional[bool] = Form(None),
    is_verified: Optional[bool] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover: Optional[UploadFile] = File(None),
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    storage: StorageSession = Depends(get_storage_session),
    settings: Settings = Depends(get_app_settings),
):
    """Update a profile (self or admin); only admins may change ``is_verified``."""
    with db.connect() as conn:
        require_user(conn, user_id)
        admin = is_admin(conn, current_user_id)
    ensure(is_owner(user_id, current_user_id) or admin, "You are not authorized to update this profile.")
    if is_verified is not None:
        ensure(admin, "Only admins can change verification status.")
    images = {}
    for subpath, upload in (("avatar", avatar), ("cover", cover)):
        stored = storage.upload_file(settings.user_media_bucket, upload, "user", user_id, subpath)
        if stored is not None:
            images[f"{subpath}_url"] = stored["url"]
    replaced: List[str] = []
    try:
        with db.transaction() as uow:
            user = require_user(uow, user_id)
            fields = []
            params = []
            if display_name is not None:
                fields.append("display_name = ?")
                params.append(display_name)
            if username is not None:
                if uow.fetchone("SELECT 1 FROM users WHERE username = ? AND id != ?", (username, user_id)):
                    raise ConflictError("Username is already taken.")
                fields.append("username = ?")
                params.append(username)
            if bio is not None:
                fields.append("bio = ?")
                params.append(bio)
            if is_private is not None:
                fields.append("is_private = ?")
                params.append(is_private)
            if is_verified is not None:
                fields.append("is_verified = ?")
                params.append(is_verified)
            for column, url in images.items():
                if user[column]:
                    replaced.append(user[column])
                fields.append(f"{column} = ?")
                params.append(url)
            if not fields:
                raise ValidationError("No fields provided for update.")
            fields.append("updated_at = CURRENT_TIMESTAMP")
            params.append(user_id)
            uow.execute(f"UPDATE users SET {', '.join(fields)} WHERE id = ?", params)
    except Exception:
        for url in images.values():
            storage.delete(settings.user_media_bucket, url)
        raise
    for url in replaced:
        storage.delete(settings.user_media_bucket, url)
    with db.connect() as conn:
        return build_profile(conn, get_user_row(conn, user_id), current_user_id)


@router.post("/{user_id}/follow", response_model=MessageResponse, status_code=201)
def follow_user(
    user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    if user_id == current_user_id:
        raise ValidationError("You cannot follow yourself.")
    with db.transaction() as uow:
        require_user(uow, user_id)
        if is_following(uow, current_user_id, user_id):
            raise ConflictError("You are already following this user.")
        uow.execute(
            "INSERT INTO user_follows (follower_id, following_id) VALUES (?, ?)",
            (current_user_id, user_id),
        )
    return {"message": "Followed successfully."}


@router.delete("/{user_id}/follow", response_model=MessageResponse)
def unfollow_user(
    user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    with db.transaction() as uow:
        deleted = uow.execute(
            "DELETE FROM user_follows WHERE follower_id = ? AND following_id = ?",
            (current_user_id, user_id),
        )
        if not deleted.rowcount:
            raise NotFoundError("You are not following this user.")
    return {"message": "Unfollowed successfully."}


def list_follow_graph(db: Database, settings: Settings, user_id: str, viewer_id: str, page: int, limit: Optional[int], followers: bool):
    page, limit, offset = page_window(page, limit, settings)
    # followers: rows pointing at user_id; following: rows starting from user_id
    match_column, other_column = ("following_id", "follower_id") if followers else ("follower_id", "following_id")
    with db.connect() as conn:
        require_user(conn, user_id)
        total = conn.execute(
            f"SELECT COUNT(*) FROM user_follows WHERE {match_column} = ?", (user_id,)
        ).fetchone()[0]
        rows = conn.execute(f"""
            SELECT u.id, u.username, u.display_name, u.avatar_url, u.is_verified,
                   EXISTS(SELECT 1 FROM user_follows v WHERE v.follower_id = ? AND v.following_id = u.id) AS is_following
            FROM user_follows f
            JOIN users u ON u.id = f.{other_column}
            WHERE f.{match_column} = ?
            ORDER BY f.created_at DESC, f.id DESC
            LIMIT ? OFFSET ?
        """, (viewer_id, user_id, limit, offset)).fetchall()
    return FollowListResponse(users=[dict(row) for row in rows], total=total, page=page, limit=limit)


@router.get("/{user_id}/followers", response_model=FollowListResponse)
def get_followers(
    user_id: str,
    page: int = 1,
    limit: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    return list_follow_graph(db, settings, user_id, current_user_id, page, limit, followers=True)


@router.get("/{user_id}/following", response_model=FollowListResponse)
def get_following(
    user_id: str,
    page: int = 1,
    limit: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    return list_follow_graph(db, settings, user_id, current_user_id, page, limit, followers=False)
