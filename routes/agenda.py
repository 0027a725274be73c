from typing import Optional

from fastapi import APIRouter, Depends

from auth import get_app_settings, get_current_user_id
from config import Settings
from database import Database, get_database
from errors import NotFoundError, ValidationError
from schemas.agenda import AgendaCreate, AgendaListResponse, AgendaResponse
from utils.permissions import ensure, is_admin, is_forum_core
from utils.route_helpers import as_utc, forum_exists, page_window

router = APIRouter(prefix="/api/agenda", tags=["agenda"])


@router.post("/", response_model=AgendaResponse, status_code=201)
def create_agenda(
    body: AgendaCreate,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    if not body.title or not body.description or not body.image_url or body.start_date is None:
        raise ValidationError("Required form are missing.")
    with db.transaction() as uow:
        if body.forum_id is not None:
            if not forum_exists(uow, body.forum_id):
                raise NotFoundError("Forum ID does not exist.")
            ensure(
                is_forum_core(uow, body.forum_id, current_user_id) or is_admin(uow, current_user_id),
                "Only core members can add agenda to a forum.",
            )
        agenda_id = uow.execute("""
            INSERT INTO agenda (forum_id, image_url, title, description, start_date)
            VALUES (?, ?, ?, ?, ?)
        """, (
            body.forum_id, body.image_url, body.title, body.description,
            as_utc(body.start_date).isoformat(),
        )).lastrowid
        row = uow.fetchone("SELECT * FROM agenda WHERE id = ?", (agenda_id,))
    return AgendaResponse(**dict(row))


@router.get("/", response_model=AgendaListResponse)
def list_agenda(
    forum_id: Optional[int] = None,
    page: int = 1,
    limit: Optional[int] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
):
    page, limit, offset = page_window(page, limit, settings)
    where, params = "", []
    if forum_id is not None:
        where, params = "WHERE forum_id = ?", [forum_id]
    with db.connect() as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM agenda {where}", params).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM agenda {where} ORDER BY start_date ASC, id ASC LIMIT ? OFFSET ?",
            params + [limit, offset],
        ).fetchall()
    return AgendaListResponse(agenda=[dict(row) for row in rows], total=total, page=page, limit=limit)
