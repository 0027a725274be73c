import json
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from config import Settings
from errors import ValidationError


def page_window(page: int, limit: Optional[int], settings: Settings) -> Tuple[int, int, int]:
    """Clamp paging input and return (page, limit, offset)."""
    page = max(page or 1, 1)
    limit = limit or settings.default_page_size
    limit = max(1, min(limit, settings.max_page_size))
    return page, limit, (page - 1) * limit


def parse_json_list(raw: Optional[str], field: str) -> List:
    """Multipart forms carry lists as JSON strings."""
    if raw is None or raw == "":
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        raise ValidationError(f"{field} must be a JSON list.")
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a JSON list.")
    return value


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_stored_datetime(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value))


def user_summary(conn, user_id: Optional[str]) -> Optional[dict]:
    if not user_id:
        return None
    row = conn.execute(
        "SELECT id, username, display_name, avatar_url, is_verified FROM users WHERE id = ?",
        (user_id,),
    ).fetchone()
    return dict(row) if row else None


def forum_exists(conn, forum_id: int) -> bool:
    return conn.execute("SELECT 1 FROM forums WHERE id = ?", (forum_id,)).fetchone() is not None
