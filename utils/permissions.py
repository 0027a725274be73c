"""Authorization predicates.

Each predicate only answers a question; ``ensure`` turns a false answer into a
403. Compose them with ``or``/``and`` at the call site, e.g.
``ensure(is_owner(post["user_id"], user_id) or is_admin(conn, user_id), msg)``.
"""

from typing import Optional

from errors import AuthorizationError


def is_owner(owner_id, user_id) -> bool:
    return owner_id is not None and owner_id == user_id


def is_admin(conn, user_id: str) -> bool:
    row = conn.execute("SELECT 1 FROM users_admin WHERE user_id = ?", (user_id,)).fetchone()
    return row is not None


def forum_membership(conn, forum_id: int, user_id: str):
    return conn.execute(
        "SELECT role, is_approved FROM forum_members WHERE forum_id = ? AND user_id = ?",
        (forum_id, user_id),
    ).fetchone()


def forum_role(conn, forum_id: int, user_id: str) -> Optional[str]:
    """Role of an approved member, or None."""
    row = forum_membership(conn, forum_id, user_id)
    if row is None or not row["is_approved"]:
        return None
    return row["role"]


def is_forum_core(conn, forum_id: int, user_id: str) -> bool:
    return forum_role(conn, forum_id, user_id) == "core"


def ensure(allowed: bool, message: str) -> None:
    if not allowed:
        raise AuthorizationError(message)
