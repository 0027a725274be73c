import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from config import Settings, get_settings
from database import Database, get_database
from errors import AuthenticationError, NotFoundError

logger = logging.getLogger(__name__)

# auto_error is off so a missing header gets our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def decode_access_token(token: str, settings: Settings) -> Optional[dict]:
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except JWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        return None


def verify_token(token: str, settings: Settings) -> dict:
    """Verify a bearer token and return its payload, raising 401 on any failure."""
    payload = decode_access_token(token, settings)
    if not payload or not payload.get("sub"):
        raise AuthenticationError("Unauthorized: Invalid or expired token")
    return payload


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_bearer_token(token: Optional[str] = Depends(oauth2_scheme)) -> str:
    if not token:
        raise AuthenticationError("Unauthorized: No token provided")
    return token


def get_current_user_id(
    token: str = Depends(get_bearer_token),
    settings: Settings = Depends(get_app_settings),
    db: Database = Depends(get_database),
) -> str:
    user_id = verify_token(token, settings)["sub"]
    with db.connect() as conn:
        row = conn.execute("SELECT id FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row:
        raise NotFoundError("User not found.")
    return row["id"]
