import logging

from fastapi import APIRouter, Depends

from database import Database, get_database
from errors import AuthenticationError, ConflictError, InternalError, ValidationError
from identity import IdentityClient, IdentityProviderError, get_identity_client
from schemas.auth import LoginRequest, RefreshRequest, RegisteredUser, RegisterRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


def get_local_user(db: Database, user_id: str):
    with db.connect() as conn:
        row = conn.execute(
            "SELECT id, email, username, display_name FROM users WHERE id = ?", (user_id,)
        ).fetchone()
    return RegisteredUser(**dict(row)) if row else None


@router.post("/register", response_model=RegisteredUser, status_code=201)
def register(
    body: RegisterRequest,
    db: Database = Depends(get_database),
    identity: IdentityClient = Depends(get_identity_client),
):
    """Sign the user up with the identity provider, then create the local profile row."""
    if not body.email or not body.password or not body.username:
        raise ValidationError("Email, password, and username are required.")
    display_name = body.display_name or body.username
    with db.connect() as conn:
        if conn.execute("SELECT 1 FROM users WHERE username = ?", (body.username,)).fetchone():
            raise ConflictError("Username is already taken.")
        if conn.execute("SELECT 1 FROM users WHERE email = ?", (body.email,)).fetchone():
            raise ConflictError("Email is already registered.")
    try:
        provider_user = identity.sign_up(
            body.email, body.password, {"username": body.username, "display_name": display_name}
        )
    except IdentityProviderError as exc:
        raise ValidationError(str(exc)) from exc
    user_id = provider_user.get("id")
    if not user_id:
        logger.error("Identity provider returned no user id for %s", body.email)
        raise InternalError("Registration failed.")
    with db.transaction() as uow:
        uow.execute(
            "INSERT INTO users (id, email, username, display_name) VALUES (?, ?, ?, ?)",
            (user_id, body.email, body.username, display_name),
        )
    logger.info("User %s registered", user_id)
    return RegisteredUser(id=user_id, email=body.email, username=body.username, display_name=display_name)


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    db: Database = Depends(get_database),
    identity: IdentityClient = Depends(get_identity_client),
):
    if not body.email or not body.password:
        raise ValidationError("Email and password are required.")
    try:
        session = identity.sign_in(body.email, body.password)
    except IdentityProviderError as exc:
        raise AuthenticationError("Invalid credentials") from exc
    provider_user = session.get("user") or {}
    return TokenResponse(
        access_token=session["access_token"],
        refresh_token=session.get("refresh_token"),
        expires_in=session.get("expires_in"),
        user=get_local_user(db, provider_user["id"]) if provider_user.get("id") else None,
    )


@router.post("/refresh-token", response_model=TokenResponse)
def refresh_token(
    body: RefreshRequest,
    identity: IdentityClient = Depends(get_identity_client),
):
    if not body.refresh_token:
        raise ValidationError("Refresh token is required.")
    try:
        session = identity.refresh(body.refresh_token)
    except IdentityProviderError as exc:
        raise AuthenticationError("Failed to refresh token") from exc
    return TokenResponse(
        access_token=session["access_token"],
        refresh_token=session.get("refresh_token"),
        expires_in=session.get("expires_in"),
    )
