"""pytest configuration and fixtures."""

import os
import tempfile
import time
import uuid

# Set required environment variables for testing before any imports
_IMPORT_DIR = tempfile.mkdtemp(prefix="forum-api-tests-")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_PATH", os.path.join(_IMPORT_DIR, "import.sqlite3"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from config import Settings  # noqa: E402
from identity import IdentityProviderError, get_identity_client  # noqa: E402
from main import create_app  # noqa: E402
from storage import StorageSession, get_storage_session  # noqa: E402

TEST_SECRET = "test-secret"


def make_token(user_id, secret=TEST_SECRET, expires_in=3600, audience="authenticated"):
    payload = {"sub": user_id, "aud": audience, "exp": int(time.time()) + expires_in}
    return jwt.encode(payload, secret, algorithm="HS256")


class FakeStorage(StorageSession):
    """Records uploads and deletes instead of calling the storage API."""

    def __init__(self):
        super().__init__("http://storage.test", "anon-key", "caller-token")
        self.uploaded = []
        self.deleted = []
        self.fail_uploads = False
        # Called with (bucket, path) while an upload is in flight
        self.on_upload = None

    def upload(self, bucket, content, path, content_type=None):
        if self.fail_uploads:
            return None
        if self.on_upload is not None:
            self.on_upload(bucket, path)
        self.uploaded.append((bucket, path, content))
        return self.public_url(bucket, path)

    def delete(self, bucket, url):
        self.deleted.append((bucket, url))


class FakeIdentity:
    """In-memory stand-in for the identity provider."""

    def __init__(self):
        self.accounts = {}

    def sign_up(self, email, password, metadata=None):
        if email in self.accounts:
            raise IdentityProviderError("User already registered", 422)
        user_id = str(uuid.uuid4())
        self.accounts[email] = (user_id, password)
        return {"id": user_id, "email": email}

    def sign_in(self, email, password):
        account = self.accounts.get(email)
        if not account or account[1] != password:
            raise IdentityProviderError("Invalid login credentials", 400)
        user_id = account[0]
        return {
            "access_token": make_token(user_id),
            "refresh_token": f"refresh-{user_id}",
            "expires_in": 3600,
            "user": {"id": user_id, "email": email},
        }

    def refresh(self, refresh_token):
        if not refresh_token.startswith("refresh-"):
            raise IdentityProviderError("Invalid Refresh Token", 400)
        user_id = refresh_token[len("refresh-"):]
        return {"access_token": make_token(user_id), "refresh_token": f"refresh-{user_id}", "expires_in": 3600}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_PATH=str(tmp_path / "test.sqlite3"),
        JWT_SECRET=TEST_SECRET,
        ENVIRONMENT="test",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def db(app):
    return app.state.db


@pytest.fixture
def storage(app):
    fake = FakeStorage()
    app.dependency_overrides[get_storage_session] = lambda: fake
    return fake


@pytest.fixture
def identity(app):
    fake = FakeIdentity()
    app.dependency_overrides[get_identity_client] = lambda: fake
    return fake


@pytest.fixture
def client(app, storage, identity):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Insert a local user row and return its id."""
    def _make_user(username=None, admin=False):
        user_id = str(uuid.uuid4())
        username = username or f"user_{user_id[:8]}"
        with db.transaction() as uow:
            uow.execute(
                "INSERT INTO users (id, email, username, display_name) VALUES (?, ?, ?, ?)",
                (user_id, f"{username}@example.com", username, username.title()),
            )
            if admin:
                uow.execute("INSERT INTO users_admin (user_id) VALUES (?)", (user_id,))
        return user_id
    return _make_user


@pytest.fixture
def auth():
    """Authorization headers for a user id."""
    def _auth(user_id):
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _auth


@pytest.fixture
def fetch_one(db):
    def _fetch_one(sql, params=()):
        with db.connect() as conn:
            row = conn.execute(sql, params).fetchone()
        return dict(row) if row else None
    return _fetch_one


@pytest.fixture
def count_rows(db):
    def _count_rows(sql, params=()):
        with db.connect() as conn:
            return conn.execute(sql, params).fetchone()[0]
    return _count_rows
