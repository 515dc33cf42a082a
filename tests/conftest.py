import os
import tempfile

# settings are read at import time, so point them at throwaway locations first
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="blogcms-uploads-"))
os.environ.setdefault("AUTO_SEED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from blogcms import auth, database, models
from blogcms.main import app


@pytest.fixture(autouse=True)
def setup_db():
    models.Base.metadata.create_all(bind=database.engine)
    yield
    models.Base.metadata.drop_all(bind=database.engine)


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr("blogcms.cache.redis_client", fake)
    return fake


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_user(role="reader", email=None, username=None, password="password123", is_active=True):
    username = username or f"{role}_user"
    email = email or f"{username}@example.com"
    session = database.SessionLocal()
    try:
        user = models.User(
            username=username,
            email=email,
            password_hash=auth.get_password_hash(password),
            first_name=username.title(),
            role=models.UserRole(role),
            is_active=is_active,
        )
        session.add(user)
        session.commit()
        return user.id
    finally:
        session.close()


def get_auth_header(client, email, password="password123"):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    token = resp.json()["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login(client):
    """Create a user with the given role and return (user_id, auth headers)."""

    def _login(role="author", username=None):
        username = username or f"{role}_user"
        user_id = create_user(role=role, username=username)
        return user_id, get_auth_header(client, f"{username}@example.com")

    return _login
