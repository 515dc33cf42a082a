import secrets
import time

from jose import jwt

from blogcms import models
from conftest import create_user, get_auth_header

SSO_ISSUER = "https://api.asgardeo.io/t/example/oauth2/token"


def register(client, **overrides):
    payload = {
        "email": "new@example.com",
        "username": "newbie",
        "password": "secret123",
        "first_name": "New",
        "last_name": "User",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def sso_token(**claims):
    payload = {
        "sub": "sso-subject-1",
        "email": "sso@example.com",
        "given_name": "Sam",
        "family_name": "Sso",
        "iss": SSO_ISSUER,
        "exp": int(time.time()) + 600,
    }
    payload.update(claims)
    return jwt.encode(payload, "provider-key", algorithm="HS256")


def test_register_returns_user_and_token(client):
    resp = register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "User registered successfully"
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["role"] == "reader"
    assert "password_hash" not in body["user"]
    assert body["token"]


def test_register_duplicate_is_conflict(client):
    assert register(client).status_code == 201
    resp = register(client, username="other")
    assert resp.status_code == 409
    assert resp.json()["error"]["message"] == "User with this email or username already exists"


def test_register_validation_error_is_400(client):
    resp = register(client, email="not-an-email")
    assert resp.status_code == 400
    assert resp.json()["error"]["status_code"] == 400


def test_login_wrong_password(client):
    create_user(username="alice")
    resp = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Invalid credentials"


def test_login_inactive_account(client):
    create_user(username="sleepy", is_active=False)
    resp = client.post("/api/auth/login", json={"email": "sleepy@example.com", "password": "password123"})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Account is inactive"


def test_protected_route_requires_token(client):
    resp = client.get("/api/users/profile")
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Access token required"

    resp = client.get("/api/users/profile", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Invalid token"


def test_refresh_and_logout(client, db):
    user_id = create_user(username="bob")
    headers = get_auth_header(client, "bob@example.com")

    resp = client.post("/api/auth/refresh", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["token"]

    resp = client.post("/api/auth/logout", headers=headers)
    assert resp.status_code == 200
    assert db.query(models.UserSession).filter(models.UserSession.user_id == user_id).count() == 0


def test_sso_login_provisions_reader_then_reuses_account(client):
    resp = client.post("/api/auth/sso/login", json={"id_token": sso_token()})
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_new_user"] is True
    assert body["user"]["email"] == "sso@example.com"
    assert body["user"]["role"] == "reader"
    assert body["user"]["first_name"] == "Sam"

    resp = client.post("/api/auth/sso/login", json={"id_token": sso_token()})
    assert resp.status_code == 200
    assert resp.json()["is_new_user"] is False
    assert resp.json()["user"]["id"] == body["user"]["id"]


def test_sso_login_links_existing_account_by_email(client, db):
    user_id = create_user(username="linked", email="sso@example.com")
    resp = client.post("/api/auth/sso/login", json={"id_token": sso_token()})
    assert resp.status_code == 200
    assert resp.json()["is_new_user"] is False
    assert db.get(models.User, user_id).sso_subject == "sso-subject-1"


def test_sso_login_rejects_bad_tokens(client):
    resp = client.post("/api/auth/sso/login", json={"id_token": "not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Invalid token format"

    resp = client.post("/api/auth/sso/login", json={"id_token": sso_token(email=None)})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Token missing email/username claim"

    resp = client.post("/api/auth/sso/login", json={"id_token": sso_token(iss="https://evil.example.com")})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Invalid token issuer"

    resp = client.post("/api/auth/sso/login", json={"id_token": sso_token(exp=int(time.time()) - 60)})
    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Token has expired"


def test_sso_login_rejects_malformed_claims(client):
    for claims in ({"exp": "soon"}, {"iss": ["asgardeo.io"]}, {"email": 12345}):
        resp = client.post("/api/auth/sso/login", json={"id_token": sso_token(**claims)})
        assert resp.status_code == 401, claims
        assert resp.json()["error"]["message"] == "Invalid token format"


def test_password_reset_flow(client, db, monkeypatch):
    create_user(username="forgetful")
    issued = []
    real_token_urlsafe = secrets.token_urlsafe

    def capture(nbytes=None):
        token = real_token_urlsafe(nbytes)
        issued.append(token)
        return token

    monkeypatch.setattr(secrets, "token_urlsafe", capture)

    resp = client.post("/api/auth/forgot-password", json={"email": "forgetful@example.com"})
    assert resp.status_code == 200
    unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert unknown.json()["message"] == resp.json()["message"]
    assert len(issued) == 1

    resp = client.post("/api/auth/reset-password", json={"token": issued[0], "new_password": "brandnew1"})
    assert resp.status_code == 200
    get_auth_header(client, "forgetful@example.com", password="brandnew1")

    # tokens are single use
    resp = client.post("/api/auth/reset-password", json={"token": issued[0], "new_password": "another1"})
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Invalid or expired reset token"
