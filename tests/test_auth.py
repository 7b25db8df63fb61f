from datetime import datetime, timedelta

from conftest import auth_headers, register

from recipe_billing.core.security import create_access_token, decode_token, hash_token
from recipe_billing.core.timeutil import utcnow
from recipe_billing.models import User, UserSession
from recipe_billing.services.sessions import cleanup_expired_sessions


def test_register_returns_user_and_token(client, db):
    body = register(client, email="Jane@Example.com")
    assert body["email"] == "jane@example.com"
    assert body["name"] == "Jane"
    assert body["token"]
    assert "createdAt" in body
    assert "password" not in body and "password_hash" not in body

    user = db.query(User).filter(User.email == "jane@example.com").one()
    assert user.password_hash != "secret123"
    session = db.query(UserSession).filter(UserSession.user_id == user.id).one()
    assert session.token_hash == hash_token(body["token"])
    assert session.is_active


def test_register_rejects_duplicate_email(client):
    register(client)
    resp = client.post("/api/auth/register", json={"name": "Other", "email": "jane@example.com", "password": "secret123"})
    assert resp.status_code == 409
    assert resp.json()["detail"] == "User with this email already exists"


def test_register_validates_fields(client):
    short = client.post("/api/auth/register", json={"name": "Jane", "email": "jane@example.com", "password": "123"})
    assert short.status_code == 422
    missing = client.post("/api/auth/register", json={"email": "jane@example.com", "password": "secret123"})
    assert missing.status_code == 422


def test_login_issues_new_session(client, db):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["token"]
    assert db.query(UserSession).count() == 2


def test_login_rejects_bad_credentials(client):
    register(client)
    wrong = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "nope-nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid email or password"
    unknown = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "secret123"})
    assert unknown.status_code == 401


def test_me_requires_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Access token required"


def test_me_rejects_garbage_token(client):
    resp = client.get("/api/auth/me", headers=auth_headers("not-a-jwt"))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Invalid or expired token"


def test_signed_token_without_session_is_rejected(client):
    body = register(client)
    orphan = create_access_token(str(body["id"]))
    resp = client.get("/api/auth/me", headers=auth_headers(orphan))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired session"


def test_me_returns_profile(client, user_token):
    resp = client.get("/api/auth/me", headers=auth_headers(user_token))
    assert resp.status_code == 200
    assert resp.json()["email"] == "jane@example.com"


def test_logout_invalidates_session(client, user_token):
    resp = client.post("/api/auth/logout", headers=auth_headers(user_token))
    assert resp.status_code == 200
    assert resp.json() == {"message": "Logged out successfully"}

    after = client.get("/api/user/profile", headers=auth_headers(user_token))
    assert after.status_code == 401


def test_logout_without_token_is_ok(client):
    assert client.post("/api/auth/logout").status_code == 200


def test_cleanup_deactivates_only_expired_sessions(db):
    user = User(name="Old", email="old@example.com", password_hash="x")
    db.add(user)
    db.commit()
    now = utcnow()
    db.add_all(
        [
            UserSession(user_id=user.id, token_hash="a" * 64, expires_at=now - timedelta(hours=1), is_active=True),
            UserSession(user_id=user.id, token_hash="b" * 64, expires_at=now + timedelta(hours=1), is_active=True),
        ]
    )
    db.commit()

    assert cleanup_expired_sessions(db, now=now) == 1
    states = {s.token_hash[0]: s.is_active for s in db.query(UserSession).all()}
    assert states == {"a": False, "b": True}


def test_decode_token_rejects_non_numeric_subject():
    assert decode_token(create_access_token("42")) == 42
    assert decode_token(create_access_token("not-a-user")) is None
    assert decode_token("garbage") is None


def test_register_rejects_blank_name(client):
    resp = client.post("/api/auth/register", json={"name": "   ", "email": "jane@example.com", "password": "secret123"})
    assert resp.status_code == 422


def test_register_strips_name(client):
    assert register(client, name="  Jane  ")["name"] == "Jane"
    created = register(client, email="x@example.com")["createdAt"].replace("Z", "+00:00")
    assert datetime.fromisoformat(created).utcoffset() == timedelta(0)
