"""Tests for login, registration and logout."""
from collections import defaultdict

import pytest
from werkzeug.security import generate_password_hash

from app.campus import auth as auth_module
from app.campus import create_app
from app.campus.db import session_scope
from app.campus.models import AuditEvent, Base, Role, User


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setattr(auth_module, "_login_attempts", defaultdict(list))

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add(Role(key="learner", name="Learner"))
        s.add(User(email="ada@example.com", full_name="Ada", password_hash=generate_password_hash("secret-pw"), is_active=True))
        s.add(User(email="gone@example.com", password_hash=generate_password_hash("secret-pw"), is_active=False))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_login_redirects_to_dashboard(client):
    r = client.post("/auth/login", data={"email": "ADA@example.com ", "password": "secret-pw"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    r = client.get("/dashboard")
    assert r.status_code == 200


def test_login_honours_local_next_only(client):
    r = client.post("/auth/login", data={"email": "ada@example.com", "password": "secret-pw", "next": "/courses"})
    assert r.headers["Location"].endswith("/courses")
    client.get("/auth/logout")

    r = client.post("/auth/login", data={"email": "ada@example.com", "password": "secret-pw", "next": "//evil.example"})
    assert r.headers["Location"].endswith("/dashboard")


def test_invalid_credentials_are_audited(app, client):
    r = client.post("/auth/login", data={"email": "ada@example.com", "password": "wrong"}, follow_redirects=True)
    assert b"Invalid credentials." in r.data

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
        assert ev.entity_id == "ada@example.com"


def test_inactive_user_cannot_log_in(client):
    r = client.post("/auth/login", data={"email": "gone@example.com", "password": "secret-pw"}, follow_redirects=True)
    assert b"Invalid credentials." in r.data


def test_login_rate_limit(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "ada@example.com", "password": "wrong"})
    r = client.post("/auth/login", data={"email": "ada@example.com", "password": "secret-pw"}, follow_redirects=True)
    assert b"Too many login attempts" in r.data
    assert client.get("/dashboard").status_code == 302


def test_register_creates_learner_and_signs_in(app, client):
    r = client.post(
        "/auth/register",
        data={"email": "Grace@Example.com", "full_name": "Grace", "password": "long-enough", "password_confirm": "long-enough"},
    )
    assert r.status_code == 302
    assert client.get("/dashboard").status_code == 200

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "grace@example.com").one()
        assert [role.key for role in u.roles] == ["learner"]
        assert u.locale == "tr"


def test_register_validation_errors(client):
    r = client.post(
        "/auth/register",
        data={"email": "not-an-email", "full_name": "", "password": "short", "password_confirm": "other"},
        follow_redirects=True,
    )
    assert b"A valid email address is required." in r.data
    assert b"Full name is required." in r.data
    assert b"Password must be at least 8 characters." in r.data
    assert b"Passwords do not match." in r.data


def test_register_duplicate_email(client):
    r = client.post(
        "/auth/register",
        data={"email": "ada@example.com", "full_name": "Ada", "password": "long-enough", "password_confirm": "long-enough"},
        follow_redirects=True,
    )
    assert b"already exists" in r.data


def test_logout_clears_session(client):
    client.post("/auth/login", data={"email": "ada@example.com", "password": "secret-pw"})
    r = client.get("/auth/logout")
    assert r.status_code == 302
    assert client.get("/dashboard").status_code == 302


def test_registration_payload_validator():
    errors = auth_module.validate_registration_payload(
        {"email": "x@example.com", "full_name": "X", "password": "12345678", "password_confirm": "12345678"}
    )
    assert errors == []
