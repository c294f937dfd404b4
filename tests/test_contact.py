"""Tests for the contact form pipeline: validation, captcha, spam filtering and admin review."""
import time

import pytest
from werkzeug.security import generate_password_hash

from app.campus import create_app
from app.campus.db import session_scope
from app.campus.models import AuditEvent, Base, Permission, Role, User
from app.campus.modules.contact.captcha import HCaptchaVerifier
from app.campus.modules.contact.models import ContactSubmission
from app.campus.modules.contact.service import client_ip, detect_spam

CSRF = "test-token"
HEADERS = {"X-CSRF-Token": CSRF}


class PassingVerifier:
    def __init__(self):
        self.calls = []

    def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        return True, None


class FailingVerifier:
    def verify(self, token, remote_ip=None):
        return False, "invalid-input-response"


@pytest.fixture()
def verifier(monkeypatch):
    v = PassingVerifier()
    monkeypatch.setattr("app.campus.modules.contact.public.verifier_from_config", lambda cfg: v)
    return v


@pytest.fixture()
def sent(monkeypatch):
    calls = []

    def fake_send(to, subject, text, html=None, reply_to=None):
        calls.append({"to": to, "subject": subject, "reply_to": reply_to})
        return True, "sent"

    monkeypatch.setattr("app.campus.mailer.send_email", fake_send)
    return calls


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("NOTIFICATION_EMAILS", "ops@campus.example, sales@campus.example")
    monkeypatch.delenv("SMTP_SERVER", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        view = Permission(key="contact.view", name="Contact: view messages")
        manage = Permission(key="contact.manage", name="Contact: manage messages")
        reader = Role(key="support", name="Support")
        reader.permissions.append(view)
        admin = Role(key="admin", name="Administrator")
        admin.permissions.extend([view, manage])
        u1 = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u1.roles.append(admin)
        u2 = User(email="support@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u2.roles.append(reader)
        s.add_all([view, manage, reader, admin, u1, u2])
    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    with c.session_transaction() as sess:
        sess["csrf_token"] = CSRF
    return c


def _login(client, email="admin@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _payload(**overrides):
    body = {
        "firstName": "Grace",
        "lastName": "Hopper",
        "email": "Grace@Example.com",
        "message": "I would like to know more about your courses.",
        "hCaptchaToken": "token-123",
        "timestamp": int(time.time() * 1000) - 10_000,
        "browser": "Firefox",
        "deviceType": "Desktop",
    }
    body.update(overrides)
    return body


def test_contact_submission_sends_emails(app, client, verifier, sent):
    r = client.post("/api/contact", json=_payload(), headers={**HEADERS, "X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
    assert r.status_code == 200
    assert r.json["message"] == "Message received successfully"
    assert r.json["emailStatus"] == {
        "confirmationSent": True,
        "notificationsSent": 2,
        "totalNotifications": 2,
        "errors": None,
    }
    assert verifier.calls == [("token-123", "203.0.113.9")]
    assert [c["to"] for c in sent] == ["grace@example.com", "ops@campus.example", "sales@campus.example"]
    assert sent[0]["subject"] == "Mesajınızı Aldık"
    assert sent[1]["reply_to"] == "grace@example.com"

    with session_scope(app) as s:
        sub = s.get(ContactSubmission, r.json["submissionId"])
        assert sub.status == "new"
        assert sub.is_spam is False
        assert sub.ip_address == "203.0.113.9"
        assert sub.browser_info == "Firefox"
        assert sub.admin_notes == "hCaptcha verified"


def test_email_failures_are_reported(client, verifier):
    r = client.post("/api/contact", json=_payload(locale="en"), headers=HEADERS)
    assert r.status_code == 200
    status = r.json["emailStatus"]
    assert status["confirmationSent"] is False
    assert status["notificationsSent"] == 0
    assert len(status["errors"]) == 3


def test_spam_is_stored_without_email(app, client, verifier, sent):
    r = client.post("/api/contact", json=_payload(message="Cheap crypto loans here"), headers=HEADERS)
    assert r.status_code == 200
    assert r.json["message"] == "Message received successfully"
    assert "emailStatus" not in r.json
    assert sent == []
    with session_scope(app) as s:
        sub = s.query(ContactSubmission).one()
        assert sub.status == "spam"
        assert sub.admin_notes.startswith("Contains spam keywords")


@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"firstName": ""}, "missing_fields"),
        ({"message": "   "}, "missing_fields"),
        ({"hCaptchaToken": ""}, "captcha_required"),
        ({"email": "not-an-email"}, "invalid_email"),
    ],
)
def test_contact_validation(client, verifier, overrides, code):
    r = client.post("/api/contact", json=_payload(**overrides), headers=HEADERS)
    assert r.status_code == 400
    assert r.json["success"] is False
    assert r.json["code"] == code


def test_captcha_rejection(app, client, monkeypatch):
    monkeypatch.setattr("app.campus.modules.contact.public.verifier_from_config", lambda cfg: FailingVerifier())
    r = client.post("/api/contact", json=_payload(), headers=HEADERS)
    assert r.status_code == 400
    assert r.json["code"] == "captcha_failed"
    with session_scope(app) as s:
        assert s.query(ContactSubmission).count() == 0


def test_html_contact_form(app, client, verifier, sent):
    assert client.get("/contact").status_code == 200

    r = client.post("/contact", data={"csrf_token": CSRF, **_payload(firstName="")})
    assert r.status_code == 400
    assert b"Required fields are missing" in r.data

    r = client.post("/contact", data={"csrf_token": CSRF, **_payload()}, follow_redirects=True)
    assert "Teşekkürler, mesajınızı aldık.".encode() in r.data
    with session_scope(app) as s:
        assert s.query(ContactSubmission).count() == 1


def test_admin_review_flow(app, client, verifier, sent):
    client.post("/api/contact", json=_payload(), headers=HEADERS)
    client.post("/api/contact", json=_payload(message="see https://a https://b https://c"), headers=HEADERS)
    with session_scope(app) as s:
        sub_id = s.query(ContactSubmission.id).filter(ContactSubmission.is_spam.is_(False)).scalar()

    _login(client, "support@example.com")
    r = client.get("/admin/contact")
    assert r.status_code == 200
    assert b"Contact messages" in r.data
    assert r.data.count(b"grace@example.com") == 1

    r = client.get("/admin/contact?spam=1")
    assert r.data.count(b"grace@example.com") == 2

    r = client.get(f"/admin/contact/{sub_id}")
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.get(ContactSubmission, sub_id).status == "read"

    # Reading is not managing.
    r = client.post(f"/admin/contact/{sub_id}", data={"csrf_token": CSRF, "status": "replied"})
    assert r.status_code == 403
    client.get("/auth/logout")

    _login(client)
    r = client.post(
        f"/admin/contact/{sub_id}",
        data={"csrf_token": CSRF, "status": "replied", "admin_notes": "Called back"},
        follow_redirects=True,
    )
    assert b"Submission updated." in r.data
    r = client.post(f"/admin/contact/{sub_id}", data={"csrf_token": CSRF, "status": "lost"}, follow_redirects=True)
    assert b"Invalid status" in r.data

    with session_scope(app) as s:
        sub = s.get(ContactSubmission, sub_id)
        assert sub.status == "replied"
        assert sub.admin_notes == "Called back"
        assert s.query(AuditEvent).filter(AuditEvent.action.in_(["contact.read", "contact.update"])).count() == 2


def test_detect_spam_rules():
    now = 1_000_000
    assert detect_spam(honeypot="x", timestamp_ms=0, message="hi", email="a@b.c", now_ms=now) == (True, "Honeypot filled")
    assert detect_spam(honeypot=None, timestamp_ms=now - 1000, message="hi", email="a@b.c", now_ms=now) == (
        True,
        "Form submitted too quickly",
    )
    # A missing timestamp counts as instant.
    assert detect_spam(honeypot=None, timestamp_ms=None, message="hi", email="a@b.c", now_ms=now)[0] is True
    assert detect_spam(honeypot=None, timestamp_ms=now - 5000, message="hi", email="casino@b.c", now_ms=now)[1] == "Contains spam keywords"
    assert detect_spam(
        honeypot=None, timestamp_ms=now - 5000, message="http://a http://b http://c", email="a@b.c", now_ms=now
    ) == (True, "Too many links")
    assert detect_spam(honeypot=None, timestamp_ms=now - 5000, message="http://a http://b", email="a@b.c", now_ms=now) == (
        False,
        None,
    )


def test_client_ip_precedence():
    headers = {"CF-Connecting-IP": "1.1.1.1", "X-Real-IP": "2.2.2.2", "X-Forwarded-For": "3.3.3.3"}
    assert client_ip(headers) == "1.1.1.1"
    assert client_ip({"X-Real-IP": "2.2.2.2", "X-Forwarded-For": "3.3.3.3"}) == "2.2.2.2"
    assert client_ip({"X-Forwarded-For": " 3.3.3.3 , 4.4.4.4"}) == "3.3.3.3"
    assert client_ip({}, "127.0.0.1") == "127.0.0.1"
    assert client_ip({}) == "unknown"


def test_verifier_fails_closed_without_secret():
    assert HCaptchaVerifier(secret_key="").verify("token") == (False, "hCaptcha configuration error")
    assert HCaptchaVerifier(secret_key="s").verify("") == (False, "Captcha token missing")
