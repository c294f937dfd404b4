"""Tests for certificate eligibility, issuance, verification and admin exceptions."""
import re
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.campus import create_app
from app.campus.db import session_scope
from app.campus.models import Base, Permission, Role, User
from app.campus.modules.certificates.models import Certificate, CertificateException
from app.campus.modules.certificates.service import (
    CertificateError,
    check_event_eligibility,
    generate_certificate_number,
    issue_certificate,
)
from app.campus.modules.courses.models import Course, CourseSection, Lesson
from app.campus.modules.enrollment.models import CourseEnrollment, EventEnrollment
from app.campus.modules.events.models import Event, EventSection
from app.campus.modules.progress.models import EventSectionProgress, LessonProgress

CSRF = "test-token"
HEADERS = {"X-CSRF-Token": CSRF}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("SITE_URL", "https://campus.example")
    monkeypatch.setenv("SITE_NAME", "Campus Academy")
    monkeypatch.delenv("CERTIFICATE_BASE_URL", raising=False)
    monkeypatch.delenv("CERTIFICATE_PREFIX", raising=False)
    monkeypatch.delenv("SMTP_SERVER", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        p = Permission(key="certificates.manage", name="Certificates: manage")
        r = Role(key="admin", name="Administrator")
        r.permissions.append(p)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(r)
        ada = User(email="ada@example.com", full_name="Ada Lovelace", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([p, r, admin, ada])

        c = Course(slug="python-101", title="Python 101", instructor_name="Guido", duration="6 hafta", course_type="online")
        s.add(c)
        s.flush()
        sec = CourseSection(course_id=c.id, title="Basics", order_index=0)
        s.add(sec)
        s.flush()
        s.add_all([Lesson(section_id=sec.id, title=f"Lesson {i}", order_index=i) for i in range(2)])
        s.add(CourseEnrollment(user_id=ada.id, course_id=c.id, is_active=True))

        ev = Event(slug="summit", title="Summit", start_date=datetime.utcnow() - timedelta(days=1), duration_minutes=150)
        s.add(ev)
        s.flush()
        s.add_all([EventSection(event_id=ev.id, title=f"Part {i}", order_index=i) for i in range(4)])
        s.add(EventEnrollment(user_id=ada.id, event_id=ev.id))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="ada@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _complete_all_lessons(app):
    with session_scope(app) as s:
        ada = s.query(User).filter(User.email == "ada@example.com").one()
        for lesson in s.query(Lesson).all():
            s.add(LessonProgress(user_id=ada.id, lesson_id=lesson.id, is_completed=True, completed_at=datetime.utcnow()))


def _course_id(app):
    with session_scope(app) as s:
        return s.query(Course.id).scalar()


def test_course_not_eligible_until_lessons_completed(app, client):
    _login(client)
    cid = _course_id(app)

    r = client.get(f"/api/certificates/eligibility?item_type=course&item_id={cid}")
    assert r.json["is_eligible"] is False
    assert r.json["missing_requirements"] == ["2 of 2 lessons not completed."]

    r = client.post("/api/certificates/issue", json={"item_type": "course", "item_id": cid}, headers=HEADERS)
    assert r.status_code == 400
    assert r.json["code"] == "not_eligible"
    assert r.json["missing_requirements"] == ["2 of 2 lessons not completed."]


def test_issue_and_verify_course_certificate(app, client):
    _complete_all_lessons(app)
    _login(client)
    cid = _course_id(app)

    r = client.post("/api/certificates/issue", json={"item_type": "course", "item_id": cid}, headers=HEADERS)
    assert r.status_code == 201
    cert = r.json["certificate"]
    number = cert["certificate_number"]
    assert cert["recipient_name"] == "Ada Lovelace"
    assert cert["instructor_name"] == "Guido"
    assert cert["organization_name"] == "Campus Academy"
    assert cert["certificate_url"] == f"https://campus.example/certificates/{number}"
    assert r.json["email_sent"] is False

    # Issuing again returns the same certificate.
    r = client.post("/api/certificates/issue", json={"item_type": "course", "item_id": cid}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json["created"] is False
    assert r.json["certificate"]["certificate_number"] == number

    r = client.get("/api/certificates/mine")
    assert [c["certificate_number"] for c in r.json["certificates"]] == [number]

    r = client.get(f"/api/certificates/verify/{number.lower()}")
    assert r.json["valid"] is True

    r = client.get(f"/certificates/{number}")
    assert r.status_code == 200
    assert b"Valid certificate" in r.data

    r = client.get(f"/certificates?number={number.lower()}")
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/certificates/{number}")


def test_unknown_certificate(client):
    r = client.get("/certificates/CMP2025-000000-0000-AAA-BBBBB")
    assert r.status_code == 404
    assert b"was not found" in r.data

    r = client.get("/api/certificates/verify/NOPE")
    assert r.status_code == 404
    assert r.json["success"] is False


def test_eligibility_rejects_bad_item(client):
    _login(client)
    assert client.get("/api/certificates/eligibility?item_type=book&item_id=1").status_code == 400
    assert client.get("/api/certificates/eligibility?item_type=course&item_id=abc").status_code == 400
    assert client.get("/api/certificates/eligibility?item_type=course&item_id=999").status_code == 404


def test_event_eligibility_threshold(app):
    with session_scope(app) as s:
        ada = s.query(User).filter(User.email == "ada@example.com").one()
        event = s.query(Event).one()
        sections = sorted(event.sections, key=lambda x: x.order_index)
        for sec in sections[:2]:
            s.add(EventSectionProgress(user_id=ada.id, event_id=event.id, section_id=sec.id, is_completed=True))
        s.flush()
        check = check_event_eligibility(s, ada, event)
        assert check.completion_percentage == 50
        assert check.is_eligible is False

        s.add(EventSectionProgress(user_id=ada.id, event_id=event.id, section_id=sections[2].id, is_completed=True))
        s.flush()
        check = check_event_eligibility(s, ada, event)
        assert check.completion_percentage == 75
        assert check.is_eligible is True

        cert, created = issue_certificate(s, ada, "event", event, base_url="https://campus.example/certificates")
        assert created is True
        assert cert.title == "Etkinlik Başarı Sertifikası"
        assert cert.duration == "2 saat 30 dk"
        assert cert.template_id == "2"
        assert cert.item_id == event.id


def test_issue_refuses_ineligible_unless_forced(app):
    with session_scope(app) as s:
        ada = s.query(User).filter(User.email == "ada@example.com").one()
        course = s.query(Course).one()
        with pytest.raises(CertificateError) as exc:
            issue_certificate(s, ada, "course", course, base_url="https://x")
        assert exc.value.code == "not_eligible"

        cert, created = issue_certificate(s, ada, "course", course, base_url="https://x", force=True)
        assert created is True
        assert cert.metadata_json["forced"] is True


def test_admin_exception_makes_user_eligible(app, client):
    _login(client, "admin@example.com")
    cid = _course_id(app)

    r = client.post(
        "/admin/certificates/exceptions",
        data={"csrf_token": CSRF, "item_type": "course", "item_id": str(cid), "email": "ada@example.com", "reason": "Attended offline"},
        follow_redirects=True,
    )
    assert b"Exception granted to ada@example.com." in r.data
    with session_scope(app) as s:
        row = s.query(CertificateException).one()
        assert row.reason == "Attended offline"
        exception_id = row.id
    client.get("/auth/logout")

    _login(client)
    r = client.get(f"/api/certificates/eligibility?item_type=course&item_id={cid}")
    assert r.json["is_eligible"] is True
    assert r.json["has_exception"] is True
    client.get("/auth/logout")

    _login(client, "admin@example.com")
    r = client.post(f"/admin/certificates/exceptions/{exception_id}/revoke", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"Exception revoked." in r.data
    with session_scope(app) as s:
        assert s.query(CertificateException).one().is_active is False


def test_admin_manual_issue(app, client):
    _login(client, "admin@example.com")
    cid = _course_id(app)

    r = client.post(
        "/admin/certificates/issue",
        data={"csrf_token": CSRF, "item_type": "course", "item_id": str(cid), "email": "ada@example.com"},
        follow_redirects=True,
    )
    assert b"Certificate requirements are not met." in r.data

    r = client.post(
        "/admin/certificates/issue",
        data={"csrf_token": CSRF, "item_type": "course", "item_id": str(cid), "email": "ada@example.com", "force": "on"},
        follow_redirects=True,
    )
    assert b"issued." in r.data
    with session_scope(app) as s:
        assert s.query(Certificate).count() == 1

    r = client.post(
        "/admin/certificates/issue",
        data={"csrf_token": CSRF, "item_type": "course", "item_id": str(cid), "email": "nobody@example.com"},
        follow_redirects=True,
    )
    assert b"No user with email nobody@example.com." in r.data


def test_certificate_number_format():
    number = generate_certificate_number("CMP", 2025)
    assert re.fullmatch(r"CMP2025-\d{6}-\d{4}-[A-Z0-9]{3}-[A-Z0-9]{5}", number)
