"""Tests for the course catalog, admin course authoring and pricing rules."""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.campus import create_app
from app.campus.db import session_scope
from app.campus.models import AuditEvent, Base, Permission, Role, User
from app.campus.modules.courses.models import Course, CourseSection, Lesson, LessonQuiz
from app.campus.modules.courses.service import (
    active_price,
    course_outline,
    early_bird_time_remaining,
    public_quiz_config,
    registration_state,
    validate_course_payload,
    validate_quiz_config,
)

CSRF = "test-token"


def _seed_all_permissions(s):
    perm_keys = [
        ("admin.view", "Admin: view dashboard"),
        ("courses.manage", "Courses: manage"),
    ]
    perms = []
    for key, name in perm_keys:
        p = Permission(key=key, name=name)
        s.add(p)
        perms.append(p)
    return perms


def _seed_course(s, **overrides):
    values = dict(slug="python-101", title="Python 101", description="Learn Python", price=Decimal("100.00"), course_type="online")
    values.update(overrides)
    c = Course(**values)
    s.add(c)
    s.flush()
    sec = CourseSection(course_id=c.id, title="Basics", order_index=0)
    s.add(sec)
    s.flush()
    s.add_all(
        [
            Lesson(section_id=sec.id, title="Second", lesson_type="video", order_index=1),
            Lesson(section_id=sec.id, title="First", lesson_type="notes", order_index=0),
            Lesson(section_id=sec.id, title="Hidden", lesson_type="video", order_index=2, is_active=False),
        ]
    )
    return c


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        perms = _seed_all_permissions(s)
        r = Role(key="admin", name="Administrator")
        for p in perms:
            r.permissions.append(p)
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(r)
        s.add_all([r, u])
        _seed_course(s)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def test_catalog_lists_active_courses(client):
    r = client.get("/courses")
    assert r.status_code == 200
    assert b"Python 101" in r.data

    r = client.get("/api/courses?q=python")
    assert r.json["success"] is True
    assert [c["slug"] for c in r.json["courses"]] == ["python-101"]
    assert r.json["courses"][0]["active_price"] == 100.0


def test_course_detail_and_outline_api(client):
    r = client.get("/courses/python-101")
    assert r.status_code == 200
    assert b"Python 101" in r.data

    r = client.get("/api/courses/python-101")
    lessons = r.json["sections"][0]["lessons"]
    assert [l["title"] for l in lessons] == ["First", "Second"]


def test_unknown_course_is_404(client):
    assert client.get("/courses/nope").status_code == 404
    r = client.get("/api/courses/nope")
    assert r.status_code == 404
    assert r.json["success"] is False


def test_admin_course_create_flow(app, client):
    _login(client)
    r = client.get("/admin/courses/new")
    assert r.status_code == 200

    r = client.post(
        "/admin/courses/new",
        data={
            "csrf_token": CSRF,
            "title": "Veri Bilimi Giriş",
            "price": "250",
            "course_type": "live",
            "level": "Beginner",
            "max_participants": "20",
            "is_registration_open": "on",
            "is_active": "on",
        },
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Course created." in r.data

    with session_scope(app) as s:
        c = s.query(Course).filter(Course.slug == "veri-bilimi-giris").one()
        assert c.price == Decimal("250")
        assert c.max_participants == 20
        assert s.query(AuditEvent).filter(AuditEvent.action == "course.create").count() == 1


def test_admin_course_create_rejects_bad_payload(app, client):
    _login(client)
    r = client.post(
        "/admin/courses/new",
        data={"csrf_token": CSRF, "title": "", "price": "-5", "course_type": "weekly"},
        follow_redirects=True,
    )
    assert b"Title is required." in r.data
    with session_scope(app) as s:
        assert s.query(Course).count() == 1


def test_admin_curriculum_authoring(app, client):
    _login(client)
    with session_scope(app) as s:
        course_id = s.query(Course.id).filter(Course.slug == "python-101").scalar()

    r = client.post(f"/admin/courses/{course_id}/sections", data={"csrf_token": CSRF, "title": "Advanced"}, follow_redirects=True)
    assert b"Section added." in r.data
    with session_scope(app) as s:
        section = s.query(CourseSection).filter(CourseSection.title == "Advanced").one()
        assert section.order_index == 1
        section_id = section.id

    r = client.post(
        f"/admin/course-sections/{section_id}/lessons",
        data={"csrf_token": CSRF, "title": "Quiz time", "lesson_type": "quick"},
        follow_redirects=True,
    )
    assert b"Lesson added." in r.data
    with session_scope(app) as s:
        lesson_id = s.query(Lesson.id).filter(Lesson.title == "Quiz time").scalar()

    config = '{"passing_score": 60, "questions": [{"prompt": "2+2?", "options": ["3", "4"], "correct": 1}]}'
    r = client.post(
        f"/admin/lessons/{lesson_id}/quizzes",
        data={"csrf_token": CSRF, "title": "Warm-up", "quick_type": "quiz", "config": config},
        follow_redirects=True,
    )
    assert b"Content added." in r.data
    with session_scope(app) as s:
        quiz = s.query(LessonQuiz).filter(LessonQuiz.lesson_id == lesson_id).one()
        assert quiz.config["passing_score"] == 60
        assert quiz.config["questions"][0]["id"] == "q1"

    r = client.post(
        f"/admin/lessons/{lesson_id}/quizzes",
        data={"csrf_token": CSRF, "title": "Broken", "config": "{not json"},
        follow_redirects=True,
    )
    assert b"Quiz config JSON is invalid" in r.data


def test_admin_deactivate_hides_course(app, client):
    _login(client)
    with session_scope(app) as s:
        course_id = s.query(Course.id).filter(Course.slug == "python-101").scalar()
    r = client.post(f"/admin/courses/{course_id}/deactivate", data={"csrf_token": CSRF})
    assert r.status_code == 302
    assert client.get("/courses/python-101").status_code == 404


def test_course_outline_skips_inactive_lessons(app):
    with session_scope(app) as s:
        course = s.query(Course).filter(Course.slug == "python-101").one()
        outline = course_outline(course)
        assert [l.title for l in outline[0]["lessons"]] == ["First", "Second"]


def test_early_bird_pricing():
    now = datetime(2025, 1, 1, 12, 0)
    c = Course(
        slug="x",
        title="X",
        price=Decimal("200"),
        early_bird_price=Decimal("150"),
        early_bird_deadline=now + timedelta(days=2, hours=3, minutes=5),
    )
    assert active_price(c, now) == Decimal("150")
    assert early_bird_time_remaining(c, now) == (2, 3, 5)
    assert active_price(c, now + timedelta(days=3)) == Decimal("200")
    assert early_bird_time_remaining(c, now + timedelta(days=3)) is None


def test_registration_state():
    now = datetime(2025, 1, 1)
    live = Course(slug="l", title="L", course_type="live", is_active=True, is_registration_open=True, max_participants=2)
    assert registration_state(live, 1, now) == "open"
    assert registration_state(live, 2, now) == "full"
    live.registration_deadline = now - timedelta(days=1)
    assert registration_state(live, 0, now) == "deadline_passed"
    live.is_registration_open = False
    assert registration_state(live, 0, now) == "closed"

    online = Course(slug="o", title="O", course_type="online", is_active=True, is_registration_open=False, max_participants=1)
    assert registration_state(online, 10, now) == "open"


def test_course_payload_validation():
    assert validate_course_payload({"title": "Ok", "price": "10"}) == []
    errors = validate_course_payload({"title": "Ok", "level": "Guru", "max_participants": "0", "slug": "Bad Slug"})
    assert any("Invalid level" in e for e in errors)
    assert "Max participants must be at least 1." in errors
    assert any("Slug" in e for e in errors)


def test_quiz_config_validation_and_public_view():
    assert validate_quiz_config([]) == ["Quiz config must be a JSON object."]
    errors = validate_quiz_config({"passing_score": 120, "questions": [{"prompt": "Q", "options": ["a"], "correct": 0}]})
    assert len(errors) == 2

    cfg = public_quiz_config({"questions": [{"id": "q1", "prompt": "Q", "options": ["a", "b"], "correct": 1}]})
    assert cfg["passing_score"] == 70
    assert "correct" not in cfg["questions"][0]
