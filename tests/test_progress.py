"""Tests for lesson progress, quiz grading and course/event progress aggregates."""
from datetime import date, datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.campus import create_app
from app.campus.db import session_scope
from app.campus.models import Base, User
from app.campus.modules.courses.models import Course, CourseSection, Lesson, LessonQuiz, LessonVideo
from app.campus.modules.enrollment.models import CourseEnrollment, EventEnrollment
from app.campus.modules.events.models import Event, EventSection
from app.campus.modules.progress.models import LessonProgress
from app.campus.modules.progress.service import (
    course_analytics,
    grade_quiz,
    video_completion_reached,
)

CSRF = "test-token"
HEADERS = {"X-CSRF-Token": CSRF}

QUIZ_CONFIG = {
    "passing_score": 50,
    "questions": [
        {"id": "q1", "prompt": "2+2?", "options": ["3", "4"], "correct": 1},
        {"id": "q2", "prompt": "Capital of France?", "options": ["Paris", "Rome"], "correct": 0},
    ],
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        u = User(email="ada@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        outsider = User(email="bob@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        c = Course(slug="python-101", title="Python 101", course_type="online")
        s.add_all([u, outsider, c])
        s.flush()
        sec = CourseSection(course_id=c.id, title="Basics", order_index=0)
        s.add(sec)
        s.flush()
        video = Lesson(section_id=sec.id, title="Intro video", lesson_type="video", order_index=0)
        quiz = Lesson(section_id=sec.id, title="Quiz", lesson_type="quick", order_index=1)
        notes = Lesson(section_id=sec.id, title="Reading", lesson_type="notes", order_index=2)
        s.add_all([video, quiz, notes])
        s.flush()
        s.add(LessonVideo(lesson_id=video.id, title="Intro", vimeo_id="123", duration_seconds=100))
        s.add(LessonQuiz(lesson_id=quiz.id, title="Check", quick_type="quiz", config=QUIZ_CONFIG))
        s.add(CourseEnrollment(user_id=u.id, course_id=c.id, is_active=True))

        ev = Event(slug="summit", title="Summit", start_date=datetime.utcnow() + timedelta(days=1))
        s.add(ev)
        s.flush()
        s.add_all([EventSection(event_id=ev.id, title=f"Part {i}", order_index=i) for i in range(3)])
        s.add(EventEnrollment(user_id=u.id, event_id=ev.id))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="ada@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _lesson_id(app, title):
    with session_scope(app) as s:
        return s.query(Lesson.id).filter(Lesson.title == title).scalar()


def _enrollment_pct(app):
    with session_scope(app) as s:
        return s.query(CourseEnrollment.progress_percentage).scalar()


def test_video_position_completes_at_threshold(app, client):
    _login(client)
    lid = _lesson_id(app, "Intro video")

    r = client.post(f"/api/lessons/{lid}/position", json={"position": 30}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json["progress"]["last_position_seconds"] == 30
    assert r.json["progress"]["is_completed"] is False

    r = client.post(f"/api/lessons/{lid}/position", json={"position": 10, "watch_time": 5}, headers=HEADERS)
    # Watch time never goes backwards.
    assert r.json["progress"]["watch_time_seconds"] == 30

    r = client.post(f"/api/lessons/{lid}/position", json={"position": 95}, headers=HEADERS)
    assert r.json["progress"]["is_completed"] is True
    assert r.json["progress"]["video_watch_count"] == 1
    assert _enrollment_pct(app) == 33


def test_position_requires_number(app, client):
    _login(client)
    lid = _lesson_id(app, "Intro video")
    assert client.post(f"/api/lessons/{lid}/position", json={}, headers=HEADERS).status_code == 400
    assert client.post(f"/api/lessons/{lid}/position", json={"position": "abc"}, headers=HEADERS).status_code == 400


def test_non_finite_numbers_are_rejected(app, client):
    _login(client)
    lid = _lesson_id(app, "Intro video")
    for value in ("nan", "inf", "-Infinity"):
        r = client.post(f"/api/lessons/{lid}/position", json={"position": value}, headers=HEADERS)
        assert r.status_code == 400
        assert r.json["error"] == "position must be a number."

    r = client.post(f"/api/lessons/{lid}/complete", json={"watch_time": "inf"}, headers=HEADERS)
    assert r.status_code == 400
    assert r.json["error"] == "watch_time must be a number."
    with session_scope(app) as s:
        assert s.query(LessonProgress).count() == 0


def test_lessons_in_inactive_sections_are_hidden(app, client):
    _login(client)
    lid = _lesson_id(app, "Intro video")
    with session_scope(app) as s:
        s.query(CourseSection).update({CourseSection.is_active: False})

    assert client.post(f"/api/lessons/{lid}/position", json={"position": 30}, headers=HEADERS).status_code == 404
    assert client.post(f"/api/lessons/{lid}/complete", json={}, headers=HEADERS).status_code == 404
    with session_scope(app) as s:
        assert s.query(LessonProgress).count() == 0


def test_progress_requires_enrollment(app, client):
    _login(client, "bob@example.com")
    lid = _lesson_id(app, "Intro video")
    r = client.post(f"/api/lessons/{lid}/complete", json={}, headers=HEADERS)
    assert r.status_code == 403
    assert r.json["code"] == "not_enrolled"


def test_complete_notes_and_progress_summary(app, client):
    _login(client)
    reading = _lesson_id(app, "Reading")

    r = client.post(f"/api/lessons/{reading}/notes", json={"notes": "  remember this  "}, headers=HEADERS)
    assert r.json["progress"]["notes"] == "remember this"
    assert r.json["progress"]["is_completed"] is False

    r = client.post(f"/api/lessons/{reading}/notes/read", json={}, headers=HEADERS)
    assert r.json["progress"]["is_completed"] is True
    completed_at = r.json["progress"]["completed_at"]

    # A second completion keeps the first timestamp.
    r = client.post(f"/api/lessons/{reading}/complete", json={"watch_time": 12}, headers=HEADERS)
    assert r.json["progress"]["completed_at"] == completed_at
    assert r.json["progress"]["watch_time_seconds"] == 12

    with session_scope(app) as s:
        course_id = s.query(Course.id).scalar()
    r = client.get(f"/api/courses/{course_id}/progress")
    assert [row["lesson_title"] for row in r.json["lessons"]] == ["Intro video", "Quiz", "Reading"]
    assert r.json["stats"]["completed_lessons"] == 1
    assert r.json["stats"]["completion_percentage"] == 33


def test_quiz_submit_is_graded_server_side(app, client):
    _login(client)
    with session_scope(app) as s:
        quiz_id = s.query(LessonQuiz.id).scalar()

    r = client.post(f"/api/quizzes/{quiz_id}/submit", json={"answers": {"q1": 0, "q2": 1}}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json["score"] == 0
    assert r.json["passed"] is False
    assert r.json["attempts"] == 1

    r = client.post(f"/api/quizzes/{quiz_id}/submit", json={"answers": {"q1": 1, "q2": 0}}, headers=HEADERS)
    assert r.json["score"] == 100
    assert r.json["passed"] is True
    assert r.json["is_new_best_score"] is True
    assert r.json["attempts"] == 2

    # A lower failing attempt keeps the best score but un-completes the lesson.
    r = client.post(f"/api/quizzes/{quiz_id}/submit", json={"answers": {}}, headers=HEADERS)
    assert r.json["was_completed_before"] is True
    with session_scope(app) as s:
        p = s.query(LessonProgress).one()
        assert p.quiz_score == 100
        assert p.quiz_attempts == 3
        assert p.is_completed is False

    r = client.post(f"/api/quizzes/{quiz_id}/submit", json={"answers": ["q1"]}, headers=HEADERS)
    assert r.status_code == 400


def test_lower_passing_quiz_score_replaces_stored_score(app, client):
    _login(client)
    with session_scope(app) as s:
        quiz_id = s.query(LessonQuiz.id).scalar()

    r = client.post(f"/api/quizzes/{quiz_id}/submit", json={"answers": {"q1": 1, "q2": 0}}, headers=HEADERS)
    assert r.json["score"] == 100
    assert r.json["is_new_best_score"] is True

    r = client.post(f"/api/quizzes/{quiz_id}/submit", json={"answers": {"q1": 1}}, headers=HEADERS)
    assert r.json["score"] == 50
    assert r.json["passed"] is True
    assert r.json["is_new_best_score"] is False
    with session_scope(app) as s:
        p = s.query(LessonProgress).one()
        assert p.quiz_score == 50
        assert p.quiz_attempts == 2
        assert p.is_completed is True


def test_watch_page_renders_player(app, client):
    _login(client)
    r = client.get("/watch/course/python-101")
    assert r.status_code == 200
    assert b"Intro video" in r.data

    r = client.get(f"/watch/course/python-101?lesson={_lesson_id(app, 'Quiz')}")
    assert b"Capital of France?" in r.data
    # Answer keys never reach the page.
    assert b"correct" not in r.data


def test_event_section_progress(app, client):
    _login(client)
    with session_scope(app) as s:
        section_ids = [x for (x,) in s.query(EventSection.id).order_by(EventSection.order_index)]
        event_id = s.query(Event.id).scalar()

    r = client.post(f"/api/event-sections/{section_ids[0]}/complete", json={}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json["completed_sections"] == 1
    assert r.json["completion_percentage"] == 33

    # Completing twice changes nothing.
    client.post(f"/api/event-sections/{section_ids[0]}/complete", json={}, headers=HEADERS)
    r = client.get(f"/api/events/{event_id}/progress")
    assert r.json["completed_section_ids"] == [section_ids[0]]


def test_grade_quiz():
    assert grade_quiz(QUIZ_CONFIG, {"q1": "1", "q2": 0}) == 100
    assert grade_quiz(QUIZ_CONFIG, {"q1": 1}) == 50
    assert grade_quiz(QUIZ_CONFIG, {"q1": "x"}) == 0
    assert grade_quiz({"questions": []}, {"q1": 1}) == 0
    unnamed = {"questions": [{"prompt": "A", "options": ["x", "y"], "correct": 1}]}
    assert grade_quiz(unnamed, {"q1": 1}) == 100


def test_video_completion_threshold():
    assert video_completion_reached(90, 100) is True
    assert video_completion_reached(89, 100) is False
    assert video_completion_reached(500, None) is False
    assert video_completion_reached(1, 0) is False


def test_course_analytics_groups_by_day(app):
    today = date(2025, 6, 10)
    with session_scope(app) as s:
        user = s.query(User).filter(User.email == "ada@example.com").one()
        course = s.query(Course).one()
        lessons = s.query(Lesson).order_by(Lesson.order_index).all()
        s.add(
            LessonProgress(
                user_id=user.id,
                lesson_id=lessons[0].id,
                is_completed=True,
                completed_at=datetime(2025, 6, 10, 9, 0),
                watch_time_seconds=600,
                updated_at=datetime(2025, 6, 10, 9, 0),
                created_at=datetime(2025, 6, 10, 8, 0),
            )
        )
        s.add(
            LessonProgress(
                user_id=user.id,
                lesson_id=lessons[1].id,
                quiz_score=80,
                quiz_attempts=1,
                last_quiz_attempt_at=datetime(2025, 6, 8, 12, 0),
                updated_at=datetime(2025, 6, 8, 12, 0),
                created_at=datetime(2025, 6, 8, 12, 0),
            )
        )
        s.flush()

        rows = course_analytics(s, user, course, days=7, today=today)
        assert [r["date"] for r in rows] == ["2025-06-10", "2025-06-08"]
        assert rows[0]["watch_time_minutes"] == 10
        assert rows[0]["lessons_completed"] == 1
        assert rows[1]["quizzes_attempted"] == 1
        assert rows[1]["quizzes_passed"] == 1
        assert rows[1]["avg_quiz_score"] == 80
