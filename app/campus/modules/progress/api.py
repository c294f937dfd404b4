from __future__ import annotations

import math
from typing import Any

from flask import Blueprint, abort, g, request

from app.campus.db import db_session
from app.campus.modules.progress.service import (
    course_analytics,
    course_completion_stats,
    course_progress,
    event_progress,
    get_lesson_progress,
    grade_quiz,
    mark_event_section_completed,
    mark_lesson_completed,
    mark_notes_read,
    record_video_position,
    record_video_view,
    save_lesson_notes,
    save_quiz_result,
)
from app.campus.rbac import login_required
from app.campus.web import json_error, json_ok, request_payload

bp = Blueprint("progress_api", __name__)


def _lesson(lesson_id: int):
    from app.campus.modules.courses.models import Lesson

    lesson = db_session().get(Lesson, lesson_id)
    if not lesson or not lesson.is_active or not lesson.section.is_active:
        abort(404)
    return lesson


def _number(payload: dict, key: str) -> float | None:
    raw = payload.get(key)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        abort(400, description=f"{key} must be a number.")
    if not math.isfinite(value):
        abort(400, description=f"{key} must be a number.")
    return value


def progress_to_dict(p) -> dict[str, Any]:
    if p is None:
        return {
            "is_completed": False,
            "completed_at": None,
            "watch_time_seconds": 0,
            "last_position_seconds": 0,
            "video_watch_count": 0,
            "notes": None,
            "quiz_score": None,
            "quiz_attempts": 0,
        }
    return {
        "is_completed": p.is_completed,
        "completed_at": p.completed_at.isoformat() if p.completed_at else None,
        "watch_time_seconds": p.watch_time_seconds,
        "last_position_seconds": p.last_position_seconds,
        "video_watch_count": p.video_watch_count,
        "notes": p.notes,
        "quiz_score": p.quiz_score,
        "quiz_attempts": p.quiz_attempts,
    }


# ---------- Lessons ----------
@bp.get("/lessons/<int:lesson_id>/progress")
@login_required
def lesson_progress_show(lesson_id: int):
    lesson = _lesson(lesson_id)
    return json_ok(lesson_id=lesson.id, progress=progress_to_dict(get_lesson_progress(db_session(), g.current_user.id, lesson.id)))


@bp.post("/lessons/<int:lesson_id>/position")
@login_required
def lesson_position(lesson_id: int):
    s = db_session()
    payload = request_payload()
    position = _number(payload, "position")
    if position is None:
        return json_error("position is required.")
    p = record_video_position(s, g.current_user, _lesson(lesson_id), position, _number(payload, "watch_time"))
    s.commit()
    return json_ok(progress=progress_to_dict(p))


@bp.post("/lessons/<int:lesson_id>/view")
@login_required
def lesson_view(lesson_id: int):
    s = db_session()
    p = record_video_view(s, g.current_user, _lesson(lesson_id))
    s.commit()
    return json_ok(progress=progress_to_dict(p))


@bp.post("/lessons/<int:lesson_id>/complete")
@login_required
def lesson_complete(lesson_id: int):
    s = db_session()
    p = mark_lesson_completed(s, g.current_user, _lesson(lesson_id), _number(request_payload(), "watch_time"))
    s.commit()
    return json_ok(progress=progress_to_dict(p))


@bp.post("/lessons/<int:lesson_id>/notes")
@login_required
def lesson_notes(lesson_id: int):
    s = db_session()
    notes = request_payload().get("notes")
    if notes is not None and not isinstance(notes, str):
        return json_error("notes must be a string.")
    p = save_lesson_notes(s, g.current_user, _lesson(lesson_id), notes or "")
    s.commit()
    return json_ok(progress=progress_to_dict(p))


@bp.post("/lessons/<int:lesson_id>/notes/read")
@login_required
def lesson_notes_read(lesson_id: int):
    s = db_session()
    p = mark_notes_read(s, g.current_user, _lesson(lesson_id))
    s.commit()
    return json_ok(progress=progress_to_dict(p))


@bp.post("/quizzes/<int:quiz_id>/submit")
@login_required
def quiz_submit(quiz_id: int):
    """Grades the submitted answers ({question_id: option_index}) server-side."""
    from app.campus.modules.courses.models import LessonQuiz

    s = db_session()
    quiz = s.get(LessonQuiz, quiz_id)
    if not quiz or not quiz.lesson.is_active or not quiz.lesson.section.is_active:
        abort(404)
    answers = request_payload().get("answers") or {}
    if not isinstance(answers, dict):
        return json_error("answers must be an object keyed by question id.")
    result = save_quiz_result(s, g.current_user, quiz, grade_quiz(quiz.config, answers))
    s.commit()
    return json_ok(**result)


# ---------- Courses ----------
def _enrolled_course(course_id: int):
    from app.campus.modules.courses.models import Course
    from app.campus.modules.enrollment.service import is_enrolled_in_course

    s = db_session()
    course = s.get(Course, course_id)
    if not course:
        abort(404)
    if not is_enrolled_in_course(s, g.current_user.id, course.id):
        return course, json_error("You are not enrolled in this course.", 403, code="not_enrolled")
    return course, None


@bp.get("/courses/<int:course_id>/progress")
@login_required
def course_progress_show(course_id: int):
    course, err = _enrolled_course(course_id)
    if err:
        return err
    s = db_session()
    return json_ok(
        lessons=course_progress(s, g.current_user, course),
        stats=course_completion_stats(s, g.current_user, course),
    )


@bp.get("/courses/<int:course_id>/analytics")
@login_required
def course_analytics_show(course_id: int):
    course, err = _enrolled_course(course_id)
    if err:
        return err
    days = request.args.get("days", default=30, type=int)
    days = min(365, max(1, days))
    return json_ok(days=days, analytics=course_analytics(db_session(), g.current_user, course, days=days))


# ---------- Events ----------
@bp.post("/event-sections/<int:section_id>/complete")
@login_required
def event_section_complete(section_id: int):
    from app.campus.modules.events.models import EventSection

    s = db_session()
    section = s.get(EventSection, section_id)
    if not section or not section.is_active:
        abort(404)
    mark_event_section_completed(s, g.current_user, section)
    s.commit()
    return json_ok(**event_progress(s, g.current_user, section.event))


@bp.get("/events/<int:event_id>/progress")
@login_required
def event_progress_show(event_id: int):
    from app.campus.modules.events.models import Event

    s = db_session()
    event = s.get(Event, event_id)
    if not event:
        abort(404)
    return json_ok(**event_progress(s, g.current_user, event))
