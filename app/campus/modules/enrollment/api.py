from __future__ import annotations

from flask import Blueprint, abort, g, request

from app.campus.db import db_session
from app.campus.modules.enrollment.service import (
    course_enrollment_status,
    enroll_in_course,
    enroll_in_event,
    event_enrollment_status,
    mark_course_welcome_shown,
    mark_event_welcome_shown,
    send_event_enrollment_email,
    unenroll_from_course,
    unenroll_from_event,
    user_course_enrollments,
    user_event_enrollments,
)
from app.campus.rbac import login_required
from app.campus.web import json_ok

bp = Blueprint("enrollment_api", __name__)


def _course(course_id: int):
    from app.campus.modules.courses.models import Course

    course = db_session().get(Course, course_id)
    if not course:
        abort(404)
    return course


def _event(event_id: int):
    from app.campus.modules.events.models import Event

    event = db_session().get(Event, event_id)
    if not event:
        abort(404)
    return event


# ---------- Courses ----------
@bp.get("/courses/<int:course_id>/enrollment")
@login_required
def course_status(course_id: int):
    return json_ok(**course_enrollment_status(db_session(), g.current_user, _course(course_id)))


@bp.post("/courses/<int:course_id>/enroll")
@login_required
def course_enroll(course_id: int):
    s = db_session()
    enrollment, created = enroll_in_course(s, g.current_user, _course(course_id))
    s.commit()
    return json_ok(enrollment_id=enrollment.id, created=created), 201 if created else 200


@bp.post("/courses/<int:course_id>/unenroll")
@login_required
def course_unenroll(course_id: int):
    s = db_session()
    if not unenroll_from_course(s, g.current_user, _course(course_id)):
        return {"success": False, "error": "You are not enrolled in this course.", "code": "not_enrolled"}, 404
    s.commit()
    return json_ok()


@bp.post("/courses/<int:course_id>/welcome")
@login_required
def course_welcome(course_id: int):
    s = db_session()
    if not mark_course_welcome_shown(s, g.current_user, _course(course_id)):
        return {"success": False, "error": "You are not enrolled in this course.", "code": "not_enrolled"}, 404
    s.commit()
    return json_ok()


# ---------- Events ----------
@bp.get("/events/<int:event_id>/enrollment")
@login_required
def event_status(event_id: int):
    return json_ok(**event_enrollment_status(db_session(), g.current_user, _event(event_id)))


@bp.post("/events/<int:event_id>/enroll")
@login_required
def event_enroll(event_id: int):
    s = db_session()
    event = _event(event_id)
    enrollment, created = enroll_in_event(s, g.current_user, event)
    s.commit()
    email_sent = send_event_enrollment_email(g.current_user, event) if created else False
    return json_ok(enrollment_id=enrollment.id, created=created, email_sent=email_sent), 201 if created else 200


@bp.post("/events/<int:event_id>/unenroll")
@login_required
def event_unenroll(event_id: int):
    s = db_session()
    if not unenroll_from_event(s, g.current_user, _event(event_id)):
        return {"success": False, "error": "You are not registered for this event.", "code": "not_enrolled"}, 404
    s.commit()
    return json_ok()


@bp.post("/events/<int:event_id>/welcome")
@login_required
def event_welcome(event_id: int):
    s = db_session()
    if not mark_event_welcome_shown(s, g.current_user, _event(event_id)):
        return {"success": False, "error": "You are not registered for this event.", "code": "not_enrolled"}, 404
    s.commit()
    return json_ok()


# ---------- Mine ----------
@bp.get("/me/enrollments")
@login_required
def my_enrollments():
    s = db_session()
    user = g.current_user
    when = (request.args.get("when") or "").strip() or None
    courses = [
        {
            "course_id": e.course_id,
            "slug": e.course.slug,
            "title": e.course.title,
            "progress_percentage": e.progress_percentage,
            "enrolled_at": e.enrolled_at.isoformat(),
        }
        for e in user_course_enrollments(s, user)
    ]
    events = [
        {
            "event_id": e.event_id,
            "slug": e.event.slug,
            "title": e.event.title,
            "start_date": e.event.start_date.isoformat(),
            "attendance_status": e.attendance_status,
        }
        for e in user_event_enrollments(s, user, when if when in ("upcoming", "past") else None)
    ]
    return json_ok(courses=courses, events=events)
