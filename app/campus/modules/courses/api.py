from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import Blueprint, abort, request

from app.campus.db import db_session
from app.campus.modules.courses.service import (
    active_price,
    course_outline,
    early_bird_time_remaining,
    get_course_by_slug,
    is_early_bird_active,
    lesson_content,
    list_courses,
    public_quiz_config,
)
from app.campus.rbac import login_required
from app.campus.utils import money
from app.campus.web import json_ok

bp = Blueprint("courses_api", __name__)


def course_to_dict(course, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    return {
        "id": course.id,
        "slug": course.slug,
        "title": course.title,
        "description": course.description,
        "level": course.level,
        "duration": course.duration,
        "course_type": course.course_type,
        "instructor_name": course.instructor_name,
        "price": money(course.price),
        "original_price": money(course.original_price),
        "active_price": money(active_price(course, now)),
        "is_early_bird": is_early_bird_active(course, now),
        "early_bird_remaining": early_bird_time_remaining(course, now),
        "live_start_date": course.live_start_date.isoformat() if course.live_start_date else None,
        "live_end_date": course.live_end_date.isoformat() if course.live_end_date else None,
        "thumbnail_url": course.thumbnail_url,
        "banner_url": course.banner_url,
    }


@bp.get("/courses")
def courses_index():
    s = db_session()
    courses = list_courses(
        s,
        course_type=(request.args.get("type") or "").strip() or None,
        level=(request.args.get("level") or "").strip() or None,
        q=(request.args.get("q") or "").strip() or None,
    )
    now = datetime.utcnow()
    return json_ok(courses=[course_to_dict(c, now) for c in courses])


@bp.get("/courses/<slug>")
def course_show(slug: str):
    s = db_session()
    course = get_course_by_slug(s, slug)
    if not course:
        abort(404)
    outline = [
        {
            "id": sec["section"].id,
            "title": sec["section"].title,
            "lessons": [
                {"id": l.id, "title": l.title, "lesson_type": l.lesson_type, "duration_minutes": l.duration_minutes}
                for l in sec["lessons"]
            ],
        }
        for sec in course_outline(course)
    ]
    return json_ok(course=course_to_dict(course), sections=outline)


@bp.get("/lessons/<int:lesson_id>/content")
@login_required
def lesson_content_show(lesson_id: int):
    from flask import g

    from app.campus.modules.courses.models import Lesson
    from app.campus.modules.enrollment.service import is_enrolled_in_course

    s = db_session()
    lesson = s.get(Lesson, lesson_id)
    if not lesson or not lesson.is_active:
        abort(404)
    if not is_enrolled_in_course(s, g.current_user.id, lesson.course_id):
        return {"success": False, "error": "You are not enrolled in this course.", "code": "not_enrolled"}, 403
    content = lesson_content(lesson)
    return json_ok(
        lesson={"id": lesson.id, "title": lesson.title, "lesson_type": lesson.lesson_type},
        videos=[
            {"id": v.id, "title": v.title, "vimeo_id": v.vimeo_id, "video_url": v.video_url, "duration_seconds": v.duration_seconds}
            for v in content["videos"]
        ],
        notes=[{"id": n.id, "title": n.title, "content": n.content} for n in content["notes"]],
        quicks=[
            {"id": q.id, "title": q.title, "description": q.description, "quick_type": q.quick_type, "config": public_quiz_config(q.config)}
            for q in content["quicks"]
        ],
    )
