from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.modules.courses.service import (
    VALID_COURSE_TYPES,
    VALID_LEVELS,
    active_price,
    course_outline,
    early_bird_time_remaining,
    get_course_by_slug,
    is_early_bird_active,
    lesson_content,
    list_courses,
    public_quiz_config,
    registration_state,
)
from app.campus.rbac import login_required

bp = Blueprint("courses", __name__)


@bp.get("/courses")
def courses_list():
    s = db_session()
    course_type = (request.args.get("type") or "").strip()
    level = (request.args.get("level") or "").strip()
    q = (request.args.get("q") or "").strip()
    courses = list_courses(
        s,
        course_type=course_type if course_type in VALID_COURSE_TYPES else None,
        level=level if level in VALID_LEVELS else None,
        q=q or None,
    )
    now = datetime.utcnow()
    return render_template(
        "courses/list.html",
        courses=courses,
        prices={c.id: active_price(c, now) for c in courses},
        course_type=course_type,
        level=level,
        q=q,
        course_types=VALID_COURSE_TYPES,
        levels=VALID_LEVELS,
    )


@bp.get("/courses/<slug>")
def course_detail(slug: str):
    from app.campus.modules.enrollment.service import course_enrolled_count, course_enrollment_status

    s = db_session()
    course = get_course_by_slug(s, slug)
    if not course:
        abort(404)
    now = datetime.utcnow()
    user = getattr(g, "current_user", None)
    status = course_enrollment_status(s, user, course) if user else {"is_enrolled": False}
    return render_template(
        "courses/detail.html",
        course=course,
        outline=course_outline(course),
        price=active_price(course, now),
        early_bird=is_early_bird_active(course, now),
        early_bird_remaining=early_bird_time_remaining(course, now),
        registration=registration_state(course, course_enrolled_count(s, course.id), now),
        enrollment=status,
    )


@bp.post("/courses/<slug>/enroll")
@login_required
def course_enroll(slug: str):
    from app.campus.modules.enrollment.service import enroll_in_course

    s = db_session()
    course = get_course_by_slug(s, slug)
    if not course:
        abort(404)
    _, created = enroll_in_course(s, g.current_user, course)
    s.commit()
    if created:
        flash(f"You are enrolled in {course.title}.", "success")
    return redirect(url_for("courses.course_watch", slug=course.slug))


@bp.get("/watch/course/<slug>")
@login_required
def course_watch(slug: str):
    """Lesson player shell. The page posts progress to the JSON API."""
    from app.campus.modules.enrollment.service import course_enrollment_status
    from app.campus.modules.progress.service import course_completion_stats, course_progress

    s = db_session()
    course = get_course_by_slug(s, slug)
    if not course:
        abort(404)
    user = g.current_user
    status = course_enrollment_status(s, user, course)
    if not status["is_enrolled"]:
        flash("Enroll in this course to start watching.", "warning")
        return redirect(url_for("courses.course_detail", slug=course.slug))

    outline = course_outline(course)
    lessons = [lesson for sec in outline for lesson in sec["lessons"]]
    lesson_id = request.args.get("lesson", type=int)
    current = next((x for x in lessons if x.id == lesson_id), lessons[0] if lessons else None)
    content = lesson_content(current) if current else {"videos": [], "notes": [], "quicks": []}
    quizzes = [{"quiz": qz, "config": public_quiz_config(qz.config)} for qz in content["quicks"]]
    progress = {row["lesson_id"]: row for row in course_progress(s, user, course)}
    return render_template(
        "courses/watch.html",
        course=course,
        outline=outline,
        lesson=current,
        content=content,
        quizzes=quizzes,
        progress=progress,
        stats=course_completion_stats(s, user, course),
        enrollment=status,
    )
