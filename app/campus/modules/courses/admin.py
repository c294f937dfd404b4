from __future__ import annotations

import json

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.models import User
from app.campus.modules.courses.models import Course, CourseSection, Lesson
from app.campus.modules.courses.service import (
    VALID_COURSE_TYPES,
    VALID_LESSON_TYPES,
    VALID_LEVELS,
    VALID_QUICK_TYPES,
    add_lesson,
    add_note,
    add_quiz,
    add_section,
    add_video,
    course_outline,
    create_course,
    deactivate_course,
    lesson_content,
    update_course,
    validate_course_payload,
)
from app.campus.rbac import require_permission

bp = Blueprint("courses_admin", __name__)

_COURSE_FORM_FIELDS = (
    "title",
    "slug",
    "description",
    "level",
    "duration",
    "instructor_name",
    "instructor_description",
    "instructor_email",
    "instructor_linkedin",
    "instructor_image_url",
    "price",
    "original_price",
    "early_bird_price",
    "early_bird_deadline",
    "course_type",
    "live_start_date",
    "live_end_date",
    "live_timezone",
    "meeting_url",
    "max_participants",
    "registration_deadline",
    "prerequisites",
    "target_audience",
    "learning_outcomes",
    "thumbnail_url",
    "banner_url",
)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _course_payload() -> dict:
    payload = {k: request.form.get(k) for k in _COURSE_FORM_FIELDS}
    # unchecked checkboxes are absent from the form
    payload["is_registration_open"] = request.form.get("is_registration_open") == "on"
    payload["is_active"] = request.form.get("is_active") == "on"
    return payload


def _get_course(course_id: int) -> Course:
    course = db_session().get(Course, course_id)
    if not course:
        abort(404)
    return course


# ---------- List ----------
@bp.get("/courses")
@require_permission("courses.manage")
def courses_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    show = (request.args.get("show") or "active").strip()
    q = s.query(Course)
    if search:
        like = f"%{search}%"
        q = q.filter((Course.title.ilike(like)) | (Course.instructor_name.ilike(like)) | (Course.slug.ilike(like)))
    if show == "active":
        q = q.filter(Course.is_active.is_(True))
    elif show == "inactive":
        q = q.filter(Course.is_active.is_(False))
    courses = q.order_by(Course.created_at.desc(), Course.id.desc()).all()
    return render_template("admin/courses/list.html", courses=courses, search=search, show=show)


# ---------- New ----------
@bp.get("/courses/new")
@require_permission("courses.manage")
def course_new_get():
    return render_template(
        "admin/courses/form.html",
        course=None,
        levels=VALID_LEVELS,
        course_types=VALID_COURSE_TYPES,
    )


@bp.post("/courses/new")
@require_permission("courses.manage")
def course_new_post():
    s = db_session()
    u = _current_user()
    payload = _course_payload()
    errors = validate_course_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses_admin.course_new_get"))

    course = create_course(s, payload, u)
    s.commit()
    flash("Course created.", "success")
    return redirect(url_for("courses_admin.course_detail", course_id=course.id))


# ---------- Detail ----------
@bp.get("/courses/<int:course_id>")
@require_permission("courses.manage")
def course_detail(course_id: int):
    from app.campus.modules.certificates.service import certificate_stats
    from app.campus.modules.enrollment.service import course_enrolled_count

    s = db_session()
    course = _get_course(course_id)
    sections = sorted(course.sections, key=lambda x: (x.order_index, x.id))
    return render_template(
        "admin/courses/detail.html",
        course=course,
        sections=sections,
        outline=course_outline(course),
        enrolled=course_enrolled_count(s, course.id),
        cert_stats=certificate_stats(s, "course", course.id),
        lesson_types=VALID_LESSON_TYPES,
    )


# ---------- Edit ----------
@bp.get("/courses/<int:course_id>/edit")
@require_permission("courses.manage")
def course_edit_get(course_id: int):
    course = _get_course(course_id)
    return render_template(
        "admin/courses/form.html",
        course=course,
        levels=VALID_LEVELS,
        course_types=VALID_COURSE_TYPES,
    )


@bp.post("/courses/<int:course_id>/edit")
@require_permission("courses.manage")
def course_edit_post(course_id: int):
    s = db_session()
    u = _current_user()
    course = _get_course(course_id)
    payload = _course_payload()
    errors = validate_course_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses_admin.course_edit_get", course_id=course_id))

    update_course(s, course, payload, u, reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    flash("Course updated.", "success")
    return redirect(url_for("courses_admin.course_detail", course_id=course_id))


@bp.post("/courses/<int:course_id>/deactivate")
@require_permission("courses.manage")
def course_deactivate(course_id: int):
    s = db_session()
    course = _get_course(course_id)
    deactivate_course(s, course, _current_user(), reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    flash("Course deactivated.", "success")
    return redirect(url_for("courses_admin.courses_list"))


# ---------- Sections & lessons ----------
@bp.post("/courses/<int:course_id>/sections")
@require_permission("courses.manage")
def section_add(course_id: int):
    s = db_session()
    course = _get_course(course_id)
    try:
        add_section(s, course, request.form.to_dict(), _current_user())
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("courses_admin.course_detail", course_id=course_id))
    s.commit()
    flash("Section added.", "success")
    return redirect(url_for("courses_admin.course_detail", course_id=course_id))


@bp.post("/course-sections/<int:section_id>/lessons")
@require_permission("courses.manage")
def lesson_add(section_id: int):
    s = db_session()
    section = s.get(CourseSection, section_id)
    if not section:
        abort(404)
    try:
        lesson = add_lesson(s, section, request.form.to_dict(), _current_user())
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("courses_admin.course_detail", course_id=section.course_id))
    s.commit()
    flash("Lesson added.", "success")
    return redirect(url_for("courses_admin.lesson_detail", lesson_id=lesson.id))


@bp.get("/lessons/<int:lesson_id>")
@require_permission("courses.manage")
def lesson_detail(lesson_id: int):
    s = db_session()
    lesson = s.get(Lesson, lesson_id)
    if not lesson:
        abort(404)
    return render_template(
        "admin/courses/lesson.html",
        lesson=lesson,
        course=lesson.section.course,
        content=lesson_content(lesson),
        quick_types=VALID_QUICK_TYPES,
    )


@bp.post("/lessons/<int:lesson_id>/<kind>")
@require_permission("courses.manage")
def lesson_content_add(lesson_id: int, kind: str):
    s = db_session()
    u = _current_user()
    lesson = s.get(Lesson, lesson_id)
    if not lesson:
        abort(404)
    payload = request.form.to_dict()
    try:
        if kind == "videos":
            add_video(s, lesson, payload, u)
        elif kind == "notes":
            add_note(s, lesson, payload, u)
        elif kind == "quizzes":
            raw = (payload.get("config") or "").strip() or "{}"
            try:
                payload["config"] = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValueError(f"Quiz config JSON is invalid: {e}") from e
            add_quiz(s, lesson, payload, u)
        else:
            abort(404)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("courses_admin.lesson_detail", lesson_id=lesson_id))
    s.commit()
    flash("Content added.", "success")
    return redirect(url_for("courses_admin.lesson_detail", lesson_id=lesson_id))
