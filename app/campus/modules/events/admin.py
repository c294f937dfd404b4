from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.models import User
from app.campus.modules.enrollment.service import (
    ATTENDANCE_STATUSES,
    EnrollmentError,
    bulk_update_attendance,
    event_attendance_stats,
    event_attendees,
    update_attendance_status,
)
from app.campus.modules.events.models import Event, EventSection
from app.campus.modules.events.service import (
    VALID_EVENT_TYPES,
    VALID_SESSION_TYPES,
    VALID_STATUSES,
    add_event_section,
    add_event_session,
    attendee_count,
    create_event,
    event_outline,
    update_event,
    validate_event_payload,
)
from app.campus.rbac import require_permission

bp = Blueprint("events_admin", __name__)

_EVENT_FORM_FIELDS = (
    "title",
    "slug",
    "description",
    "organizer_name",
    "organizer_email",
    "organizer_linkedin",
    "organizer_image_url",
    "organizer_bio",
    "event_type",
    "category",
    "tags",
    "start_date",
    "end_date",
    "timezone",
    "duration_minutes",
    "location_name",
    "location_address",
    "meeting_url",
    "price",
    "max_attendees",
    "registration_deadline",
    "thumbnail_url",
    "banner_url",
    "status",
    "certificate_description",
    "certificate_template_id",
)
_EVENT_FLAGS = ("is_online", "is_paid", "is_registration_open", "is_featured", "is_active")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _event_payload() -> dict:
    payload = {k: request.form.get(k) for k in _EVENT_FORM_FIELDS}
    for flag in _EVENT_FLAGS:
        payload[flag] = request.form.get(flag) == "on"
    return payload


def _get_event(event_id: int) -> Event:
    event = db_session().get(Event, event_id)
    if not event:
        abort(404)
    return event


def _form_ctx() -> dict:
    return {"event_types": VALID_EVENT_TYPES, "statuses": VALID_STATUSES}


# ---------- List ----------
@bp.get("/events")
@require_permission("events.manage")
def events_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("status") or "").strip()
    q = s.query(Event)
    if search:
        like = f"%{search}%"
        q = q.filter((Event.title.ilike(like)) | (Event.organizer_name.ilike(like)) | (Event.slug.ilike(like)))
    if status_filter:
        q = q.filter(Event.status == status_filter)
    events = q.order_by(Event.start_date.desc(), Event.id.desc()).all()
    counts = {e.id: attendee_count(s, e.id) for e in events}
    return render_template(
        "admin/events/list.html",
        events=events,
        counts=counts,
        search=search,
        status_filter=status_filter,
        statuses=VALID_STATUSES,
    )


# ---------- New ----------
@bp.get("/events/new")
@require_permission("events.manage")
def event_new_get():
    return render_template("admin/events/form.html", event=None, **_form_ctx())


@bp.post("/events/new")
@require_permission("events.manage")
def event_new_post():
    s = db_session()
    payload = _event_payload()
    errors = validate_event_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("events_admin.event_new_get"))

    event = create_event(s, payload, _current_user())
    s.commit()
    flash("Event created.", "success")
    return redirect(url_for("events_admin.event_detail", event_id=event.id))


# ---------- Detail / edit ----------
@bp.get("/events/<int:event_id>")
@require_permission("events.manage")
def event_detail(event_id: int):
    from app.campus.modules.certificates.service import certificate_stats

    s = db_session()
    event = _get_event(event_id)
    return render_template(
        "admin/events/detail.html",
        event=event,
        sections=sorted(event.sections, key=lambda x: (x.order_index, x.id)),
        outline=event_outline(event),
        stats=event_attendance_stats(s, event),
        cert_stats=certificate_stats(s, "event", event.id),
        session_types=VALID_SESSION_TYPES,
    )


@bp.get("/events/<int:event_id>/edit")
@require_permission("events.manage")
def event_edit_get(event_id: int):
    return render_template("admin/events/form.html", event=_get_event(event_id), **_form_ctx())


@bp.post("/events/<int:event_id>/edit")
@require_permission("events.manage")
def event_edit_post(event_id: int):
    s = db_session()
    event = _get_event(event_id)
    payload = _event_payload()
    errors = validate_event_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("events_admin.event_edit_get", event_id=event_id))

    update_event(s, event, payload, _current_user(), reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    flash("Event updated.", "success")
    return redirect(url_for("events_admin.event_detail", event_id=event_id))


# ---------- Sections & sessions ----------
@bp.post("/events/<int:event_id>/sections")
@require_permission("events.manage")
def section_add(event_id: int):
    s = db_session()
    event = _get_event(event_id)
    try:
        add_event_section(s, event, request.form.to_dict(), _current_user())
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("events_admin.event_detail", event_id=event_id))
    s.commit()
    flash("Section added.", "success")
    return redirect(url_for("events_admin.event_detail", event_id=event_id))


@bp.post("/event-sections/<int:section_id>/sessions")
@require_permission("events.manage")
def session_add(section_id: int):
    s = db_session()
    section = s.get(EventSection, section_id)
    if not section:
        abort(404)
    try:
        add_event_session(s, section, request.form.to_dict(), _current_user())
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("events_admin.event_detail", event_id=section.event_id))
    s.commit()
    flash("Session added.", "success")
    return redirect(url_for("events_admin.event_detail", event_id=section.event_id))


# ---------- Attendance ----------
@bp.get("/events/<int:event_id>/attendance")
@require_permission("enrollments.manage")
def attendance(event_id: int):
    s = db_session()
    event = _get_event(event_id)
    return render_template(
        "admin/events/attendance.html",
        event=event,
        attendees=event_attendees(s, event),
        stats=event_attendance_stats(s, event),
        statuses=ATTENDANCE_STATUSES,
    )


@bp.post("/events/<int:event_id>/attendance/<int:user_id>")
@require_permission("enrollments.manage")
def attendance_update(event_id: int, user_id: int):
    s = db_session()
    event = _get_event(event_id)
    try:
        update_attendance_status(
            s,
            event,
            user_id,
            (request.form.get("status") or "").strip(),
            actor=_current_user(),
            notes=request.form.get("notes"),
        )
    except EnrollmentError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("events_admin.attendance", event_id=event_id))
    s.commit()
    flash("Attendance updated.", "success")
    return redirect(url_for("events_admin.attendance", event_id=event_id))


@bp.post("/events/<int:event_id>/attendance/bulk")
@require_permission("enrollments.manage")
def attendance_bulk(event_id: int):
    """Applies one status to every checked attendee."""
    s = db_session()
    event = _get_event(event_id)
    status = (request.form.get("status") or "").strip()
    user_ids = [int(x) for x in request.form.getlist("user_ids") if x.isdigit()]
    if not user_ids:
        flash("Select at least one attendee.", "warning")
        return redirect(url_for("events_admin.attendance", event_id=event_id))
    try:
        n = bulk_update_attendance(s, event, [{"user_id": uid, "status": status} for uid in user_ids], actor=_current_user())
    except EnrollmentError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("events_admin.attendance", event_id=event_id))
    s.commit()
    flash(f"Updated {n} attendee(s).", "success")
    return redirect(url_for("events_admin.attendance", event_id=event_id))
