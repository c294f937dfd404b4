from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.modules.events.service import (
    VALID_EVENT_TYPES,
    VALID_STATUSES,
    attendee_count,
    event_outline,
    format_duration,
    get_event_by_slug,
    list_events,
    live_status,
)
from app.campus.rbac import login_required
from app.campus.web import current_locale

bp = Blueprint("events", __name__)


@bp.get("/events")
def events_list():
    s = db_session()
    event_type = (request.args.get("type") or "").strip()
    status = (request.args.get("status") or "").strip()
    q = (request.args.get("q") or "").strip()
    events = list_events(
        s,
        event_type=event_type if event_type in VALID_EVENT_TYPES else None,
        status=status if status in VALID_STATUSES else None,
        q=q or None,
    )
    now = datetime.utcnow()
    return render_template(
        "events/list.html",
        upcoming=[e for e in events if e.start_date >= now],
        past=[e for e in reversed(events) if e.start_date < now],
        event_type=event_type,
        status=status,
        q=q,
        event_types=VALID_EVENT_TYPES,
        statuses=VALID_STATUSES,
    )


@bp.get("/events/<slug>")
def event_detail(slug: str):
    from app.campus.modules.enrollment.service import event_enrollment_status

    s = db_session()
    event = get_event_by_slug(s, slug)
    if not event:
        abort(404)
    user = getattr(g, "current_user", None)
    count = attendee_count(s, event.id)
    return render_template(
        "events/detail.html",
        event=event,
        outline=event_outline(event),
        attendees=count,
        spots_left=(event.max_attendees - count) if event.max_attendees is not None else None,
        duration=format_duration(event.duration_minutes, current_locale()),
        live=live_status(event.start_date, event.end_date),
        enrollment=event_enrollment_status(s, user, event) if user else {"is_enrolled": False},
    )


@bp.post("/events/<slug>/enroll")
@login_required
def event_enroll(slug: str):
    from app.campus.modules.enrollment.service import enroll_in_event, send_event_enrollment_email

    s = db_session()
    event = get_event_by_slug(s, slug)
    if not event:
        abort(404)
    _, created = enroll_in_event(s, g.current_user, event)
    s.commit()
    if created:
        send_event_enrollment_email(g.current_user, event)
        flash(f"You are registered for {event.title}.", "success")
    return redirect(url_for("events.event_detail", slug=event.slug))


@bp.post("/events/<slug>/unenroll")
@login_required
def event_unenroll(slug: str):
    from app.campus.modules.enrollment.service import unenroll_from_event

    s = db_session()
    event = get_event_by_slug(s, slug)
    if not event:
        abort(404)
    if unenroll_from_event(s, g.current_user, event):
        s.commit()
        flash("Your registration was cancelled.", "success")
    return redirect(url_for("events.event_detail", slug=event.slug))


@bp.get("/watch/event/<slug>")
@login_required
def event_watch(slug: str):
    from app.campus.modules.enrollment.service import event_enrollment_status
    from app.campus.modules.progress.service import event_progress

    s = db_session()
    event = get_event_by_slug(s, slug)
    if not event:
        abort(404)
    user = g.current_user
    status = event_enrollment_status(s, user, event)
    if not status["is_enrolled"]:
        flash("Register for this event to access its content.", "warning")
        return redirect(url_for("events.event_detail", slug=event.slug))
    return render_template(
        "events/watch.html",
        event=event,
        outline=event_outline(event),
        progress=event_progress(s, user, event),
        live=live_status(event.start_date, event.end_date),
        enrollment=status,
    )
