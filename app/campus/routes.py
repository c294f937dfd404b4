from datetime import datetime

from flask import Blueprint, g, render_template

from app.campus.db import db_session
from app.campus.rbac import login_required

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    from app.campus.modules.courses.service import list_courses
    from app.campus.modules.events.service import list_events

    s = db_session()
    now = datetime.utcnow()
    courses = list_courses(s)[:6]
    events = [e for e in list_events(s, featured=True) if e.start_date >= now][:3]
    return render_template("public/index.html", courses=courses, events=events, now=now)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Liveness probe: no DB access."""
    return "ok", 200


@bp.get("/dashboard")
@login_required
def dashboard():
    from app.campus.modules.certificates.service import user_certificates
    from app.campus.modules.enrollment.service import user_course_enrollments, user_event_enrollments

    s = db_session()
    user = g.current_user
    return render_template(
        "public/dashboard.html",
        course_enrollments=user_course_enrollments(s, user),
        upcoming_events=user_event_enrollments(s, user, "upcoming"),
        past_events=user_event_enrollments(s, user, "past"),
        certificates=user_certificates(s, user),
    )
