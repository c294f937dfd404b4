from datetime import date, datetime, time, timedelta

from flask import Blueprint, flash, g, render_template, request

from app.campus.db import db_session
from app.campus.models import AuditEvent, User
from app.campus.rbac import require_permission

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


@bp.get("/")
@require_permission("admin.view")
def index():
    from sqlalchemy import func

    from app.campus.modules.certificates.models import Certificate
    from app.campus.modules.contact.models import ContactSubmission
    from app.campus.modules.courses.models import Course
    from app.campus.modules.enrollment.models import CourseEnrollment, EventEnrollment
    from app.campus.modules.events.models import Event

    s = db_session()
    now = datetime.utcnow()
    counts = {
        "courses": s.query(func.count(Course.id)).filter(Course.is_active.is_(True)).scalar() or 0,
        "upcoming_events": s.query(func.count(Event.id)).filter(Event.is_active.is_(True), Event.start_date >= now).scalar() or 0,
        "users": s.query(func.count(User.id)).scalar() or 0,
        "course_enrollments": s.query(func.count(CourseEnrollment.id)).filter(CourseEnrollment.is_active.is_(True)).scalar() or 0,
        "event_enrollments": s.query(func.count(EventEnrollment.id)).scalar() or 0,
        "certificates": s.query(func.count(Certificate.id)).filter(Certificate.is_active.is_(True)).scalar() or 0,
        "new_messages": s.query(func.count(ContactSubmission.id)).filter(ContactSubmission.status == "new").scalar() or 0,
    }
    recent = s.query(AuditEvent).order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(10).all()
    return render_template("admin/index.html", counts=counts, recent=recent, user=getattr(g, "current_user", None))


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Last 200 audit events, filtered by action (contains), actor email (contains)
    and an inclusive YYYY-MM-DD date range.
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
