from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.campus.audit import record_event
from app.campus.errors import DomainError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.campus.models import User
    from app.campus.modules.courses.models import Course
    from app.campus.modules.enrollment.models import CourseEnrollment, EventEnrollment
    from app.campus.modules.events.models import Event

logger = logging.getLogger(__name__)

ATTENDANCE_STATUSES = ("registered", "attended", "completed", "no_show")


class EnrollmentError(DomainError):
    """Enrollment refused; `code` is stable for API clients, the message is for humans."""


# ---------- Courses ----------
def get_course_enrollment(s: "Session", user_id: int, course_id: int) -> "CourseEnrollment | None":
    from app.campus.modules.enrollment.models import CourseEnrollment

    return (
        s.query(CourseEnrollment)
        .filter(CourseEnrollment.user_id == user_id, CourseEnrollment.course_id == course_id)
        .one_or_none()
    )


def is_enrolled_in_course(s: "Session", user_id: int, course_id: int) -> bool:
    e = get_course_enrollment(s, user_id, course_id)
    return bool(e and e.is_active)


def course_enrollment_status(s: "Session", user: "User", course: "Course") -> dict[str, Any]:
    e = get_course_enrollment(s, user.id, course.id)
    active = bool(e and e.is_active)
    return {
        "is_enrolled": active,
        "welcome_shown": bool(e.welcome_shown) if active else False,
        "enrollment_id": e.id if active else None,
    }


def course_enrolled_count(s: "Session", course_id: int) -> int:
    from app.campus.modules.enrollment.models import CourseEnrollment

    return (
        s.query(CourseEnrollment)
        .filter(CourseEnrollment.course_id == course_id, CourseEnrollment.is_active.is_(True))
        .count()
    )


def enroll_in_course(s: "Session", user: "User", course: "Course", now: datetime | None = None) -> tuple["CourseEnrollment", bool]:
    """
    Returns (enrollment, created). Enrolling twice is not an error: the existing
    active row comes back with created=False.
    """
    from app.campus.modules.courses.service import registration_state
    from app.campus.modules.enrollment.models import CourseEnrollment

    existing = get_course_enrollment(s, user.id, course.id)
    if existing and existing.is_active:
        return existing, False

    if not course.is_active:
        raise EnrollmentError("course_inactive", "Course not found or inactive.")

    state = registration_state(course, course_enrolled_count(s, course.id), now)
    if state == "closed":
        raise EnrollmentError("registration_closed", "Registration for this course is closed.")
    if state == "deadline_passed":
        raise EnrollmentError("deadline_passed", "The registration deadline has passed.")
    if state == "full":
        raise EnrollmentError("course_full", "This course is full.")

    if existing:
        existing.is_active = True
        existing.enrolled_at = datetime.utcnow()
        enrollment = existing
    else:
        enrollment = CourseEnrollment(
            user_id=user.id,
            course_id=course.id,
            enrolled_at=datetime.utcnow(),
            progress_percentage=0,
            is_active=True,
            welcome_shown=False,
        )
        s.add(enrollment)
    s.flush()
    record_event(
        s,
        actor=user,
        action="enrollment.course_enroll",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"enrollment_id": enrollment.id},
    )
    return enrollment, True


def unenroll_from_course(s: "Session", user: "User", course: "Course") -> bool:
    e = get_course_enrollment(s, user.id, course.id)
    if not e or not e.is_active:
        return False
    e.is_active = False
    record_event(s, actor=user, action="enrollment.course_unenroll", entity_type="Course", entity_id=str(course.id))
    return True


def mark_course_welcome_shown(s: "Session", user: "User", course: "Course") -> bool:
    e = get_course_enrollment(s, user.id, course.id)
    if not e or not e.is_active:
        return False
    e.welcome_shown = True
    return True


def update_course_progress(s: "Session", user_id: int, course_id: int, percentage: float) -> "CourseEnrollment | None":
    e = get_course_enrollment(s, user_id, course_id)
    if not e:
        return None
    e.progress_percentage = int(min(100, max(0, round(percentage))))
    return e


def user_course_enrollments(s: "Session", user: "User") -> list["CourseEnrollment"]:
    from app.campus.modules.enrollment.models import CourseEnrollment

    return (
        s.query(CourseEnrollment)
        .filter(CourseEnrollment.user_id == user.id, CourseEnrollment.is_active.is_(True))
        .order_by(CourseEnrollment.enrolled_at.desc())
        .all()
    )


# ---------- Events ----------
def get_event_enrollment(s: "Session", user_id: int, event_id: int) -> "EventEnrollment | None":
    from app.campus.modules.enrollment.models import EventEnrollment

    return (
        s.query(EventEnrollment)
        .filter(EventEnrollment.user_id == user_id, EventEnrollment.event_id == event_id)
        .one_or_none()
    )


def event_enrollment_status(s: "Session", user: "User", event: "Event") -> dict[str, Any]:
    e = get_event_enrollment(s, user.id, event.id)
    return {
        "is_enrolled": e is not None,
        "welcome_shown": bool(e.welcome_shown) if e else False,
        "attendance_status": e.attendance_status if e else None,
        "enrollment_id": e.id if e else None,
    }


def enroll_in_event(s: "Session", user: "User", event: "Event", now: datetime | None = None) -> tuple["EventEnrollment", bool]:
    from app.campus.modules.enrollment.models import EventEnrollment
    from app.campus.modules.events.service import attendee_count

    existing = get_event_enrollment(s, user.id, event.id)
    if existing:
        return existing, False

    now = now or datetime.utcnow()
    if not event.is_active:
        raise EnrollmentError("event_inactive", "Event not found or inactive.")
    if event.status in ("completed", "cancelled"):
        raise EnrollmentError("event_closed", f"This event is {event.status}.")
    if not event.is_registration_open:
        raise EnrollmentError("registration_closed", "Registration for this event is closed.")
    if event.registration_deadline and now > event.registration_deadline:
        raise EnrollmentError("deadline_passed", "The registration deadline has passed.")
    if event.max_attendees is not None and attendee_count(s, event.id) >= event.max_attendees:
        raise EnrollmentError("event_full", "This event is full.")

    enrollment = EventEnrollment(
        user_id=user.id,
        event_id=event.id,
        enrolled_at=now,
        attendance_status="registered",
        welcome_shown=False,
        updated_at=now,
    )
    s.add(enrollment)
    s.flush()
    record_event(
        s,
        actor=user,
        action="enrollment.event_enroll",
        entity_type="Event",
        entity_id=str(event.id),
        metadata={"enrollment_id": enrollment.id},
    )
    return enrollment, True


def unenroll_from_event(s: "Session", user: "User", event: "Event") -> bool:
    e = get_event_enrollment(s, user.id, event.id)
    if not e:
        return False
    s.delete(e)
    record_event(s, actor=user, action="enrollment.event_unenroll", entity_type="Event", entity_id=str(event.id))
    return True


def mark_event_welcome_shown(s: "Session", user: "User", event: "Event") -> bool:
    e = get_event_enrollment(s, user.id, event.id)
    if not e:
        return False
    e.welcome_shown = True
    return True


def update_attendance_status(
    s: "Session",
    event: "Event",
    user_id: int,
    status: str,
    *,
    actor: "User",
    notes: str | None = None,
) -> "EventEnrollment":
    if status not in ATTENDANCE_STATUSES:
        raise EnrollmentError("invalid_status", f"Invalid attendance status. Must be one of: {', '.join(ATTENDANCE_STATUSES)}")
    e = get_event_enrollment(s, user_id, event.id)
    if not e:
        raise EnrollmentError("not_enrolled", "User is not enrolled in this event.")
    old = e.attendance_status
    e.attendance_status = status
    if notes is not None:
        e.notes = notes.strip() or None
    e.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="enrollment.attendance_update",
        entity_type="EventEnrollment",
        entity_id=str(e.id),
        metadata={"event_id": event.id, "user_id": user_id, "old": old, "new": status},
    )
    return e


def bulk_update_attendance(s: "Session", event: "Event", updates: list[dict[str, Any]], *, actor: "User") -> int:
    """updates: [{"user_id": int, "status": str, "notes"?: str}]. Returns rows updated."""
    count = 0
    for u in updates:
        update_attendance_status(s, event, int(u["user_id"]), u["status"], actor=actor, notes=u.get("notes"))
        count += 1
    return count


def event_attendance_stats(s: "Session", event: "Event") -> dict[str, Any]:
    from app.campus.modules.enrollment.models import EventEnrollment

    rows = s.query(EventEnrollment.attendance_status).filter(EventEnrollment.event_id == event.id).all()
    total = len(rows)
    counts = {k: 0 for k in ATTENDANCE_STATUSES}
    for (status,) in rows:
        counts[status] = counts.get(status, 0) + 1
    present = counts["attended"] + counts["completed"]
    rate = round(present / total * 100, 2) if total else 0.0
    return {
        "total": total,
        "registered": counts["registered"],
        "attended": present,
        "completed": counts["completed"],
        "no_show": counts["no_show"],
        "attendance_rate": rate,
    }


def event_attendees(s: "Session", event: "Event") -> list["EventEnrollment"]:
    from app.campus.modules.enrollment.models import EventEnrollment

    return (
        s.query(EventEnrollment)
        .filter(EventEnrollment.event_id == event.id)
        .order_by(EventEnrollment.enrolled_at.asc())
        .all()
    )


def user_event_enrollments(s: "Session", user: "User", when: str | None = None, now: datetime | None = None) -> list["EventEnrollment"]:
    from app.campus.modules.enrollment.models import EventEnrollment
    from app.campus.modules.events.models import Event

    now = now or datetime.utcnow()
    q = s.query(EventEnrollment).join(Event, EventEnrollment.event_id == Event.id).filter(EventEnrollment.user_id == user.id)
    if when == "upcoming":
        q = q.filter(Event.start_date >= now).order_by(Event.start_date.asc())
    elif when == "past":
        q = q.filter(Event.start_date < now).order_by(Event.start_date.desc())
    else:
        q = q.order_by(EventEnrollment.enrolled_at.desc())
    return q.all()


def send_event_enrollment_email(user: "User", event: "Event") -> bool:
    """Confirmation email; a failure is logged and reported, never raised."""
    from flask import current_app, url_for

    from app.campus.mailer import render_email, send_email
    from app.campus.modules.events.service import format_duration

    locale = user.locale or current_app.config.get("DEFAULT_LOCALE") or "tr"
    text, html = render_email(
        "event_enrollment",
        user=user,
        event=event,
        locale=locale,
        duration=format_duration(event.duration_minutes, locale),
        event_url=url_for("events.event_detail", slug=event.slug, _external=True),
    )
    subject = f"Registration confirmed: {event.title}" if locale == "en" else f"Kaydınız alındı: {event.title}"
    ok, msg = send_email(user.email, subject, text, html=html)
    if not ok:
        logger.warning("Event enrollment email failed user_id=%s event_id=%s: %s", user.id, event.id, msg)
    return ok
