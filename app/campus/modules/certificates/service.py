from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.campus.audit import record_event
from app.campus.errors import DomainError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.campus.models import User
    from app.campus.modules.certificates.models import Certificate, CertificateException
    from app.campus.modules.courses.models import Course
    from app.campus.modules.events.models import Event

logger = logging.getLogger(__name__)

ITEM_TYPES = ("course", "event")
EVENT_COMPLETION_THRESHOLD = 70
NUMBER_ATTEMPTS = 10

COURSE_DESCRIPTION = (
    "Eğitim videolarını tamamlayarak ve sınavdan geçerli notu alarak bu sertifikayı almaya hak kazanmıştır."
)
EVENT_DESCRIPTION = (
    "Etkinlik kapsamında yer alarak, alandaki yenilikçi yaklaşımlar hakkında bilgi edinmiş "
    "ve bu sertifikayı almaya hak kazanmıştır."
)
DEFAULT_TEMPLATE_ID = "2"

_ALNUM = string.ascii_uppercase + string.digits


class CertificateError(DomainError):
    def __init__(self, code: str, message: str, missing: list[str] | None = None):
        super().__init__(code, message)
        self.missing = missing or []

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["missing_requirements"] = list(self.missing)
        return d


@dataclass
class EligibilityCheck:
    is_eligible: bool
    total_units: int = 0
    completed_units: int = 0
    completion_percentage: int = 0
    total_quizzes: int = 0
    completed_quizzes: int = 0
    average_quiz_score: int = 0
    missing_requirements: list[str] = field(default_factory=list)
    has_exception: bool = False
    existing_certificate: "Certificate | None" = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_eligible": self.is_eligible,
            "total_units": self.total_units,
            "completed_units": self.completed_units,
            "completion_percentage": self.completion_percentage,
            "total_quizzes": self.total_quizzes,
            "completed_quizzes": self.completed_quizzes,
            "average_quiz_score": self.average_quiz_score,
            "missing_requirements": list(self.missing_requirements),
            "has_exception": self.has_exception,
            "certificate_number": self.existing_certificate.certificate_number if self.existing_certificate else None,
        }


def generate_certificate_number(prefix: str = "CMP", year: int | None = None) -> str:
    """`{PREFIX}{YEAR}-NNNNNN-NNNN-XXX-XXXXX` (digits, then upper-case alphanumerics)."""
    year = year or datetime.utcnow().year
    six = "".join(secrets.choice(string.digits) for _ in range(6))
    four = "".join(secrets.choice(string.digits) for _ in range(4))
    three = "".join(secrets.choice(_ALNUM) for _ in range(3))
    five = "".join(secrets.choice(_ALNUM) for _ in range(5))
    return f"{prefix}{year}-{six}-{four}-{three}-{five}"


def _unique_number(s: "Session", prefix: str) -> str:
    from app.campus.modules.certificates.models import Certificate

    for _ in range(NUMBER_ATTEMPTS):
        number = generate_certificate_number(prefix)
        if not s.query(Certificate.id).filter(Certificate.certificate_number == number).first():
            return number
    # Collision streak: a timestamp suffix makes the number unique.
    return f"{generate_certificate_number(prefix)}-{int(datetime.utcnow().timestamp())}"


# ---------- Lookups ----------
def existing_certificate(s: "Session", user_id: int, item_type: str, item_id: int) -> "Certificate | None":
    from app.campus.modules.certificates.models import Certificate

    q = s.query(Certificate).filter(
        Certificate.user_id == user_id,
        Certificate.item_type == item_type,
        Certificate.is_active.is_(True),
    )
    q = q.filter(Certificate.course_id == item_id) if item_type == "course" else q.filter(Certificate.event_id == item_id)
    return q.order_by(Certificate.issued_at.desc()).first()


def active_exception(s: "Session", user_id: int, item_type: str, item_id: int) -> "CertificateException | None":
    from app.campus.modules.certificates.models import CertificateException

    return (
        s.query(CertificateException)
        .filter(
            CertificateException.user_id == user_id,
            CertificateException.item_type == item_type,
            CertificateException.item_id == item_id,
            CertificateException.is_active.is_(True),
        )
        .one_or_none()
    )


def get_certificate_by_number(s: "Session", number: str) -> "Certificate | None":
    from app.campus.modules.certificates.models import Certificate

    number = (number or "").strip().upper()
    if not number:
        return None
    return (
        s.query(Certificate)
        .filter(Certificate.certificate_number == number, Certificate.is_active.is_(True))
        .one_or_none()
    )


def user_certificates(s: "Session", user: "User") -> list["Certificate"]:
    from app.campus.modules.certificates.models import Certificate

    return (
        s.query(Certificate)
        .filter(Certificate.user_id == user.id, Certificate.is_active.is_(True))
        .order_by(Certificate.issued_at.desc())
        .all()
    )


def certificate_stats(s: "Session", item_type: str, item_id: int, now: datetime | None = None) -> dict[str, int]:
    from app.campus.modules.certificates.models import Certificate

    now = now or datetime.utcnow()
    q = s.query(Certificate).filter(Certificate.item_type == item_type, Certificate.is_active.is_(True))
    q = q.filter(Certificate.course_id == item_id) if item_type == "course" else q.filter(Certificate.event_id == item_id)
    return {
        "total": q.count(),
        "this_month": q.filter(Certificate.issued_at >= now - timedelta(days=30)).count(),
    }


# ---------- Eligibility ----------
def check_course_eligibility(s: "Session", user: "User", course: "Course") -> EligibilityCheck:
    from app.campus.modules.progress.service import course_completion_stats, course_quiz_stats

    stats = course_completion_stats(s, user, course)
    quiz = course_quiz_stats(s, user.id, course.id)
    check = EligibilityCheck(
        is_eligible=False,
        total_units=stats["total_lessons"],
        completed_units=stats["completed_lessons"],
        completion_percentage=stats["completion_percentage"],
        total_quizzes=quiz["total_quizzes"],
        completed_quizzes=quiz["completed_quizzes"],
        average_quiz_score=quiz["average_quiz_score"],
        existing_certificate=existing_certificate(s, user.id, "course", course.id),
        has_exception=active_exception(s, user.id, "course", course.id) is not None,
    )
    if check.total_units == 0:
        check.missing_requirements.append("Course has no lessons.")
    elif check.completed_units < check.total_units:
        check.missing_requirements.append(
            f"{check.total_units - check.completed_units} of {check.total_units} lessons not completed."
        )
    check.is_eligible = bool(check.existing_certificate or check.has_exception or not check.missing_requirements)
    return check


def check_event_eligibility(s: "Session", user: "User", event: "Event") -> EligibilityCheck:
    from app.campus.modules.progress.service import event_progress

    prog = event_progress(s, user, event)
    check = EligibilityCheck(
        is_eligible=False,
        total_units=prog["total_sections"],
        completed_units=prog["completed_sections"],
        completion_percentage=prog["completion_percentage"],
        existing_certificate=existing_certificate(s, user.id, "event", event.id),
        has_exception=active_exception(s, user.id, "event", event.id) is not None,
    )
    if check.total_units == 0:
        check.missing_requirements.append("Event has no sections.")
    elif check.completion_percentage < EVENT_COMPLETION_THRESHOLD:
        check.missing_requirements.append(
            f"At least {EVENT_COMPLETION_THRESHOLD}% of sections must be completed "
            f"(currently {check.completion_percentage}%)."
        )
    check.is_eligible = bool(check.existing_certificate or check.has_exception or not check.missing_requirements)
    return check


def check_eligibility(s: "Session", user: "User", item_type: str, item: "Course | Event") -> EligibilityCheck:
    if item_type == "course":
        return check_course_eligibility(s, user, item)
    if item_type == "event":
        return check_event_eligibility(s, user, item)
    raise CertificateError("invalid_item_type", f"Item type must be one of: {', '.join(ITEM_TYPES)}")


# ---------- Issuance ----------
def issue_certificate(
    s: "Session",
    user: "User",
    item_type: str,
    item: "Course | Event",
    *,
    base_url: str,
    prefix: str = "CMP",
    organization_name: str = "Campus",
    organization_description: str | None = None,
    recipient_name: str | None = None,
    force: bool = False,
    actor: "User | None" = None,
) -> tuple["Certificate", bool]:
    """
    Returns (certificate, created). An active certificate for the same user and
    item is returned unchanged.
    """
    from app.campus.modules.certificates.models import Certificate

    check = check_eligibility(s, user, item_type, item)
    if check.existing_certificate:
        return check.existing_certificate, False
    if not check.is_eligible and not force:
        raise CertificateError("not_eligible", "Certificate requirements are not met.", check.missing_requirements)

    from app.campus.modules.events.service import format_duration

    if item_type == "course":
        instructor = item.instructor_name
        instructor_bio = item.instructor_description
        duration = item.duration
        title = "Kurs Başarı Sertifikası"
        description = COURSE_DESCRIPTION
        template_id = DEFAULT_TEMPLATE_ID
    else:
        instructor = item.organizer_name
        instructor_bio = item.organizer_bio
        duration = format_duration(item.duration_minutes, "tr") or None
        title = "Etkinlik Başarı Sertifikası"
        description = item.certificate_description or EVENT_DESCRIPTION
        template_id = item.certificate_template_id or DEFAULT_TEMPLATE_ID

    number = _unique_number(s, prefix)
    now = datetime.utcnow()
    cert = Certificate(
        certificate_number=number,
        user_id=user.id,
        item_type=item_type,
        course_id=item.id if item_type == "course" else None,
        event_id=item.id if item_type == "event" else None,
        recipient_name=(recipient_name or "").strip() or user.display_name,
        item_name=item.title,
        instructor_name=instructor,
        instructor_bio=instructor_bio,
        duration=duration,
        organization_name=organization_name,
        organization_description=organization_description,
        title=title,
        description=description,
        template_id=template_id,
        certificate_url=f"{base_url.rstrip('/')}/{number}",
        metadata_json={
            "item_type": item_type,
            "completion_date": now.isoformat(),
            "completion_percentage": check.completion_percentage,
            "completed_units": check.completed_units,
            "total_units": check.total_units,
            "average_quiz_score": check.average_quiz_score,
            "has_exception": check.has_exception,
            "forced": bool(force and not check.is_eligible),
        },
        is_active=True,
        issued_at=now,
    )
    s.add(cert)
    s.flush()
    record_event(
        s,
        actor=actor or user,
        action="certificate.issue",
        entity_type="Certificate",
        entity_id=str(cert.id),
        metadata={"number": number, "item_type": item_type, "item_id": item.id, "user_id": user.id},
    )
    logger.info("Issued certificate %s user_id=%s %s_id=%s", number, user.id, item_type, item.id)
    return cert, True


# ---------- Exceptions (admin) ----------
def grant_exception(s: "Session", *, user_id: int, item_type: str, item_id: int, reason: str | None, actor: "User") -> "CertificateException":
    from app.campus.modules.certificates.models import CertificateException

    if item_type not in ITEM_TYPES:
        raise CertificateError("invalid_item_type", f"Item type must be one of: {', '.join(ITEM_TYPES)}")
    row = (
        s.query(CertificateException)
        .filter(
            CertificateException.user_id == user_id,
            CertificateException.item_type == item_type,
            CertificateException.item_id == item_id,
        )
        .one_or_none()
    )
    if row is None:
        row = CertificateException(user_id=user_id, item_type=item_type, item_id=item_id, created_by_user_id=actor.id)
        s.add(row)
    row.is_active = True
    row.reason = (reason or "").strip() or None
    s.flush()
    record_event(
        s,
        actor=actor,
        action="certificate.exception_grant",
        entity_type="CertificateException",
        entity_id=str(row.id),
        reason=row.reason,
        metadata={"user_id": user_id, "item_type": item_type, "item_id": item_id},
    )
    return row


def revoke_exception(s: "Session", row: "CertificateException", *, actor: "User") -> None:
    row.is_active = False
    record_event(s, actor=actor, action="certificate.exception_revoke", entity_type="CertificateException", entity_id=str(row.id))


def send_certificate_email(cert: "Certificate", email: str, locale: str = "tr") -> bool:
    from app.campus.mailer import render_email, send_email

    text, html = render_email("certificate_issued", cert=cert, locale=locale)
    subject = (
        f"Your certificate for {cert.item_name}" if locale == "en" else f"{cert.item_name} sertifikanız hazır"
    )
    ok, msg = send_email(email, subject, text, html=html)
    if not ok:
        logger.warning("Certificate email failed number=%s: %s", cert.certificate_number, msg)
    return ok
