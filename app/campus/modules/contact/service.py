from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping

from app.campus.audit import record_event
from app.campus.errors import DomainError
from app.campus.utils import is_valid_email, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.campus.models import User
    from app.campus.modules.contact.captcha import HCaptchaVerifier
    from app.campus.modules.contact.models import ContactSubmission

logger = logging.getLogger(__name__)

SUBMISSION_STATUSES = ("new", "spam", "read", "replied", "archived")
SPAM_KEYWORDS = ("casino", "bitcoin", "crypto", "loan", "viagra", "cialis")
MIN_FILL_MILLIS = 3000
MAX_LINKS = 2
_LINK_RE = re.compile(r"https?://")


class ContactError(DomainError):
    pass


@dataclass(frozen=True)
class ClientInfo:
    ip: str
    user_agent: str
    browser: str | None = None
    operating_system: str | None = None
    device_type: str | None = None


def client_ip(headers: Mapping[str, str], remote_addr: str | None = None) -> str:
    """Cloudflare header first, then X-Real-IP, then the first X-Forwarded-For hop."""
    cf = (headers.get("CF-Connecting-IP") or "").strip()
    if cf:
        return cf
    real = (headers.get("X-Real-IP") or "").strip()
    if real:
        return real
    forwarded = (headers.get("X-Forwarded-For") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    return remote_addr or "unknown"


def detect_spam(
    *,
    honeypot: str | None,
    timestamp_ms: int | None,
    message: str | None,
    email: str | None,
    now_ms: int | None = None,
) -> tuple[bool, str | None]:
    """Returns (is_spam, reason). Checks run in order; the first hit wins."""
    if honeypot and honeypot.strip():
        return True, "Honeypot filled"

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    loaded_at = timestamp_ms if timestamp_ms else now_ms
    if now_ms - loaded_at < MIN_FILL_MILLIS:
        return True, "Form submitted too quickly"

    text = (message or "").lower()
    addr = (email or "").lower()
    if any(k in text or k in addr for k in SPAM_KEYWORDS):
        return True, "Contains spam keywords"

    if len(_LINK_RE.findall(text)) > MAX_LINKS:
        return True, "Too many links"

    return False, None


def submit_contact(
    s: "Session",
    payload: dict,
    client: ClientInfo,
    *,
    verifier: "HCaptchaVerifier",
    now_ms: int | None = None,
) -> "ContactSubmission":
    """
    Validates, verifies the captcha, classifies and stores one submission.
    Spam is stored too (status=spam) so admins can review it; the caller
    decides on notifications.
    """
    from app.campus.modules.contact.models import ContactSubmission

    first_name = (payload.get("firstName") or payload.get("first_name") or "").strip()
    last_name = (payload.get("lastName") or payload.get("last_name") or "").strip()
    email = (payload.get("email") or "").strip()
    message = (payload.get("message") or "").strip()
    token = (payload.get("hCaptchaToken") or payload.get("h-captcha-response") or "").strip()

    if not first_name or not last_name or not email or not message:
        raise ContactError("missing_fields", "Required fields are missing")
    if not token:
        raise ContactError("captcha_required", "Captcha verification required")
    if not is_valid_email(email):
        raise ContactError("invalid_email", "Invalid email format")

    ok, err = verifier.verify(token, client.ip)
    if not ok:
        logger.warning("Contact captcha rejected ip=%s: %s", client.ip, err)
        raise ContactError("captcha_failed", "Captcha verification failed")

    try:
        timestamp = parse_int(payload.get("timestamp"))
    except ValueError:
        timestamp = None
    honeypot = (payload.get("honeypot") or payload.get("website") or "").strip() or None
    is_spam, reason = detect_spam(honeypot=honeypot, timestamp_ms=timestamp, message=message, email=email, now_ms=now_ms)
    locale = (payload.get("locale") or "tr").strip()
    if locale not in ("tr", "en"):
        locale = "tr"

    now = datetime.utcnow()
    sub = ContactSubmission(
        first_name=first_name,
        last_name=last_name,
        email=email.lower(),
        phone=(payload.get("phone") or "").strip() or None,
        message=message,
        locale=locale,
        honeypot=honeypot,
        form_timestamp=timestamp,
        browser_info=client.browser,
        operating_system=client.operating_system,
        device_type=client.device_type or "Unknown",
        ip_address=client.ip,
        user_agent=client.user_agent,
        status="spam" if is_spam else "new",
        is_spam=is_spam,
        admin_notes=f"{reason} | hCaptcha verified" if reason else "hCaptcha verified",
        created_at=now,
        updated_at=now,
    )
    s.add(sub)
    s.flush()
    if is_spam:
        logger.info("Contact submission %s flagged as spam: %s", sub.id, reason)
    return sub


def send_contact_emails(sub: "ContactSubmission", client: ClientInfo, notification_emails: list[str]) -> dict[str, Any]:
    """Confirmation to the sender plus one notification per admin address; failures are collected."""
    from app.campus.mailer import render_email, send_email

    errors: list[str] = []
    en = sub.locale == "en"

    text, html = render_email("contact_confirmation", sub=sub, locale=sub.locale)
    subject = "We Received Your Message" if en else "Mesajınızı Aldık"
    user_ok, msg = send_email(sub.email, subject, text, html=html)
    if not user_ok:
        errors.append(f"Failed to send confirmation email: {msg}")

    recipients = [e.strip() for e in notification_emails if e and e.strip()]
    sent = 0
    text, html = render_email("contact_notification", sub=sub, client=client, locale=sub.locale)
    subject = "New Contact Message" if en else "Yeni İletişim Mesajı"
    for addr in recipients:
        ok, msg = send_email(addr, subject, text, html=html, reply_to=sub.email)
        if ok:
            sent += 1
        else:
            errors.append(f"Failed to send notification email to {addr}: {msg}")

    return {
        "user_email": user_ok,
        "admin_emails": sent,
        "total_admin_emails": len(recipients),
        "errors": errors,
    }


# ---------- Admin ----------
def list_submissions(s: "Session", *, status: str | None = None, spam: bool | None = None, q: str | None = None) -> list["ContactSubmission"]:
    from app.campus.modules.contact.models import ContactSubmission

    query = s.query(ContactSubmission)
    if status:
        query = query.filter(ContactSubmission.status == status)
    if spam is not None:
        query = query.filter(ContactSubmission.is_spam.is_(spam))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(
            (ContactSubmission.email.ilike(like))
            | (ContactSubmission.first_name.ilike(like))
            | (ContactSubmission.last_name.ilike(like))
            | (ContactSubmission.message.ilike(like))
        )
    return query.order_by(ContactSubmission.created_at.desc(), ContactSubmission.id.desc()).all()


def mark_read(s: "Session", sub: "ContactSubmission", user: "User") -> None:
    if sub.status != "new":
        return
    sub.status = "read"
    sub.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="contact.read", entity_type="ContactSubmission", entity_id=str(sub.id))


def update_submission(s: "Session", sub: "ContactSubmission", payload: dict, user: "User") -> "ContactSubmission":
    status = (payload.get("status") or sub.status).strip()
    if status not in SUBMISSION_STATUSES:
        raise ContactError("invalid_status", f"Invalid status. Must be one of: {', '.join(SUBMISSION_STATUSES)}")
    notes = payload.get("admin_notes")
    changes = {}
    if status != sub.status:
        changes["status"] = {"old": sub.status, "new": status}
        sub.status = status
        sub.is_spam = status == "spam"
    if notes is not None and (notes.strip() or None) != sub.admin_notes:
        changes["admin_notes"] = {"old": sub.admin_notes, "new": notes.strip() or None}
        sub.admin_notes = notes.strip() or None
    if changes:
        sub.updated_at = datetime.utcnow()
        record_event(s, actor=user, action="contact.update", entity_type="ContactSubmission", entity_id=str(sub.id), metadata={"changes": changes})
    return sub
