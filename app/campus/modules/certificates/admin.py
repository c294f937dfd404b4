from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.models import User
from app.campus.modules.certificates.models import Certificate, CertificateException
from app.campus.modules.certificates.service import (
    ITEM_TYPES,
    CertificateError,
    grant_exception,
    issue_certificate,
    revoke_exception,
    send_certificate_email,
)
from app.campus.rbac import require_permission

bp = Blueprint("certificates_admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _lookup(item_type: str, item_id_raw: str | None, email: str | None):
    """Resolve (user, item) from the admin form; flashes and returns None on bad input."""
    from app.campus.modules.courses.models import Course
    from app.campus.modules.events.models import Event

    s = db_session()
    if item_type not in ITEM_TYPES:
        flash(f"Item type must be one of: {', '.join(ITEM_TYPES)}", "danger")
        return None
    if not (item_id_raw or "").strip().isdigit():
        flash("Item id must be a number.", "danger")
        return None
    item = s.get(Course if item_type == "course" else Event, int(item_id_raw))
    if not item:
        flash(f"No {item_type} with id {item_id_raw}.", "danger")
        return None
    user = s.query(User).filter(User.email == (email or "").strip().lower()).one_or_none()
    if not user:
        flash(f"No user with email {email}.", "danger")
        return None
    return user, item


@bp.get("/certificates")
@require_permission("certificates.manage")
def certificates_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    item_type = (request.args.get("item_type") or "").strip()
    q = s.query(Certificate)
    if search:
        like = f"%{search}%"
        q = q.filter(
            (Certificate.certificate_number.ilike(like))
            | (Certificate.recipient_name.ilike(like))
            | (Certificate.item_name.ilike(like))
        )
    if item_type in ITEM_TYPES:
        q = q.filter(Certificate.item_type == item_type)
    certificates = q.order_by(Certificate.issued_at.desc(), Certificate.id.desc()).limit(500).all()
    return render_template(
        "admin/certificates/list.html",
        certificates=certificates,
        search=search,
        item_type=item_type,
        item_types=ITEM_TYPES,
    )


@bp.post("/certificates/issue")
@require_permission("certificates.manage")
def certificate_issue():
    """Manual issuance; `force` skips the completion requirements."""
    s = db_session()
    found = _lookup((request.form.get("item_type") or "").strip(), request.form.get("item_id"), request.form.get("email"))
    if not found:
        return redirect(url_for("certificates_admin.certificates_list"))
    user, item = found
    cfg = current_app.config
    try:
        cert, created = issue_certificate(
            s,
            user,
            request.form.get("item_type").strip(),
            item,
            base_url=cfg.get("CERTIFICATE_BASE_URL") or "",
            prefix=cfg.get("CERTIFICATE_PREFIX") or "CMP",
            organization_name=cfg.get("SITE_NAME") or "Campus",
            recipient_name=request.form.get("recipient_name"),
            force=request.form.get("force") == "on",
            actor=_current_user(),
        )
    except CertificateError as e:
        s.rollback()
        flash(f"{e.message} {' '.join(e.missing)}".strip(), "danger")
        return redirect(url_for("certificates_admin.certificates_list"))
    s.commit()
    if created:
        send_certificate_email(cert, user.email, user.locale)
        flash(f"Certificate {cert.certificate_number} issued.", "success")
    else:
        flash(f"User already holds certificate {cert.certificate_number}.", "info")
    return redirect(url_for("certificates_admin.certificates_list", q=cert.certificate_number))


# ---------- Exceptions ----------
@bp.get("/certificates/exceptions")
@require_permission("certificates.manage")
def exceptions_list():
    s = db_session()
    rows = s.query(CertificateException).order_by(CertificateException.created_at.desc(), CertificateException.id.desc()).all()
    return render_template("admin/certificates/exceptions.html", exceptions=rows, item_types=ITEM_TYPES)


@bp.post("/certificates/exceptions")
@require_permission("certificates.manage")
def exception_grant():
    s = db_session()
    item_type = (request.form.get("item_type") or "").strip()
    found = _lookup(item_type, request.form.get("item_id"), request.form.get("email"))
    if not found:
        return redirect(url_for("certificates_admin.exceptions_list"))
    user, item = found
    grant_exception(
        s,
        user_id=user.id,
        item_type=item_type,
        item_id=item.id,
        reason=request.form.get("reason"),
        actor=_current_user(),
    )
    s.commit()
    flash(f"Exception granted to {user.email}.", "success")
    return redirect(url_for("certificates_admin.exceptions_list"))


@bp.post("/certificates/exceptions/<int:exception_id>/revoke")
@require_permission("certificates.manage")
def exception_revoke(exception_id: int):
    s = db_session()
    row = s.get(CertificateException, exception_id)
    if not row:
        abort(404)
    revoke_exception(s, row, actor=_current_user())
    s.commit()
    flash("Exception revoked.", "success")
    return redirect(url_for("certificates_admin.exceptions_list"))
