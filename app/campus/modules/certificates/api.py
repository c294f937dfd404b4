from __future__ import annotations

from typing import Any

from flask import Blueprint, abort, current_app, g, request

from app.campus.db import db_session
from app.campus.modules.certificates.service import (
    ITEM_TYPES,
    check_eligibility,
    get_certificate_by_number,
    issue_certificate,
    send_certificate_email,
    user_certificates,
)
from app.campus.rbac import login_required
from app.campus.web import current_locale, json_error, json_ok, request_payload

bp = Blueprint("certificates_api", __name__)


def certificate_to_dict(cert) -> dict[str, Any]:
    return {
        "certificate_number": cert.certificate_number,
        "item_type": cert.item_type,
        "item_id": cert.item_id,
        "item_name": cert.item_name,
        "recipient_name": cert.recipient_name,
        "instructor_name": cert.instructor_name,
        "duration": cert.duration,
        "organization_name": cert.organization_name,
        "title": cert.title,
        "description": cert.description,
        "template_id": cert.template_id,
        "certificate_url": cert.certificate_url,
        "issued_at": cert.issued_at.isoformat(),
    }


def _item(item_type: str, item_id: Any):
    from app.campus.modules.courses.models import Course
    from app.campus.modules.events.models import Event

    if item_type not in ITEM_TYPES:
        abort(400, description=f"item_type must be one of: {', '.join(ITEM_TYPES)}")
    try:
        item_id = int(item_id)
    except (TypeError, ValueError):
        abort(400, description="item_id must be an integer.")
    item = db_session().get(Course if item_type == "course" else Event, item_id)
    if not item or not item.is_active:
        abort(404)
    return item


@bp.get("/certificates/eligibility")
@login_required
def eligibility():
    item_type = (request.args.get("item_type") or "").strip()
    item = _item(item_type, request.args.get("item_id"))
    check = check_eligibility(db_session(), g.current_user, item_type, item)
    return json_ok(**check.to_dict())


@bp.post("/certificates/issue")
@login_required
def issue():
    s = db_session()
    payload = request_payload()
    item_type = (payload.get("item_type") or "").strip()
    item = _item(item_type, payload.get("item_id"))
    cfg = current_app.config
    cert, created = issue_certificate(
        s,
        g.current_user,
        item_type,
        item,
        base_url=cfg.get("CERTIFICATE_BASE_URL") or "",
        prefix=cfg.get("CERTIFICATE_PREFIX") or "CMP",
        organization_name=cfg.get("SITE_NAME") or "Campus",
        recipient_name=payload.get("recipient_name"),
    )
    s.commit()
    email_sent = send_certificate_email(cert, g.current_user.email, current_locale()) if created else False
    return json_ok(certificate=certificate_to_dict(cert), created=created, email_sent=email_sent), 201 if created else 200


@bp.get("/certificates/mine")
@login_required
def mine():
    return json_ok(certificates=[certificate_to_dict(c) for c in user_certificates(db_session(), g.current_user)])


@bp.get("/certificates/verify/<number>")
def verify(number: str):
    cert = get_certificate_by_number(db_session(), number)
    if not cert:
        return json_error("Certificate not found.", 404)
    return json_ok(valid=True, certificate=certificate_to_dict(cert))
