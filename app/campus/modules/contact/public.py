from __future__ import annotations

import time
from typing import Any

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.modules.contact.captcha import verifier_from_config
from app.campus.modules.contact.service import ClientInfo, ContactError, client_ip, send_contact_emails, submit_contact
from app.campus.web import current_locale

bp = Blueprint("contact", __name__)


def client_from_request(payload: dict) -> ClientInfo:
    """Network details from the request; browser/OS/device as reported by the form script."""
    return ClientInfo(
        ip=client_ip(request.headers, request.remote_addr),
        user_agent=request.headers.get("User-Agent") or "",
        browser=(payload.get("browser") or "").strip() or None,
        operating_system=(payload.get("operatingSystem") or payload.get("operating_system") or "").strip() or None,
        device_type=(payload.get("deviceType") or payload.get("device_type") or "").strip() or None,
    )


def process_submission(payload: dict) -> tuple[Any, dict[str, Any] | None]:
    """
    Stores the submission, commits, then sends emails for non-spam messages.
    Returns (submission, email_report); the report is None for spam.
    """
    s = db_session()
    client = client_from_request(payload)
    sub = submit_contact(s, payload, client, verifier=verifier_from_config(current_app.config))
    s.commit()
    if sub.is_spam:
        return sub, None
    report = send_contact_emails(sub, client, current_app.config.get("NOTIFICATION_EMAILS") or [])
    if report["errors"]:
        current_app.logger.warning("Contact submission %s email errors: %s", sub.id, "; ".join(report["errors"]))
    return sub, report


@bp.get("/contact")
def contact_form():
    return render_template("contact/form.html", form_loaded_at=int(time.time() * 1000), form={})


@bp.post("/contact")
def contact_submit():
    payload = request.form.to_dict()
    payload.setdefault("locale", current_locale())
    try:
        process_submission(payload)
    except ContactError as e:
        db_session().rollback()
        flash(e.message, "danger")
        return render_template("contact/form.html", form_loaded_at=int(time.time() * 1000), form=payload), 400
    flash(
        "Thank you, we received your message." if payload["locale"] == "en" else "Teşekkürler, mesajınızı aldık.",
        "success",
    )
    return redirect(url_for("contact.contact_form"))
