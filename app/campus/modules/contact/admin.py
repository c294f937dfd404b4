from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.models import User
from app.campus.modules.contact.models import ContactSubmission
from app.campus.modules.contact.service import SUBMISSION_STATUSES, ContactError, list_submissions, mark_read, update_submission
from app.campus.rbac import require_permission

bp = Blueprint("contact_admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_submission(submission_id: int) -> ContactSubmission:
    sub = db_session().get(ContactSubmission, submission_id)
    if not sub:
        abort(404)
    return sub


@bp.get("/contact")
@require_permission("contact.view")
def contact_list():
    s = db_session()
    status = (request.args.get("status") or "").strip()
    search = (request.args.get("q") or "").strip()
    # Spam is hidden unless asked for explicitly.
    show_spam = request.args.get("spam") == "1" or status == "spam"
    submissions = list_submissions(s, status=status or None, spam=None if show_spam else False, q=search or None)
    return render_template(
        "admin/contact/list.html",
        submissions=submissions,
        status=status,
        search=search,
        show_spam=show_spam,
        statuses=SUBMISSION_STATUSES,
    )


@bp.get("/contact/<int:submission_id>")
@require_permission("contact.view")
def contact_detail(submission_id: int):
    s = db_session()
    sub = _get_submission(submission_id)
    if sub.status == "new":
        mark_read(s, sub, _current_user())
        s.commit()
    return render_template("admin/contact/detail.html", sub=sub, statuses=SUBMISSION_STATUSES)


@bp.post("/contact/<int:submission_id>")
@require_permission("contact.manage")
def contact_update(submission_id: int):
    s = db_session()
    sub = _get_submission(submission_id)
    try:
        update_submission(s, sub, {"status": request.form.get("status"), "admin_notes": request.form.get("admin_notes")}, _current_user())
    except ContactError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("contact_admin.contact_detail", submission_id=submission_id))
    s.commit()
    flash("Submission updated.", "success")
    return redirect(url_for("contact_admin.contact_detail", submission_id=submission_id))
