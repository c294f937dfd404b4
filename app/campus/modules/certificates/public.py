from flask import Blueprint, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.modules.certificates.service import get_certificate_by_number

bp = Blueprint("certificates", __name__)


@bp.get("/certificates")
def verify_form():
    number = (request.args.get("number") or "").strip()
    if number:
        return redirect(url_for("certificates.verify", number=number.upper()))
    return render_template("certificates/verify.html", cert=None, number="")


@bp.get("/certificates/<number>")
def verify(number: str):
    """Public verification page; an unknown or revoked number renders as not found."""
    cert = get_certificate_by_number(db_session(), number)
    return render_template("certificates/verify.html", cert=cert, number=number.upper()), 200 if cert else 404
