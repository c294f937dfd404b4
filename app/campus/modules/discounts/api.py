from __future__ import annotations

from flask import Blueprint, abort, g

from app.campus.db import db_session
from app.campus.modules.discounts.service import (
    get_campaign_by_slug,
    list_campaigns,
    quote_discount,
    redeem_discount,
)
from app.campus.rbac import login_required
from app.campus.utils import money
from app.campus.web import current_locale, json_error, json_ok, request_payload

bp = Blueprint("discounts_api", __name__)


def _course_from(payload: dict):
    from app.campus.modules.courses.models import Course

    raw = payload.get("course_id")
    try:
        course_id = int(raw)
    except (TypeError, ValueError):
        abort(400, description="course_id must be an integer.")
    course = db_session().get(Course, course_id)
    if not course or not course.is_active:
        abort(404)
    return course


@bp.post("/discounts/quote")
def quote():
    payload = request_payload()
    code = (payload.get("code") or "").strip()
    if not code:
        return json_error("Discount code is required.")
    return json_ok(**quote_discount(db_session(), code, _course_from(payload)))


@bp.post("/discounts/redeem")
@login_required
def redeem():
    s = db_session()
    payload = request_payload()
    code = (payload.get("code") or "").strip()
    if not code:
        return json_error("Discount code is required.")
    redemption = redeem_discount(s, code, g.current_user, _course_from(payload))
    s.commit()
    dc = redemption.discount_code
    return json_ok(
        code=dc.code,
        amount=money(redemption.amount),
        usage_count=dc.usage_count,
        remaining_balance=money(dc.remaining_balance),
    )


@bp.get("/campaigns")
def campaigns_index():
    return json_ok(campaigns=list_campaigns(db_session(), current_locale()))


@bp.get("/campaigns/<slug>")
def campaign_show(slug: str):
    campaign = get_campaign_by_slug(db_session(), slug, current_locale())
    if not campaign:
        return json_error("Campaign not found.", 404)
    return json_ok(campaign=campaign)
