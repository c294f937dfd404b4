from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.campus.db import db_session
from app.campus.models import User
from app.campus.modules.discounts.models import DiscountCode, DiscountRedemption
from app.campus.modules.discounts.service import (
    DISCOUNT_TYPES,
    DiscountError,
    create_discount_code,
    delete_discount_code,
    list_discount_codes,
    update_discount_code,
    validate_discount_payload,
)
from app.campus.rbac import require_permission
from app.campus.utils import parse_bool

bp = Blueprint("discounts_admin", __name__)

_FORM_FIELDS = (
    "code",
    "discount_amount",
    "discount_type",
    "valid_until",
    "applicable_course_ids",
    "max_usage",
    "campaign_name",
    "campaign_name_en",
    "campaign_description",
    "campaign_description_en",
    "campaign_cover_image",
    "campaign_slug",
    "remaining_balance",
    "initial_balance",
    "influencer_id",
    "commission",
)
_FLAGS = ("is_referral", "is_campaign", "has_balance_limit")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    payload = {k: request.form.get(k) for k in _FORM_FIELDS}
    for flag in _FLAGS:
        payload[flag] = request.form.get(flag) == "on"
    return payload


def _get_code(code_id: int) -> DiscountCode:
    dc = db_session().get(DiscountCode, code_id)
    if not dc:
        abort(404)
    return dc


@bp.get("/discounts")
@require_permission("discounts.manage")
def discounts_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    kind = (request.args.get("kind") or "").strip()
    limit = request.args.get("limit", default=100, type=int)
    codes = list_discount_codes(
        s,
        is_referral=True if kind == "referral" else (False if kind == "discount" else None),
        is_campaign=True if kind == "campaign" else None,
        q=search or None,
        limit=limit,
    )
    return render_template("admin/discounts/list.html", codes=codes, search=search, kind=kind, limit=limit)


@bp.get("/discounts/new")
@require_permission("discounts.manage")
def discount_new_get():
    return render_template("admin/discounts/form.html", dc=None, discount_types=DISCOUNT_TYPES)


@bp.post("/discounts/new")
@require_permission("discounts.manage")
def discount_new_post():
    s = db_session()
    payload = _payload()
    errors = validate_discount_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("discounts_admin.discount_new_get"))
    try:
        dc = create_discount_code(s, payload, _current_user())
    except DiscountError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("discounts_admin.discount_new_get"))
    s.commit()
    flash(f"Discount code {dc.code} created.", "success")
    return redirect(url_for("discounts_admin.discount_detail", code_id=dc.id))


@bp.get("/discounts/<int:code_id>")
@require_permission("discounts.manage")
def discount_detail(code_id: int):
    s = db_session()
    dc = _get_code(code_id)
    redemptions = (
        s.query(DiscountRedemption)
        .filter(DiscountRedemption.discount_code_id == dc.id)
        .order_by(DiscountRedemption.created_at.desc())
        .all()
    )
    return render_template("admin/discounts/detail.html", dc=dc, redemptions=redemptions)


@bp.get("/discounts/<int:code_id>/edit")
@require_permission("discounts.manage")
def discount_edit_get(code_id: int):
    return render_template("admin/discounts/form.html", dc=_get_code(code_id), discount_types=DISCOUNT_TYPES)


@bp.post("/discounts/<int:code_id>/edit")
@require_permission("discounts.manage")
def discount_edit_post(code_id: int):
    s = db_session()
    dc = _get_code(code_id)
    payload = _payload()
    errors = validate_discount_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("discounts_admin.discount_edit_get", code_id=code_id))
    try:
        update_discount_code(s, dc, payload, _current_user())
    except DiscountError as e:
        s.rollback()
        flash(e.message, "danger")
        return redirect(url_for("discounts_admin.discount_edit_get", code_id=code_id))
    s.commit()
    flash("Discount code updated.", "success")
    return redirect(url_for("discounts_admin.discount_detail", code_id=code_id))


@bp.post("/discounts/<int:code_id>/delete")
@require_permission("discounts.manage")
def discount_delete(code_id: int):
    s = db_session()
    dc = _get_code(code_id)
    if not parse_bool(request.form.get("confirm")):
        flash("Tick the confirmation box to delete a code.", "warning")
        return redirect(url_for("discounts_admin.discount_detail", code_id=code_id))
    code = dc.code
    delete_discount_code(s, dc, _current_user())
    s.commit()
    flash(f"Discount code {code} deleted.", "success")
    return redirect(url_for("discounts_admin.discounts_list"))
