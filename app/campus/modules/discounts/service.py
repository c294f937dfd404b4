from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from app.campus.audit import record_event
from app.campus.errors import DomainError
from app.campus.utils import money, parse_bool, parse_datetime, parse_decimal, parse_int, slugify

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.campus.models import User
    from app.campus.modules.courses.models import Course
    from app.campus.modules.discounts.models import DiscountCode, DiscountRedemption

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = ("percentage", "fixed")
MAX_USAGE_LIMIT = 999999
LIST_LIMIT_MAX = 500
DEFAULT_CAMPAIGN_COVER = "/static/img/campaign-default.jpg"

_CENT = Decimal("0.01")


class DiscountError(DomainError):
    pass


def _q(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


# ---------- Payload ----------
def normalize_discount_payload(payload: dict) -> dict[str, Any]:
    """Coerce raw form/JSON input into column values. Call validate_discount_payload first."""
    has_balance = parse_bool(payload.get("has_balance_limit"))
    remaining = parse_decimal(payload.get("remaining_balance")) if has_balance else None
    initial = parse_decimal(payload.get("initial_balance")) if has_balance else None
    if has_balance and initial is None:
        initial = remaining
    max_usage = parse_int(payload.get("max_usage"))
    max_usage = min(MAX_USAGE_LIMIT, max(1, max_usage if max_usage is not None else 1))
    courses = payload.get("applicable_course_ids") or []
    if isinstance(courses, str):
        courses = [c for c in courses.replace(" ", "").split(",") if c]
    is_campaign = parse_bool(payload.get("is_campaign"))
    campaign_name = (payload.get("campaign_name") or "").strip() or None
    campaign_slug = (payload.get("campaign_slug") or "").strip()
    if is_campaign and not campaign_slug:
        campaign_slug = slugify(campaign_name or payload.get("code") or "")
    return {
        "code": (payload.get("code") or "").strip().upper(),
        "discount_amount": parse_decimal(payload.get("discount_amount")) or Decimal("0"),
        "discount_type": (payload.get("discount_type") or "percentage").strip(),
        "valid_until": parse_datetime(payload.get("valid_until")),
        "applicable_course_ids": [int(c) for c in courses],
        "is_referral": parse_bool(payload.get("is_referral")),
        "max_usage": max_usage,
        "is_campaign": is_campaign,
        "campaign_name": campaign_name,
        "campaign_name_en": (payload.get("campaign_name_en") or "").strip() or None,
        "campaign_description": (payload.get("campaign_description") or "").strip() or None,
        "campaign_description_en": (payload.get("campaign_description_en") or "").strip() or None,
        "campaign_cover_image": (payload.get("campaign_cover_image") or "").strip() or None,
        "campaign_slug": slugify(campaign_slug) or None if is_campaign else None,
        "has_balance_limit": has_balance,
        "remaining_balance": remaining,
        "initial_balance": initial,
        "influencer_id": (payload.get("influencer_id") or "").strip() or None,
        "commission": parse_decimal(payload.get("commission")),
    }


def validate_discount_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("code") or "").strip():
        errors.append("Code is required.")
    dtype = (payload.get("discount_type") or "percentage").strip()
    if dtype not in DISCOUNT_TYPES:
        errors.append(f"Invalid discount type. Must be one of: {', '.join(DISCOUNT_TYPES)}")
    try:
        amount = parse_decimal(payload.get("discount_amount"))
        if amount is None:
            errors.append("Discount amount is required.")
        elif amount < 0:
            errors.append("Discount amount cannot be negative.")
        elif dtype == "percentage" and amount > 100:
            errors.append("A percentage discount cannot exceed 100.")
    except ValueError:
        errors.append("Discount amount must be a number.")
    try:
        if parse_datetime(payload.get("valid_until")) is None:
            errors.append("Valid until date is required.")
    except ValueError:
        errors.append("Valid until must be a valid date.")
    for key in ("remaining_balance", "initial_balance", "commission"):
        try:
            v = parse_decimal(payload.get(key))
            if v is not None and v < 0:
                errors.append(f"{key.replace('_', ' ').capitalize()} cannot be negative.")
        except ValueError:
            errors.append(f"{key.replace('_', ' ').capitalize()} must be a number.")
    if parse_bool(payload.get("has_balance_limit")):
        try:
            if parse_decimal(payload.get("remaining_balance")) is None:
                errors.append("Remaining balance is required when a balance limit is set.")
        except ValueError:
            pass
    try:
        parse_int(payload.get("max_usage"))
    except ValueError:
        errors.append("Max usage must be a whole number.")
    courses = payload.get("applicable_course_ids") or []
    if isinstance(courses, str):
        courses = [c for c in courses.replace(" ", "").split(",") if c]
    if any(not str(c).isdigit() for c in courses):
        errors.append("Applicable courses must be a list of course ids.")
    return errors


# ---------- Admin CRUD ----------
def list_discount_codes(
    s: "Session",
    *,
    is_referral: bool | None = None,
    is_campaign: bool | None = None,
    q: str | None = None,
    limit: int = 100,
) -> list["DiscountCode"]:
    from app.campus.modules.discounts.models import DiscountCode

    query = s.query(DiscountCode)
    if is_referral is not None:
        query = query.filter(DiscountCode.is_referral.is_(is_referral))
    if is_campaign is not None:
        query = query.filter(DiscountCode.is_campaign.is_(is_campaign))
    if q:
        query = query.filter(DiscountCode.code.ilike(f"%{q.strip().upper()}%"))
    limit = min(LIST_LIMIT_MAX, max(1, int(limit)))
    return query.order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc()).limit(limit).all()


def create_discount_code(s: "Session", payload: dict, user: "User") -> "DiscountCode":
    from app.campus.modules.discounts.models import DiscountCode

    values = normalize_discount_payload(payload)
    if s.query(DiscountCode.id).filter(DiscountCode.code == values["code"]).first():
        raise DiscountError("duplicate_code", f"Discount code {values['code']} already exists.")
    if values["campaign_slug"] and s.query(DiscountCode.id).filter(DiscountCode.campaign_slug == values["campaign_slug"]).first():
        raise DiscountError("duplicate_slug", f"Campaign slug {values['campaign_slug']} is already used.")
    now = datetime.utcnow()
    dc = DiscountCode(**values, usage_count=0, is_used=False, created_at=now, updated_at=now, created_by_user_id=user.id)
    s.add(dc)
    s.flush()
    record_event(
        s,
        actor=user,
        action="discount.create",
        entity_type="DiscountCode",
        entity_id=str(dc.id),
        metadata={"code": dc.code, "type": dc.discount_type, "amount": str(dc.discount_amount)},
    )
    return dc


def update_discount_code(s: "Session", dc: "DiscountCode", payload: dict, user: "User") -> "DiscountCode":
    from app.campus.modules.discounts.models import DiscountCode

    values = normalize_discount_payload(payload)
    if values["code"] != dc.code and s.query(DiscountCode.id).filter(DiscountCode.code == values["code"]).first():
        raise DiscountError("duplicate_code", f"Discount code {values['code']} already exists.")
    if values["campaign_slug"] and (
        s.query(DiscountCode.id)
        .filter(DiscountCode.campaign_slug == values["campaign_slug"], DiscountCode.id != dc.id)
        .first()
    ):
        raise DiscountError("duplicate_slug", f"Campaign slug {values['campaign_slug']} is already used.")
    changes = {}
    for key, new in values.items():
        old = getattr(dc, key)
        if old != new:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(dc, key, new)
    if changes:
        dc.updated_at = datetime.utcnow()
        record_event(s, actor=user, action="discount.update", entity_type="DiscountCode", entity_id=str(dc.id), metadata={"changes": changes})
    return dc


def delete_discount_code(s: "Session", dc: "DiscountCode", user: "User") -> None:
    record_event(s, actor=user, action="discount.delete", entity_type="DiscountCode", entity_id=str(dc.id), metadata={"code": dc.code})
    s.delete(dc)


# ---------- Quote / redeem ----------
def find_code(s: "Session", code: str) -> "DiscountCode | None":
    """Case-insensitive lookup; referral codes are never redeemable as discounts."""
    from app.campus.modules.discounts.models import DiscountCode

    code = (code or "").strip().upper()
    if not code:
        return None
    return (
        s.query(DiscountCode)
        .filter(DiscountCode.code == code, DiscountCode.is_referral.is_(False))
        .one_or_none()
    )


def _check_usable(dc: "DiscountCode | None", course: "Course", now: datetime) -> "DiscountCode":
    if dc is None:
        raise DiscountError("invalid_code", "Invalid discount code.")
    if dc.valid_until <= now:
        raise DiscountError("expired", "This discount code has expired.")
    if dc.usage_count >= dc.max_usage:
        raise DiscountError("limit_reached", "This discount code has reached its usage limit.")
    if dc.applicable_course_ids and course.id not in [int(c) for c in dc.applicable_course_ids]:
        raise DiscountError("not_applicable", "This discount code is not valid for this course.")
    if dc.has_balance_limit and (dc.remaining_balance or Decimal("0")) <= 0:
        raise DiscountError("balance_exhausted", "This discount code has no remaining balance.")
    return dc


def compute_discount(dc: "DiscountCode", price: Decimal) -> Decimal:
    price = Decimal(price)
    if price <= 0:
        return Decimal("0.00")
    if dc.has_balance_limit:
        return _q(min(Decimal(dc.remaining_balance or 0), price))
    amount = Decimal(dc.discount_amount or 0)
    if dc.discount_type == "percentage":
        return _q(price * amount / Decimal("100"))
    return _q(min(amount, price))


def quote_discount(s: "Session", code: str, course: "Course", now: datetime | None = None) -> dict[str, Any]:
    from app.campus.modules.courses.service import active_price

    now = now or datetime.utcnow()
    dc = _check_usable(find_code(s, code), course, now)
    price = active_price(course, now)
    discount = compute_discount(dc, price)
    return {
        "code": dc.code,
        "discount_type": dc.discount_type,
        "discount_amount": money(discount),
        "original_price": money(_q(price)),
        "final_price": money(_q(price - discount)),
        "has_balance_limit": dc.has_balance_limit,
        "remaining_balance": money(dc.remaining_balance),
    }


def redeem_discount(
    s: "Session",
    code: str,
    user: "User",
    course: "Course",
    amount: Decimal | None = None,
    now: datetime | None = None,
) -> "DiscountRedemption":
    """
    Consumes one use of the code. `amount` defaults to the current quote; a
    balance-limited code must still cover it.
    """
    from app.campus.modules.courses.service import active_price
    from app.campus.modules.discounts.models import DiscountCode, DiscountRedemption

    now = now or datetime.utcnow()
    dc = find_code(s, code)
    if dc is not None:
        # Row lock on Postgres; no-op on sqlite.
        dc = s.query(DiscountCode).filter(DiscountCode.id == dc.id).with_for_update().one()
    dc = _check_usable(dc, course, now)
    if amount is None:
        amount = compute_discount(dc, active_price(course, now))
    amount = _q(Decimal(amount))
    if amount < 0:
        raise DiscountError("invalid_amount", "Discount amount cannot be negative.")
    if dc.has_balance_limit:
        if (dc.remaining_balance or Decimal("0")) < amount:
            raise DiscountError("insufficient_balance", "Insufficient balance on this discount code.")
        dc.remaining_balance = _q(Decimal(dc.remaining_balance) - amount)

    dc.usage_count += 1
    dc.is_used = dc.usage_count >= dc.max_usage
    dc.used_by_user_id = user.id
    dc.used_at = now
    dc.updated_at = now
    redemption = DiscountRedemption(discount_code_id=dc.id, user_id=user.id, course_id=course.id, amount=amount, created_at=now)
    s.add(redemption)
    s.flush()
    record_event(
        s,
        actor=user,
        action="discount.redeem",
        entity_type="DiscountCode",
        entity_id=str(dc.id),
        metadata={"code": dc.code, "course_id": course.id, "amount": str(amount), "usage_count": dc.usage_count},
    )
    logger.info("Discount %s redeemed user_id=%s course_id=%s amount=%s", dc.code, user.id, course.id, amount)
    return redemption


# ---------- Campaigns ----------
def campaign_view(dc: "DiscountCode", locale: str = "tr", now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    if locale == "en":
        title = dc.campaign_name_en or dc.campaign_name or dc.code
        description = dc.campaign_description_en or dc.campaign_description
    else:
        title = dc.campaign_name or dc.code
        description = dc.campaign_description
    amount = dc.discount_amount or Decimal("0")
    amount_str = f"{amount.normalize():f}"
    if not description:
        if dc.discount_type == "percentage":
            description = f"{amount_str}% discount code" if locale == "en" else f"%{amount_str} indirim kodu"
        else:
            description = f"{amount_str} TL discount code" if locale == "en" else f"{amount_str} TL indirim kodu"
    return {
        "id": dc.id,
        "code": dc.code,
        "slug": dc.campaign_slug,
        "title": title,
        "description": description,
        "cover_image": dc.campaign_cover_image or DEFAULT_CAMPAIGN_COVER,
        "discount_type": dc.discount_type,
        "discount_amount": money(dc.discount_amount),
        "valid_until": dc.valid_until.isoformat(),
        "usage_count": dc.usage_count,
        "max_usage": dc.max_usage,
        "applicable_course_ids": list(dc.applicable_course_ids or []),
        "is_active": (not dc.is_used) and dc.valid_until > now and dc.usage_count < dc.max_usage,
    }


def list_campaigns(s: "Session", locale: str = "tr", now: datetime | None = None) -> list[dict[str, Any]]:
    from app.campus.modules.discounts.models import DiscountCode

    rows = (
        s.query(DiscountCode)
        .filter(DiscountCode.is_campaign.is_(True))
        .order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc())
        .all()
    )
    return [campaign_view(dc, locale, now) for dc in rows]


def get_campaign_by_slug(s: "Session", slug: str, locale: str = "tr", now: datetime | None = None) -> dict[str, Any] | None:
    from app.campus.modules.discounts.models import DiscountCode

    dc = (
        s.query(DiscountCode)
        .filter(DiscountCode.is_campaign.is_(True), DiscountCode.campaign_slug == slug)
        .one_or_none()
    )
    return campaign_view(dc, locale, now) if dc else None
