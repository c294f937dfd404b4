from flask import Blueprint, abort, render_template

from app.campus.db import db_session
from app.campus.modules.discounts.service import get_campaign_by_slug, list_campaigns
from app.campus.web import current_locale

bp = Blueprint("campaigns", __name__)


@bp.get("/campaigns")
def campaigns_list():
    campaigns = list_campaigns(db_session(), current_locale())
    return render_template(
        "campaigns/list.html",
        active=[c for c in campaigns if c["is_active"]],
        expired=[c for c in campaigns if not c["is_active"]],
    )


@bp.get("/campaigns/<slug>")
def campaign_detail(slug: str):
    from app.campus.modules.courses.models import Course

    s = db_session()
    campaign = get_campaign_by_slug(s, slug, current_locale())
    if not campaign:
        abort(404)
    q = s.query(Course).filter(Course.is_active.is_(True))
    if campaign["applicable_course_ids"]:
        q = q.filter(Course.id.in_([int(c) for c in campaign["applicable_course_ids"]]))
    courses = q.order_by(Course.created_at.desc()).all()
    return render_template("campaigns/detail.html", campaign=campaign, courses=courses)
