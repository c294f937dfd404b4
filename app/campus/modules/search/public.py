from flask import Blueprint, render_template, request

from app.campus.db import db_session
from app.campus.modules.search.service import search
from app.campus.web import current_locale

bp = Blueprint("search", __name__)


@bp.get("/search")
def search_page():
    q = (request.args.get("q") or "").strip()
    result = search(db_session(), q, current_locale()) if q else {"results": [], "query": "", "total": 0}
    return render_template("search/results.html", q=q, result=result)
