from flask import Blueprint, request

from app.campus.db import db_session
from app.campus.modules.search.service import search
from app.campus.web import current_locale, json_ok

bp = Blueprint("search_api", __name__)


@bp.get("/search")
def search_index():
    return json_ok(**search(db_session(), request.args.get("q"), current_locale()))
