from __future__ import annotations

from typing import Any

from flask import current_app, g, request

LOCALES = ("tr", "en")


def current_locale() -> str:
    """?locale= wins, then the signed-in user's preference, then DEFAULT_LOCALE."""
    loc = (request.args.get("locale") or "").strip().lower()
    if loc in LOCALES:
        return loc
    user = getattr(g, "current_user", None)
    if user and user.locale in LOCALES:
        return user.locale
    default = (current_app.config.get("DEFAULT_LOCALE") or "tr").lower()
    return default if default in LOCALES else "tr"


def request_payload() -> dict[str, Any]:
    """JSON body for API clients, form fields for HTML posts."""
    if request.is_json:
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else {}
    return request.form.to_dict()


def json_ok(**data: Any) -> dict[str, Any]:
    return {"success": True, **data}


def json_error(message: str, status: int = 400, **extra: Any):
    return {"success": False, "error": message, **extra}, status
