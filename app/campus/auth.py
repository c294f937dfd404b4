from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.campus.audit import record_event
from app.campus.db import db_session
from app.campus.models import Role, User
from app.campus.rbac import user_has_permission
from app.campus.utils import is_valid_email

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
MIN_PASSWORD_LENGTH = 8


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _safe_next(nxt: str) -> str | None:
    # Only local paths, never protocol-relative URLs.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def _landing_for(user: User) -> str:
    if user_has_permission(user, "admin.view"):
        return url_for("admin.index")
    return url_for("routes.dashboard")


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie and assigns g.request_id
    for audit/log correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    user = db_session().get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def validate_registration_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    email = (payload.get("email") or "").strip().lower()
    if not email or not is_valid_email(email):
        errors.append("A valid email address is required.")
    if not (payload.get("full_name") or "").strip():
        errors.append("Full name is required.")
    password = payload.get("password") or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if password != (payload.get("password_confirm") or ""):
        errors.append("Passwords do not match.")
    return errors


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    session["user_id"] = user.id
    _login_attempts[ip].clear()
    user.last_login_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Login user_id=%s request_id=%s", user.id, getattr(g, "request_id", None))
    return redirect(_safe_next(nxt) or _landing_for(user))


@bp.get("/register")
def register_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/register.html", next=nxt)


@bp.post("/register")
def register_post():
    payload = {
        "email": request.form.get("email"),
        "full_name": request.form.get("full_name"),
        "password": request.form.get("password"),
        "password_confirm": request.form.get("password_confirm"),
    }
    nxt = (request.form.get("next") or "").strip()
    errors = validate_registration_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("auth.register_get", next=nxt or None))

    s = db_session()
    email = (payload["email"] or "").strip().lower()
    if s.query(User).filter(User.email == email).one_or_none():
        flash("An account with this email already exists.", "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    user = User(
        email=email,
        full_name=(payload["full_name"] or "").strip(),
        password_hash=generate_password_hash(payload["password"] or ""),
        locale=current_app.config.get("DEFAULT_LOCALE") or "tr",
        is_active=True,
    )
    learner = s.query(Role).filter(Role.key == "learner").one_or_none()
    if learner:
        user.roles.append(learner)
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    s.commit()

    session["user_id"] = user.id
    flash("Welcome! Your account has been created.", "success")
    return redirect(_safe_next(nxt) or url_for("routes.dashboard"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))
