import logging
from datetime import timedelta

from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for
from dotenv import load_dotenv

from app.campus.config import load_config
from app.campus.db import init_db, teardown_db_session
from app.campus.errors import DomainError
from app.campus.rbac import is_api_request
from app.campus.routes import bp as routes_bp
from app.campus.auth import bp as auth_bp, load_current_user
from app.campus.admin import bp as admin_bp
from app.campus.modules.courses.public import bp as courses_bp
from app.campus.modules.courses.api import bp as courses_api_bp
from app.campus.modules.courses.admin import bp as courses_admin_bp
from app.campus.modules.events.public import bp as events_bp
from app.campus.modules.events.api import bp as events_api_bp
from app.campus.modules.events.admin import bp as events_admin_bp
from app.campus.modules.enrollment.api import bp as enrollment_api_bp
from app.campus.modules.progress.api import bp as progress_api_bp
from app.campus.modules.certificates.public import bp as certificates_bp
from app.campus.modules.certificates.api import bp as certificates_api_bp
from app.campus.modules.certificates.admin import bp as certificates_admin_bp
from app.campus.modules.discounts.public import bp as campaigns_bp
from app.campus.modules.discounts.api import bp as discounts_api_bp
from app.campus.modules.discounts.admin import bp as discounts_admin_bp
from app.campus.modules.search.public import bp as search_bp
from app.campus.modules.search.api import bp as search_api_bp
from app.campus.modules.contact.public import bp as contact_bp
from app.campus.modules.contact.api import bp as contact_api_bp
from app.campus.modules.contact.admin import bp as contact_admin_bp

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from app.campus.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.campus.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm}

    @app.context_processor
    def _inject_site() -> dict:
        from app.campus.web import current_locale

        return {
            "site_name": app.config.get("SITE_NAME") or "Campus",
            "hcaptcha_site_key": app.config.get("HCAPTCHA_SITE_KEY") or "",
            "locale": current_locale(),
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("money")
    def _money_filter(value) -> str:
        if value is None:
            return "-"
        return f"{value:,.2f}"

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # login/register/logout carry their own form and rate limit
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if is_api_request():
                    return jsonify({"success": False, "error": "CSRF token missing or invalid."}), 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("HCAPTCHA_SECRET_KEY"):
            app.logger.warning("HCAPTCHA_SECRET_KEY is not set; contact form submissions will be rejected.")
        if not app.config.get("SMTP_SERVER"):
            app.logger.warning("SMTP_SERVER is not set; outbound email is disabled.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(courses_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(search_bp)
    app.register_blueprint(contact_bp)
    app.register_blueprint(courses_api_bp, url_prefix="/api")
    app.register_blueprint(events_api_bp, url_prefix="/api")
    app.register_blueprint(enrollment_api_bp, url_prefix="/api")
    app.register_blueprint(progress_api_bp, url_prefix="/api")
    app.register_blueprint(certificates_api_bp, url_prefix="/api")
    app.register_blueprint(discounts_api_bp, url_prefix="/api")
    app.register_blueprint(search_api_bp, url_prefix="/api")
    app.register_blueprint(contact_api_bp, url_prefix="/api")
    app.register_blueprint(courses_admin_bp, url_prefix="/admin")
    app.register_blueprint(events_admin_bp, url_prefix="/admin")
    app.register_blueprint(certificates_admin_bp, url_prefix="/admin")
    app.register_blueprint(discounts_admin_bp, url_prefix="/admin")
    app.register_blueprint(contact_admin_bp, url_prefix="/admin")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(DomainError)
    def _domain_error(e: DomainError):
        from app.campus.db import db_session

        db_session().rollback()
        app.logger.info("Domain error code=%s request_id=%s: %s", e.code, getattr(g, "request_id", None), e.message)
        if is_api_request():
            return jsonify(e.to_dict()), e.status_code
        flash(e.message, "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("routes.index")), 302

    @app.errorhandler(400)
    def _err_400(e):
        if is_api_request():
            return jsonify({"success": False, "error": getattr(e, "description", None) or "Bad request."}), 400
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(403)
    def _err_403(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if is_api_request():
            return jsonify({"success": False, "error": "Forbidden."}), 403
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):
        if is_api_request():
            return jsonify({"success": False, "error": "Not found."}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if is_api_request():
            return jsonify({"success": False, "error": "Internal server error."}), 500
        return render_template("errors/500.html"), 500

    logger.info("create_app() complete; app ready to serve")
    return app
