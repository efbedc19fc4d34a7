import logging
from datetime import timedelta

from flask import Flask, g, jsonify, render_template, request, session
from dotenv import load_dotenv

from app.portal.config import load_config
from app.portal.db import init_db, teardown_db_session
from app.portal.errors import register_error_handlers
from app.portal.routes import bp as pages_bp
from app.portal.auth import bp as auth_bp, load_current_user
from app.portal.events import bp as events_bp
from app.portal.activity import bp as activity_bp
from app.portal.modules.agencies.admin import bp as agencies_admin_bp
from app.portal.modules.agencies.agency import bp as agencies_agency_bp
from app.portal.modules.users.admin import bp as users_admin_bp
from app.portal.modules.colleges.admin import bp as colleges_admin_bp
from app.portal.modules.colleges.agency import bp as colleges_agency_bp
from app.portal.modules.applications.admin import bp as applications_admin_bp
from app.portal.modules.applications.agency import bp as applications_agency_bp
from app.portal.modules.applications.pdf import bp as applications_pdf_bp
from app.portal.modules.documents.admin import bp as documents_admin_bp
from app.portal.modules.documents.agency import bp as documents_agency_bp
from app.portal.modules.payments.admin import bp as payments_admin_bp
from app.portal.modules.payments.agency import bp as payments_agency_bp
from app.portal.modules.settings.admin import bp as settings_admin_bp
from app.portal.modules.settings.agency import bp as settings_agency_bp
from app.portal.modules.reports.admin import bp as reports_admin_bp

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=app.config["SESSION_LIFETIME_HOURS"])

    # CSRF protection (minimal)
    from app.portal.security import csrf_exempt, ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_user() -> dict:
        return {"current_user": getattr(g, "current_user", None)}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None or value == "":
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)[:10]

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout carry no session state worth forging
            if (request.endpoint or "").startswith("auth."):
                return None
            if csrf_exempt(request):
                return None
            if not validate_csrf(request):
                if request.path.startswith("/api/"):
                    return jsonify({"error": "CSRF token missing or invalid."}), 400
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

    app.register_blueprint(pages_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(agencies_admin_bp)
    app.register_blueprint(agencies_agency_bp)
    app.register_blueprint(users_admin_bp)
    app.register_blueprint(colleges_admin_bp)
    app.register_blueprint(colleges_agency_bp)
    app.register_blueprint(applications_admin_bp)
    app.register_blueprint(applications_agency_bp)
    app.register_blueprint(applications_pdf_bp)
    app.register_blueprint(documents_admin_bp)
    app.register_blueprint(documents_agency_bp)
    app.register_blueprint(payments_admin_bp)
    app.register_blueprint(payments_agency_bp)
    app.register_blueprint(settings_admin_bp)
    app.register_blueprint(settings_agency_bp)
    app.register_blueprint(reports_admin_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)
    register_error_handlers(app)

    logging.basicConfig(level=app.config.get("LOG_LEVEL") or "INFO")
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
