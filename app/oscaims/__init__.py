import logging
import os

from flask import Flask, request
from dotenv import load_dotenv
from flask_compress import Compress
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, InternalServerError
from werkzeug.middleware.proxy_fix import ProxyFix

from app.oscaims.config import load_config
from app.oscaims.db import init_db, teardown_db_session
from app.oscaims import models  # noqa: F401  (registers every table on Base.metadata)
from app.oscaims.logging_config import configure_logging, install_exception_hooks
from app.oscaims.session_store import SqlSessionInterface, SqlSessionStore
from app.oscaims.sweep import init_sweep
from app.oscaims.utils import ValidationError
from app.oscaims.routes import bp as routes_bp
from app.oscaims.auth import bp as auth_bp, load_current_user
from app.oscaims.modules.officials.routes import bp as officials_bp
from app.oscaims.modules.audit_logs.routes import bp as audit_logs_bp
from app.oscaims.modules.senior_citizens.routes import bp as senior_citizens_bp
from app.oscaims.modules.sms.routes import bp as sms_bp
from app.oscaims.modules.templates.routes import bp as templates_bp

GENERIC_500_MESSAGE = "Something went wrong on the server!"


def create_app() -> Flask:
    load_dotenv()
    config = load_config()
    configure_logging(config["LOG_LEVEL"])
    install_exception_hooks()

    app = Flask(__name__, static_folder=None)
    app.config.from_mapping(config)
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    if app.config["ENV"] == "production":
        if not app.config.get("SECRET_KEY") or app.config["SECRET_KEY"] == "change-me":
            raise RuntimeError("SESSION_SECRET must be set to a strong value in production (not default).")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DB_HOST/DATABASE_URL must point at MySQL in production (not sqlite).")

    # one reverse proxy hop (load balancer) in front of the app
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)  # type: ignore[method-assign]

    # after_request hooks run in reverse order: this one sees the CORS headers
    @app.after_request
    def _log_request(response):
        app.logger.info(
            "[%s] %s -> %s (Access-Control-Allow-Origin: %s)",
            request.method,
            request.full_path.rstrip("?"),
            response.status_code,
            response.headers.get("Access-Control-Allow-Origin"),
        )
        return response

    Compress(app)
    CORS(app, origins=[app.config["FRONTEND_URL"]], supports_credentials=True)

    init_db(app)
    app.session_interface = SqlSessionInterface(SqlSessionStore(app.extensions["sqlalchemy_sessionmaker"]))

    uploads_dir = app.config["UPLOADS_DIR"]
    if not os.path.isdir(uploads_dir):
        os.makedirs(uploads_dir, exist_ok=True)
        app.logger.info("Created uploads directory %s", uploads_dir)

    app.register_blueprint(routes_bp)
    app.register_blueprint(officials_bp, url_prefix="/api/officials")
    app.register_blueprint(audit_logs_bp, url_prefix="/api/audit-logs")
    app.register_blueprint(auth_bp, url_prefix="/api/user")
    app.register_blueprint(senior_citizens_bp, url_prefix="/api/senior-citizens")
    app.register_blueprint(sms_bp, url_prefix="/api/sms")
    app.register_blueprint(templates_bp, url_prefix="/api/templates")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ValidationError)
    def _err_validation(e: ValidationError):
        return {"message": str(e), "errors": e.errors}, 400

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        return {"message": e.description or e.name}, e.code or 500

    @app.errorhandler(InternalServerError)
    def _err_internal(e: InternalServerError):
        # errors outside the view (e.g. opening the session) arrive here already wrapped
        return {"message": GENERIC_500_MESSAGE}, 500

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        # stack trace stays server-side
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return {"message": GENERIC_500_MESSAGE}, 500

    scheduler = init_sweep(app)
    if app.config["SESSION_SWEEP_ENABLED"]:
        scheduler.start()

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
