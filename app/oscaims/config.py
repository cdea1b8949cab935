import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import URL

SESSION_COOKIE_NAME = "oscaims_sid"
SESSION_MAX_AGE_SECONDS = 60 * 60 * 24
SESSION_SWEEP_INTERVAL_SECONDS = 60 * 5


@dataclass(frozen=True)
class Settings:
    port: int
    node_env: str
    frontend_url: str
    session_secret: str
    database_url: str

    uploads_dir: str
    log_level: str

    session_sweep_enabled: bool
    session_sweep_interval_seconds: int
    session_clear_expired: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def build_database_url() -> str:
    """
    DATABASE_URL wins when set; otherwise the MySQL URL is assembled from DB_* parts.
    """
    explicit = _getenv("DATABASE_URL")
    if explicit:
        return explicit
    host = _getenv("DB_HOST")
    if not host:
        return "sqlite:///oscaims.db"
    url = URL.create(
        "mysql+pymysql",
        username=_getenv("DB_USER") or None,
        password=os.environ.get("DB_PASSWORD") or None,
        host=host,
        port=_getenv_int("DB_PORT", 3306),
        database=_getenv("DB_DATABASE") or None,
        query={"charset": "utf8mb4"},
    )
    return url.render_as_string(hide_password=False)


def load_settings() -> Settings:
    return Settings(
        port=_getenv_int("PORT", 8080),
        node_env=_getenv("NODE_ENV", "development"),
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:5173"),
        session_secret=_getenv("SESSION_SECRET", "change-me"),
        database_url=build_database_url(),
        uploads_dir=_getenv("UPLOADS_DIR", str(Path(os.getcwd()) / "uploads")),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        session_sweep_enabled=_getenv_bool("SESSION_SWEEP_ENABLED", True),
        session_sweep_interval_seconds=_getenv_int("SESSION_SWEEP_INTERVAL_SECONDS", SESSION_SWEEP_INTERVAL_SECONDS),
        session_clear_expired=_getenv_bool("SESSION_CLEAR_EXPIRED", True),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.node_env == "production"
    return {
        "SECRET_KEY": s.session_secret,
        "ENV": s.node_env,
        "PORT": s.port,
        "FRONTEND_URL": s.frontend_url,
        "DATABASE_URL": s.database_url,
        "UPLOADS_DIR": s.uploads_dir,
        "LOG_LEVEL": s.log_level,
        "SESSION_SWEEP_ENABLED": s.session_sweep_enabled,
        "SESSION_SWEEP_INTERVAL_SECONDS": s.session_sweep_interval_seconds,
        "SESSION_CLEAR_EXPIRED": s.session_clear_expired,
        # session cookie
        "SESSION_COOKIE_NAME": SESSION_COOKIE_NAME,
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SECURE": is_production,  # HTTPS only in production
        "SESSION_COOKIE_SAMESITE": "None" if is_production else "Lax",
        "SESSION_MAX_AGE_SECONDS": SESSION_MAX_AGE_SECONDS,
        # JSON bodies only; uploads are served, not accepted
        "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,
        # flask-compress
        "COMPRESS_MIN_SIZE": 500,
    }
