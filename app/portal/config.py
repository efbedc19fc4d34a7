import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    sse_heartbeat_seconds: int
    default_commission_rate: float
    session_lifetime_hours: int
    admin_email: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_number(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///portal.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        sse_heartbeat_seconds=int(_getenv_number("SSE_HEARTBEAT_SECONDS", 30)),
        default_commission_rate=_getenv_number("DEFAULT_COMMISSION_RATE", 10.0),
        session_lifetime_hours=int(_getenv_number("SESSION_LIFETIME_HOURS", 24)),
        admin_email=_getenv("ADMIN_EMAIL", "admin@education.com"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "SSE_HEARTBEAT_SECONDS": s.sse_heartbeat_seconds,
        "DEFAULT_COMMISSION_RATE": s.default_commission_rate,
        "SESSION_LIFETIME_HOURS": s.session_lifetime_hours,
        "ADMIN_EMAIL": s.admin_email,
        # security defaults
        "SESSION_COOKIE_NAME": "session",
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # base64 document payloads travel inside JSON bodies (25MB)
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
