from __future__ import annotations

import os


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return list(default or [])
    return [x.strip() for x in raw.split(",") if x.strip()]


_DEV_PEPPER = "dev-token-pepper-change-me"

FORM_APPROVAL_CHAINS = {"manual", "contract"}
NOTIFY_MODES = {"thread", "sync"}
MAIL_BACKENDS = {"smtp", "console", "memory", "celery"}


class Config:
    def __init__(self) -> None:
        self.ENV = _env_str("APP_ENV", "development").lower()
        self.IS_PRODUCTION = self.ENV in {"prod", "production"}
        self.APP_VERSION = _env_str("APP_VERSION", "1.0.0")
        self.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()

        self.HOST = _env_str("HOST", "0.0.0.0")
        self.PORT = _env_int("PORT", 5000)
        self.ALLOWED_ORIGINS = _env_list("ALLOWED_ORIGINS", ["http://localhost:5173"])

        self.DATABASE_URL = _env_str("DATABASE_URL", "sqlite:///./hr_onboarding.db")

        self.TOKEN_PEPPER = _env_str("TOKEN_PEPPER", _DEV_PEPPER)
        self.LIFECYCLE_TOKEN_TTL_DAYS = max(1, _env_int("LIFECYCLE_TOKEN_TTL_DAYS", 7))
        self.SESSION_TTL_MINUTES = max(5, _env_int("SESSION_TTL_MINUTES", 1440))

        self.FRONTEND_URL = _env_str("FRONTEND_URL", "http://localhost:5173").rstrip("/")

        self.HIRING_MODULE_ENABLED = _env_bool("HIRING_MODULE_ENABLED", True)
        self.FORM_APPROVAL_CHAIN = _env_str("FORM_APPROVAL_CHAIN", "manual").lower()

        self.BRANDING_CACHE_TTL_SECONDS = max(1, min(3600, _env_int("BRANDING_CACHE_TTL_SECONDS", 300)))
        self.BRANDING_CACHE_MAX_ITEMS = max(16, _env_int("BRANDING_CACHE_MAX_ITEMS", 5000))

        self.NOTIFY_MODE = _env_str("NOTIFY_MODE", "thread").lower()
        self.MAIL_BACKEND = _env_str("MAIL_BACKEND", "console").lower()
        self.SMTP_HOST = _env_str("SMTP_HOST", "smtp.gmail.com")
        self.SMTP_PORT = _env_int("SMTP_PORT", 587)
        self.SMTP_USER = _env_str("SMTP_USER")
        self.SMTP_PASS = _env_str("SMTP_PASS")
        self.SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
        self.SMTP_TIMEOUT_SECONDS = max(1, _env_int("SMTP_TIMEOUT_SECONDS", 30))
        self.FROM_EMAIL = _env_str("FROM_EMAIL") or self.SMTP_USER or "no-reply@localhost"
        self.FROM_NAME = _env_str("FROM_NAME", "HR Team")

        self.REDIS_URL = _env_str("REDIS_URL")

        # Requests per minute per client IP on token-based public routes.
        self.RATE_LIMIT_PUBLIC = max(1, _env_int("RATE_LIMIT_PUBLIC", 60))

    def validate(self) -> None:
        if self.FORM_APPROVAL_CHAIN not in FORM_APPROVAL_CHAINS:
            raise RuntimeError(f"Invalid FORM_APPROVAL_CHAIN: {self.FORM_APPROVAL_CHAIN}")
        if self.NOTIFY_MODE not in NOTIFY_MODES:
            raise RuntimeError(f"Invalid NOTIFY_MODE: {self.NOTIFY_MODE}")
        if self.MAIL_BACKEND not in MAIL_BACKENDS:
            raise RuntimeError(f"Invalid MAIL_BACKEND: {self.MAIL_BACKEND}")
        if self.MAIL_BACKEND == "celery" and not self.REDIS_URL:
            raise RuntimeError("MAIL_BACKEND=celery requires REDIS_URL")

        if not self.IS_PRODUCTION:
            return
        if not self.TOKEN_PEPPER or self.TOKEN_PEPPER == _DEV_PEPPER or len(self.TOKEN_PEPPER) < 32:
            raise RuntimeError("TOKEN_PEPPER must be set to a random value of at least 32 characters in production")
        if self.DATABASE_URL.startswith("sqlite"):
            raise RuntimeError("SQLite is not supported in production")
        if self.MAIL_BACKEND == "memory":
            raise RuntimeError("MAIL_BACKEND=memory is for tests only")
