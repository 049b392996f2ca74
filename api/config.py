"""
Environment-aware configuration.
Secrets, token lifetimes, hashing cost, database and mail settings all come
from the environment (.env is read if present).
"""
import os
from dotenv import load_dotenv

from utils.timeutils import parse_duration

load_dotenv()  # Read .env if present


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing or unsafe."""


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///expenseit.db")
    DB_TIMEOUT_SECONDS = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))
    DB_ECHO = _env_bool("DB_ECHO")

    # Tokens: one secret per token class
    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET")
    JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRES = os.getenv("ACCESS_TOKEN_EXP", "15m")
    REFRESH_TOKEN_EXPIRES = os.getenv("REFRESH_TOKEN_EXP", "7d")
    ACTIVATION_TOKEN_EXPIRES = os.getenv("ACTIVATION_TOKEN_EXP", "24h")
    REFRESH_REUSE_REVOKES_SESSIONS = _env_bool("REFRESH_REUSE_REVOKES_SESSIONS")

    # argon2 time cost (work factor); tune per deployment
    PASSWORD_HASH_TIME_COST = int(os.getenv("PASSWORD_HASH_TIME_COST", "3"))

    # Refresh cookie
    REFRESH_COOKIE_NAME = "refreshToken"
    COOKIE_SECURE = _env_bool("COOKIE_SECURE")

    # Mail (empty MAIL_HOST = log notifications instead of sending)
    MAIL_HOST = os.getenv("MAIL_HOST", "")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_SENDER = os.getenv("MAIL_SENDER")
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", "true")
    VERIFY_URL_BASE = os.getenv("VERIFY_URL_BASE", "http://localhost:8000/api/v1/auth/verify")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True
    JWT_ACCESS_SECRET = BaseConfig.JWT_ACCESS_SECRET or "dev-access-secret-change-me"
    JWT_REFRESH_SECRET = BaseConfig.JWT_REFRESH_SECRET or "dev-refresh-secret-change-me"


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    JWT_ACCESS_SECRET = "test-access-secret"
    JWT_REFRESH_SECRET = "test-refresh-secret"
    # Cheapest argon2 setting so the suite stays fast
    PASSWORD_HASH_TIME_COST = 1
    MAIL_HOST = ""
    COOKIE_SECURE = False
    REFRESH_REUSE_REVOKES_SESSIONS = False


class ProductionConfig(BaseConfig):
    DEBUG = False
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "true")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def validate_config(config) -> None:
    """
    Fail fast on settings the auth layer cannot run without.
    Called once from create_app; never per request.
    """
    access = config.get("JWT_ACCESS_SECRET")
    refresh = config.get("JWT_REFRESH_SECRET")
    missing = [name for name, value in (("JWT_ACCESS_SECRET", access), ("JWT_REFRESH_SECRET", refresh)) if not value]
    if missing:
        raise ConfigurationError(f"Missing required setting(s): {', '.join(missing)}")
    if access == refresh:
        raise ConfigurationError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
    for key in ("ACCESS_TOKEN_EXPIRES", "REFRESH_TOKEN_EXPIRES", "ACTIVATION_TOKEN_EXPIRES"):
        try:
            parse_duration(config.get(key))
        except ValueError as exc:
            raise ConfigurationError(f"{key}: {exc}") from exc
    if int(config.get("PASSWORD_HASH_TIME_COST", 0)) < 1:
        raise ConfigurationError("PASSWORD_HASH_TIME_COST must be >= 1")
