"""
config.py — Class-based configuration, read from the environment.

.env files are loaded once at import: the project root first, then the
package directory as a fallback. Values already in the real environment
always win (python-dotenv never overrides them).

Durations accept two spellings, the first one set wins:
  JWT_ACCESS_TOKEN_EXPIRES=900              (seconds)
  JWT_ACCESS_TOKEN_EXPIRES_MINUTES=15
  JWT_REFRESH_TOKEN_EXPIRES=604800          (seconds)
  JWT_REFRESH_TOKEN_EXPIRES_DAYS=7
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv


_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parent

load_dotenv(_PROJECT_ROOT / ".env")
load_dotenv(_PACKAGE_DIR / ".env")

_PLACEHOLDER_SECRET = "change-me-in-production"
_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _env(name: str, default: str) -> str:
    """The variable's value, or `default` when it is unset or empty."""
    value = os.getenv(name)
    return value if value else default


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name, str(default)))
    except ValueError:
        return default


def _env_flag(name: str) -> bool:
    return _env(name, "").strip().lower() in _TRUTHY


def _env_duration(name: str, unit_suffix: str, unit: timedelta, default: timedelta) -> timedelta:
    """
    `name` holds seconds; `name + unit_suffix` holds whole units of `unit`.
    Falls back to `default` when neither parses.
    """
    if os.getenv(name):
        return timedelta(seconds=_env_int(name, int(default.total_seconds())))
    if os.getenv(name + unit_suffix):
        return unit * _env_int(name + unit_suffix, int(default / unit))
    return default


class BaseConfig:

    SECRET_KEY: str = _env("SECRET_KEY", _PLACEHOLDER_SECRET)

    # ── Tokens ────────────────────────────────────────────────────────────
    # Access and refresh tokens are signed with different secrets so that a
    # token of one class never verifies as the other.
    JWT_ACCESS_SECRET:  str = _env("JWT_ACCESS_SECRET", _PLACEHOLDER_SECRET + "-access")
    JWT_REFRESH_SECRET: str = _env("JWT_REFRESH_SECRET", _PLACEHOLDER_SECRET + "-refresh")
    JWT_ISSUER:   str = _env("JWT_ISSUER", "secure-api")
    JWT_AUDIENCE: str = _env("JWT_AUDIENCE", "secure-api-users")
    JWT_ALGORITHM: str = "HS256"

    JWT_ACCESS_TOKEN_EXPIRES: timedelta = _env_duration(
        "JWT_ACCESS_TOKEN_EXPIRES", "_MINUTES", timedelta(minutes=1), timedelta(minutes=15),
    )
    JWT_REFRESH_TOKEN_EXPIRES: timedelta = _env_duration(
        "JWT_REFRESH_TOKEN_EXPIRES", "_DAYS", timedelta(days=1), timedelta(days=7),
    )

    # ── Credentials ───────────────────────────────────────────────────────
    BCRYPT_LOG_ROUNDS:   int = _env_int("BCRYPT_LOG_ROUNDS", 12)
    PASSWORD_MIN_LENGTH: int = _env_int("PASSWORD_MIN_LENGTH", 8)
    PASSWORD_MAX_LENGTH: int = _env_int("PASSWORD_MAX_LENGTH", 128)

    # Login throttle: block an IP once it has this many failures in the window.
    LOGIN_MAX_FAILED_ATTEMPTS:    int = _env_int("LOGIN_MAX_FAILED_ATTEMPTS", 5)
    LOGIN_ATTEMPT_WINDOW_MINUTES: int = _env_int("LOGIN_ATTEMPT_WINDOW_MINUTES", 15)

    # Registration cap: this many sign-ups per IP in the window.
    REGISTER_MAX_ATTEMPTS:   int = _env_int("REGISTER_MAX_ATTEMPTS", 3)
    REGISTER_WINDOW_MINUTES: int = _env_int("REGISTER_WINDOW_MINUTES", 60)

    # Honour X-Forwarded-For only behind a trusted reverse proxy.
    TRUST_PROXY_HEADERS: bool = _env_flag("TRUST_PROXY_HEADERS")

    LOG_LEVEL: str = _env("LOG_LEVEL", "INFO")

    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    JSON_SORT_KEYS: bool = False


class DevelopmentConfig(BaseConfig):
    DEBUG:   bool = True
    TESTING: bool = False

    SQLALCHEMY_DATABASE_URI: str = _env(
        "DATABASE_URL",
        f"sqlite:///{_PROJECT_ROOT / 'secure_api.db'}",
    )
    LOG_LEVEL: str = _env("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    """Fixed secrets and lifetimes so test expectations do not depend on .env."""

    DEBUG:   bool = True
    TESTING: bool = True

    SQLALCHEMY_DATABASE_URI: str = _env("TEST_DATABASE_URL", "sqlite://")

    JWT_ACCESS_SECRET:  str = "testing-access-secret-0123456789abcdef"
    JWT_REFRESH_SECRET: str = "testing-refresh-secret-0123456789abcdef"
    JWT_ACCESS_TOKEN_EXPIRES:  timedelta = timedelta(minutes=15)
    JWT_REFRESH_TOKEN_EXPIRES: timedelta = timedelta(days=7)

    # Minimum cost bcrypt accepts; keeps the suite fast.
    BCRYPT_LOG_ROUNDS: int = 4
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_MAX_LENGTH: int = 128
    LOGIN_MAX_FAILED_ATTEMPTS:    int = 5
    LOGIN_ATTEMPT_WINDOW_MINUTES: int = 15
    # Every test registers from 127.0.0.1; the cap's own tests lower it.
    REGISTER_MAX_ATTEMPTS:   int = 1000
    REGISTER_WINDOW_MINUTES: int = 60
    TRUST_PROXY_HEADERS: bool = False
    LOG_LEVEL: str = "WARNING"


def _normalise_database_url(url: str) -> str:
    # Some hosts still hand out 'postgres://', which SQLAlchemy 2 refuses.
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


class ProductionConfig(BaseConfig):
    DEBUG:   bool = False
    TESTING: bool = False

    SQLALCHEMY_DATABASE_URI: str = _normalise_database_url(_env("DATABASE_URL", ""))


def validate_production_config(app) -> None:
    """
    Refuses to start production with a missing database, placeholder or
    shared secrets, or a bcrypt cost below 10. Called by create_app right
    after the config object is loaded.

    Raises ValueError naming the first problem found.
    """
    config = app.config
    if not config.get("SQLALCHEMY_DATABASE_URI"):
        raise ValueError("DATABASE_URL must be set in production.")

    for key in ("SECRET_KEY", "JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET"):
        if config.get(key, "").startswith(_PLACEHOLDER_SECRET):
            raise ValueError(f"{key} still holds the development placeholder; set a strong random value.")

    if config["JWT_ACCESS_SECRET"] == config["JWT_REFRESH_SECRET"]:
        raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ.")

    if config.get("BCRYPT_LOG_ROUNDS", 0) < 10:
        raise ValueError("BCRYPT_LOG_ROUNDS must be at least 10 in production.")


config_by_name: dict[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing":     TestingConfig,
    "production":  ProductionConfig,
}
