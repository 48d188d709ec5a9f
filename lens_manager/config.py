import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _env_str(name: str) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _is_sqlite_dsn(dsn: str) -> bool:
    s = (dsn or "").strip().lower()
    return not (s.startswith("postgres://") or s.startswith("postgresql://"))


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code. AUTH_JWT_SECRET has no default;
    the API refuses to start without one.
    """

    # -----------------
    # Core
    # -----------------
    # development | production
    APP_ENV: str = "development"

    # Preferred: set LENS_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: LENS_DB_PATH for SQLite.
    DB_DSN: str = "./lens_manager.sqlite"

    # -----------------
    # Auth (JWT)
    # -----------------
    AUTH_JWT_SECRET: Optional[str] = None
    AUTH_TOKEN_TTL_SECONDS: int = 86400  # 24h
    AUTH_JWT_ISSUER: str = "lens-booking-pro"
    AUTH_JWT_AUDIENCE: str = "lens-booking-users"

    # Bootstrap first admin user if no admin exists. Both must be set.
    AUTH_BOOTSTRAP_ADMIN_EMAIL: Optional[str] = None
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: Optional[str] = None

    # Public self-serve signup (/auth/register)
    AUTH_ALLOW_REGISTRATION: bool = True

    # -----------------
    # Studio defaults
    # -----------------
    DEFAULT_CURRENCY: str = "USD"
    DEFAULT_CLIENT_COUNTRY: str = "Sri Lanka"
    DEFAULT_PLAN_NAME: str = "Free"

    def __post_init__(self) -> None:
        env = (self.APP_ENV or "").strip().lower()
        if env not in ("development", "production"):
            raise ValueError(f"invalid APP_ENV: {self.APP_ENV!r}")
        if env == "production" and _is_sqlite_dsn(self.DB_DSN):
            raise ValueError("production requires a Postgres DSN (LENS_DATABASE_URL)")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == "production"


def load_config(*, dotenv: bool = True) -> Config:
    """Build a Config from the process environment (and a local .env if present)."""
    if dotenv:
        load_dotenv()

    return Config(
        APP_ENV=_env_str("APP_ENV") or "development",
        DB_DSN=(
            _env_str("LENS_DATABASE_URL")
            or _env_str("DATABASE_URL")
            or _env_str("LENS_DB_PATH")
            or "./lens_manager.sqlite"
        ),
        AUTH_JWT_SECRET=_env_str("AUTH_JWT_SECRET"),
        AUTH_TOKEN_TTL_SECONDS=int(os.environ.get("AUTH_TOKEN_TTL_SECONDS", "86400")),
        AUTH_JWT_ISSUER=os.environ.get("AUTH_JWT_ISSUER", "lens-booking-pro"),
        AUTH_JWT_AUDIENCE=os.environ.get("AUTH_JWT_AUDIENCE", "lens-booking-users"),
        AUTH_BOOTSTRAP_ADMIN_EMAIL=_env_str("AUTH_BOOTSTRAP_ADMIN_EMAIL"),
        AUTH_BOOTSTRAP_ADMIN_PASSWORD=_env_str("AUTH_BOOTSTRAP_ADMIN_PASSWORD"),
        AUTH_ALLOW_REGISTRATION=_env_bool("AUTH_ALLOW_REGISTRATION", True) is True,
        DEFAULT_CURRENCY=os.environ.get("DEFAULT_CURRENCY", "USD"),
        DEFAULT_CLIENT_COUNTRY=os.environ.get("DEFAULT_CLIENT_COUNTRY", "Sri Lanka"),
        DEFAULT_PLAN_NAME=os.environ.get("DEFAULT_PLAN_NAME", "Free"),
    )
