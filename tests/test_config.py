"""
Config loading and startup refusal without a signing secret.
"""
import pytest

from lens_manager.api.server import create_app
from lens_manager.config import Config, load_config
from lens_manager.errors import SignatureSecretMissing

ENV_KEYS = (
    "APP_ENV",
    "LENS_DATABASE_URL",
    "DATABASE_URL",
    "LENS_DB_PATH",
    "AUTH_JWT_SECRET",
    "AUTH_TOKEN_TTL_SECONDS",
    "AUTH_ALLOW_REGISTRATION",
    "AUTH_BOOTSTRAP_ADMIN_EMAIL",
    "AUTH_BOOTSTRAP_ADMIN_PASSWORD",
)


@pytest.fixture
def clean_env(monkeypatch):
    for k in ENV_KEYS:
        monkeypatch.delenv(k, raising=False)
    return monkeypatch


def test_defaults_have_no_secret(clean_env):
    cfg = load_config(dotenv=False)
    assert cfg.AUTH_JWT_SECRET is None
    assert cfg.AUTH_TOKEN_TTL_SECONDS == 86400
    assert cfg.AUTH_JWT_ISSUER == "lens-booking-pro"
    assert cfg.AUTH_JWT_AUDIENCE == "lens-booking-users"
    assert cfg.AUTH_ALLOW_REGISTRATION is True
    assert cfg.is_production is False


def test_env_overrides(clean_env, tmp_path):
    clean_env.setenv("LENS_DB_PATH", str(tmp_path / "x.sqlite"))
    clean_env.setenv("AUTH_JWT_SECRET", "  from-env-secret  ")
    clean_env.setenv("AUTH_TOKEN_TTL_SECONDS", "3600")
    clean_env.setenv("AUTH_ALLOW_REGISTRATION", "off")
    cfg = load_config(dotenv=False)
    assert cfg.DB_DSN == str(tmp_path / "x.sqlite")
    assert cfg.AUTH_JWT_SECRET == "from-env-secret"
    assert cfg.AUTH_TOKEN_TTL_SECONDS == 3600
    assert cfg.AUTH_ALLOW_REGISTRATION is False


def test_database_url_precedence(clean_env):
    clean_env.setenv("LENS_DB_PATH", "./local.sqlite")
    clean_env.setenv("DATABASE_URL", "postgresql://u:p@db/other")
    clean_env.setenv("LENS_DATABASE_URL", "postgresql://u:p@db/lens")
    assert load_config(dotenv=False).DB_DSN == "postgresql://u:p@db/lens"


def test_production_rejects_sqlite():
    with pytest.raises(ValueError):
        Config(APP_ENV="production", DB_DSN="./lens.sqlite", AUTH_JWT_SECRET="x" * 32)


def test_production_accepts_postgres():
    cfg = Config(APP_ENV="production", DB_DSN="postgresql://u:p@db/lens", AUTH_JWT_SECRET="x" * 32)
    assert cfg.is_production


def test_invalid_app_env():
    with pytest.raises(ValueError):
        Config(APP_ENV="staging")


def test_app_refuses_to_start_without_secret(clean_env, tmp_path):
    clean_env.setenv("LENS_DB_PATH", str(tmp_path / "x.sqlite"))
    with pytest.raises(SignatureSecretMissing):
        create_app(load_config(dotenv=False))


def test_blank_secret_is_treated_as_missing(clean_env, tmp_path):
    clean_env.setenv("LENS_DB_PATH", str(tmp_path / "x.sqlite"))
    clean_env.setenv("AUTH_JWT_SECRET", "   ")
    with pytest.raises(SignatureSecretMissing):
        create_app(load_config(dotenv=False))
