"""
Pytest configuration and fixtures.

Every test gets its own SQLite file under tmp_path, so tests never share state.
"""
import itertools

import pytest
from fastapi.testclient import TestClient

from lens_manager.api.server import create_app
from lens_manager.auth.crud import create_user
from lens_manager.config import Config
from lens_manager.db import connect, init_db
from lens_manager.plans import create_access_level, get_access_level_by_name

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
PASSWORD = "password123"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password-1"


@pytest.fixture
def cfg(tmp_path):
    return Config(
        DB_DSN=str(tmp_path / "lens.sqlite"),
        AUTH_JWT_SECRET=TEST_SECRET,
        AUTH_BOOTSTRAP_ADMIN_EMAIL=ADMIN_EMAIL,
        AUTH_BOOTSTRAP_ADMIN_PASSWORD=ADMIN_PASSWORD,
    )


@pytest.fixture
def db(cfg):
    """Initialized database DSN (schema + default plans)."""
    init_db(cfg.DB_DSN)
    return cfg.DB_DSN


@pytest.fixture
def make_plan(db):
    def _make(name, max_clients=None, max_bookings=None, max_storage_gb=None):
        with connect(db) as conn:
            return create_access_level(
                conn,
                {
                    "level_name": name,
                    "max_clients": max_clients,
                    "max_bookings": max_bookings,
                    "max_storage_gb": max_storage_gb,
                },
            )

    return _make


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(plan=None, email=None, role="photographer"):
        n = next(counter)
        with connect(db) as conn:
            access_level_id = None
            if plan is not None:
                access_level_id = int(get_access_level_by_name(conn, plan)["access_level_id"])
            return create_user(
                conn,
                email=email or f"user{n}@example.com",
                password=PASSWORD,
                full_name=f"User {n}",
                role=role,
                access_level_id=access_level_id,
            )

    return _make


@pytest.fixture
def client(cfg, db):
    app = create_app(cfg)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def login(client):
    def _login(email, password=PASSWORD):
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['access_token']}"}

    return _login


@pytest.fixture
def register(client):
    """Sign up a photographer through the API. Returns (user, auth headers)."""

    def _register(email, password=PASSWORD, full_name="Test Photographer"):
        r = client.post("/auth/register", json={"email": email, "password": password, "full_name": full_name})
        assert r.status_code == 201, r.text
        body = r.json()
        return body["user"], {"Authorization": f"Bearer {body['access_token']}"}

    return _register


@pytest.fixture
def admin_headers(login):
    return login(ADMIN_EMAIL, ADMIN_PASSWORD)
