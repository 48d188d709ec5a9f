from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI

from lens_manager import __version__
from lens_manager.auth import TokenService, bootstrap_admin_if_needed
from lens_manager.config import Config, load_config
from lens_manager.db import init_db
from lens_manager.errors import install_error_handlers

from . import access_routes, auth_routes, billing_routes, gallery_routes, studio_routes
from .common import _debug


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    """Build the API.

    The token service is constructed here, so a missing AUTH_JWT_SECRET raises
    SignatureSecretMissing before the server accepts a single request.
    """
    cfg = cfg or load_config()
    tokens = TokenService.from_config(cfg)

    app = FastAPI(title="Lens Manager API", version=__version__)
    # Auth deps and route handlers read these.
    app.state.cfg = cfg
    app.state.tokens = tokens

    install_error_handlers(app)

    @app.on_event("startup")
    def _on_startup() -> None:
        # Ensure schema exists (and default plans are seeded).
        init_db(cfg.DB_DSN)

        boot = bootstrap_admin_if_needed(cfg)
        if boot:
            _debug(f"Bootstrapped initial admin user: email={boot.get('email')} role={boot.get('role')}")

    # -----------------------------
    # Health
    # -----------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "env": cfg.APP_ENV}

    app.include_router(auth_routes.router, tags=["auth"])
    app.include_router(access_routes.router, tags=["access-levels"])
    app.include_router(studio_routes.router, tags=["studio"])
    app.include_router(billing_routes.router, tags=["billing"])
    app.include_router(gallery_routes.router, tags=["galleries"])

    _debug(f"API ready (env={cfg.APP_ENV})")
    return app
