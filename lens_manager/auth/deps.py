from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lens_manager.db import connect
from lens_manager.errors import api_error, unauthorized

from .crud import get_user_by_id, public_user


_bearer = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    """Authenticate a request from its `Authorization: Bearer <jwt>` header.

    The token only proves who the caller was at issue time; the user row is
    re-read so deactivated accounts lose access immediately.
    """

    cfg = getattr(request.app.state, "cfg", None)
    tokens = getattr(request.app.state, "tokens", None)
    if cfg is None or tokens is None:
        raise HTTPException(status_code=500, detail="server_config_missing")

    if credentials is None or not credentials.credentials:
        raise unauthorized("missing_token")

    identity = tokens.validate(credentials.credentials)
    if identity is None:
        raise unauthorized("token_invalid")

    with connect(cfg.DB_DSN) as conn:
        row = get_user_by_id(conn, identity.user_id)
        if row is None:
            raise unauthorized("user_not_found")
        if int(row["is_active"] or 0) != 1:
            raise unauthorized("user_inactive")
        user = public_user(row)

    return user


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise api_error(403, "Admin access required", "admin_required")
    return user
