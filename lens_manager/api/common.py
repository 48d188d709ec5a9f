from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, Request

from lens_manager.config import Config
from lens_manager.errors import api_error


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return cfg


def http_from_value_error(e: ValueError) -> HTTPException:
    """Map a crud-layer ValueError("snake_code") to an HTTP error.

    *_not_found -> 404, *_exists -> 409, everything else -> 400.
    """
    code = str(e) or "invalid_request"
    if code.endswith("_not_found"):
        status = 404
    elif code.endswith("_exists"):
        status = 409
    else:
        status = 400
    return api_error(status, code.replace("_", " ").capitalize(), code)


def not_found(what: str) -> HTTPException:
    code = what.replace(" ", "_")
    return api_error(404, f"{what.capitalize()} not found", f"{code}_not_found")


def ok(message: str, **data: Any) -> Dict[str, Any]:
    return {"message": message, **data}
