from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lens_manager.auth import get_current_user, require_admin
from lens_manager.config import Config
from lens_manager.db import connect
from lens_manager.entitlements import ResourceKind, check, snapshot
from lens_manager.errors import api_error
from lens_manager.plans import create_access_level, list_access_levels, update_access_level

from .common import get_config, http_from_value_error, ok


router = APIRouter()


class AccessLevelRequest(BaseModel):
    level_name: str
    max_clients: Optional[int] = None
    max_bookings: Optional[int] = None
    max_storage_gb: Optional[float] = None


class AccessLevelUpdateRequest(BaseModel):
    level_name: Optional[str] = None
    max_clients: Optional[int] = None
    max_bookings: Optional[int] = None
    max_storage_gb: Optional[float] = None


@router.get("/access-levels")
def get_access_levels(
    _user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"access_levels": list_access_levels(conn)}


@router.get("/access-levels/user-info")
def get_user_access_info(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        snap = snapshot(conn, int(user["user_id"]))
    if snap is None:
        raise api_error(404, "User access information not found", "user_not_found")
    return snap.as_dict()


def _permission(user: Dict[str, Any], cfg: Config, kind: ResourceKind) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        decision = check(conn, int(user["user_id"]), kind)
    return {
        "can_create": decision.allowed,
        "reason": decision.reason,
        "current": decision.usage,
        "limit": decision.bound,
    }


@router.get("/access-levels/check-client")
def check_client_permission(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    return _permission(user, cfg, ResourceKind.CLIENT)


@router.get("/access-levels/check-booking")
def check_booking_permission(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    return _permission(user, cfg, ResourceKind.BOOKING)


@router.get("/access-levels/check-storage")
def check_storage_permission(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    return _permission(user, cfg, ResourceKind.STORAGE)


# -----------------------------
# Admin: plans
# -----------------------------


@router.post("/admin/access-levels", status_code=201)
def admin_create_access_level(
    payload: AccessLevelRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            level = create_access_level(conn, payload.model_dump())
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Access level created", access_level=level)


@router.put("/admin/access-levels/{access_level_id}")
def admin_update_access_level(
    access_level_id: int,
    payload: AccessLevelUpdateRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            level = update_access_level(conn, access_level_id, payload.model_dump(exclude_unset=True))
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Access level updated", access_level=level)
