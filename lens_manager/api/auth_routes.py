from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from lens_manager.auth import get_current_user, require_admin
from lens_manager.auth.crud import (
    assign_access_level,
    change_password,
    create_user,
    identity_of,
    list_users,
    public_user,
    set_active,
    touch_last_login,
    update_profile,
    verify_user_credentials,
)
from lens_manager.config import Config
from lens_manager.db import connect
from lens_manager.errors import api_error

from .common import _debug, get_config, http_from_value_error, ok


router = APIRouter()


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: str
    phone: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    currency_type: Optional[str] = None
    business_name: Optional[str] = None
    business_email: Optional[str] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class CreateUserRequest(BaseModel):
    email: str
    password: str
    full_name: str = ""
    role: str = "photographer"  # admin|photographer
    access_level_id: Optional[int] = None


class AssignPlanRequest(BaseModel):
    access_level_id: int
    access_expires_at: Optional[str] = None  # YYYY-MM-DD


class SetActiveRequest(BaseModel):
    is_active: bool


def _token_response(request: Request, user: Dict[str, Any]) -> Dict[str, Any]:
    tokens = request.app.state.tokens
    token = tokens.issue(identity_of(user))
    return {
        "message": "Login successful",
        "access_token": token,
        "token_type": "bearer",
        "expires_in": tokens.ttl_seconds,
        "user": user,
    }


# -----------------------------
# Auth
# -----------------------------


@router.post("/auth/login")
def auth_login(payload: LoginRequest, request: Request, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        user_row = verify_user_credentials(conn, payload.email, payload.password)
        if user_row is None:
            raise api_error(401, "Invalid email or password", "invalid_credentials")
        if int(user_row["is_active"] or 0) != 1:
            raise api_error(403, "Your account is inactive. Please contact support.", "account_inactive")

        touch_last_login(conn, int(user_row["user_id"]))
        u = public_user(user_row)

    return _token_response(request, u)


@router.post("/auth/register", status_code=201)
def auth_register(payload: RegisterRequest, request: Request, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    if not cfg.AUTH_ALLOW_REGISTRATION:
        raise api_error(403, "Registration is closed", "registration_disabled")
    if not (payload.full_name or "").strip():
        raise api_error(400, "Full name is required", "full_name_required")

    with connect(cfg.DB_DSN) as conn:
        try:
            u = create_user(
                conn,
                email=payload.email,
                password=payload.password,
                full_name=payload.full_name,
                phone=payload.phone,
                role="photographer",
                default_plan_name=cfg.DEFAULT_PLAN_NAME,
                currency_type=cfg.DEFAULT_CURRENCY,
            )
        except ValueError as e:
            raise http_from_value_error(e)

    _debug(f"Registered user_id={u['user_id']}")
    out = _token_response(request, u)
    out["message"] = "User registered successfully"
    return out


@router.post("/auth/logout")
def auth_logout() -> Dict[str, Any]:
    """Tokens are stateless; the client just drops its copy."""
    return ok("Logged out", ok=True)


@router.get("/auth/me")
def auth_me(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return {"user": user}


@router.put("/auth/profile")
def auth_update_profile(
    payload: ProfileUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            u = update_profile(conn, int(user["user_id"]), payload.model_dump(exclude_unset=True))
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Profile updated", user=u)


@router.post("/auth/change-password")
def auth_change_password(
    payload: ChangePasswordRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            change_password(conn, int(user["user_id"]), payload.current_password, payload.new_password)
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Password changed")


# -----------------------------
# Admin: users
# -----------------------------


@router.get("/admin/users")
def admin_list_users(
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"users": list_users(conn)}


@router.post("/admin/users", status_code=201)
def admin_create_user(
    payload: CreateUserRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            u = create_user(
                conn,
                email=payload.email,
                password=payload.password,
                full_name=payload.full_name,
                role=payload.role,
                access_level_id=payload.access_level_id,
                default_plan_name=cfg.DEFAULT_PLAN_NAME,
                currency_type=cfg.DEFAULT_CURRENCY,
            )
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("User created", user=u)


@router.put("/admin/users/{user_id}/access-level")
def admin_assign_plan(
    user_id: int,
    payload: AssignPlanRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            u = assign_access_level(
                conn,
                user_id,
                access_level_id=payload.access_level_id,
                access_expires_at=payload.access_expires_at,
            )
        except ValueError as e:
            raise http_from_value_error(e)
    _debug(f"user_id={user_id} moved to access_level_id={payload.access_level_id}")
    return ok("Access level updated", user=u)


@router.put("/admin/users/{user_id}/active")
def admin_set_active(
    user_id: int,
    payload: SetActiveRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    if int(admin["user_id"]) == int(user_id) and not payload.is_active:
        raise api_error(400, "You cannot deactivate your own account", "cannot_deactivate_self")
    with connect(cfg.DB_DSN) as conn:
        try:
            u = set_active(conn, user_id, payload.is_active)
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("User updated", user=u)
