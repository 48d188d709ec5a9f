"""Error types and the JSON error shape used by the API.

Every error body the API returns looks like `{"message": str, "details"?: any}`;
entitlement denials add `"error"` so the frontend can offer an upgrade.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class SignatureSecretMissing(RuntimeError):
    """No JWT signing secret configured. The process must not start."""


class EntitlementDenied(Exception):
    code = "entitlement_denied"

    def __init__(self, message: str, *, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class LimitReached(EntitlementDenied):
    code = "limit_reached"

    def __init__(
        self,
        *,
        kind: str,
        bound: float,
        usage: float,
        plan_name: str,
        noun: str,
    ):
        self.kind = kind
        self.bound = bound
        self.usage = usage
        self.plan_name = plan_name
        if kind == "storage":
            message = f"You've reached your storage limit of {_fmt_number(bound)} GB."
            details = f"Upgrade from {plan_name} to upload more images."
        else:
            plural = noun if int(bound) == 1 else f"{noun}s"
            message = f"You've reached your limit of {_fmt_number(bound)} {plural}."
            details = f"Upgrade from {plan_name} to add more {noun}s."
        super().__init__(message, details=details)


class PlanUnresolved(EntitlementDenied):
    code = "plan_unresolved"

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(
            "Your account has no access plan.",
            details="Contact support to have a plan assigned.",
        )


def _fmt_number(v: float) -> str:
    f = float(v)
    return str(int(f)) if f.is_integer() else str(f)


def api_error(status_code: int, message: str, details: Any = None) -> HTTPException:
    """HTTPException whose body renders as {message, details?}."""
    detail: Dict[str, Any] = {"message": message}
    if details is not None:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


def unauthorized(details: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"message": "Access denied", "details": details},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _body_from_detail(detail: Any) -> Dict[str, Any]:
    if isinstance(detail, dict) and "message" in detail:
        return dict(detail)
    return {"message": str(detail)}


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_body_from_detail(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"message": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


async def _entitlement_handler(request: Request, exc: EntitlementDenied) -> JSONResponse:
    body: Dict[str, Any] = {"message": exc.message, "error": exc.code}
    if exc.details is not None:
        body["details"] = exc.details
    return JSONResponse(status_code=403, content=body)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(EntitlementDenied, _entitlement_handler)
