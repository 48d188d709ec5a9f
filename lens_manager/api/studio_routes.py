from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from lens_manager.auth import get_current_user
from lens_manager.config import Config
from lens_manager.db import connect
from lens_manager.studio import bookings, clients
from lens_manager.studio.dashboard import dashboard

from .common import get_config, http_from_value_error, not_found, ok


router = APIRouter()


class ClientRequest(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None


class ClientUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None


class BookingRequest(BaseModel):
    client_id: int
    booking_date: str  # YYYY-MM-DD
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    package_type: Optional[str] = None
    package_name: Optional[str] = None
    total_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class BookingUpdateRequest(BaseModel):
    client_id: Optional[int] = None
    booking_date: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    package_type: Optional[str] = None
    package_name: Optional[str] = None
    total_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


# -----------------------------
# Clients
# -----------------------------


@router.get("/clients")
def list_clients(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"clients": clients.list_clients(conn, int(user["user_id"]))}


@router.get("/clients/{client_id}")
def get_client(
    client_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        c = clients.get_client(conn, int(user["user_id"]), client_id)
    if c is None:
        raise not_found("client")
    return {"client": c}


@router.post("/clients", status_code=201)
def create_client(
    payload: ClientRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            c = clients.create_client(
                conn,
                int(user["user_id"]),
                payload.model_dump(),
                default_country=cfg.DEFAULT_CLIENT_COUNTRY,
            )
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Client created successfully", id=c["client_id"], client=c)


@router.put("/clients/{client_id}")
def update_client(
    client_id: int,
    payload: ClientUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            c = clients.update_client(conn, int(user["user_id"]), client_id, payload.model_dump(exclude_unset=True))
        except ValueError as e:
            raise http_from_value_error(e)
    if c is None:
        raise not_found("client")
    return ok("Client updated successfully", client=c)


@router.delete("/clients/{client_id}")
def delete_client(
    client_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        deleted = clients.delete_client(conn, int(user["user_id"]), client_id)
    if not deleted:
        raise not_found("client")
    return ok("Client deleted successfully")


# -----------------------------
# Bookings
# -----------------------------


@router.get("/bookings")
def list_bookings(
    status: Optional[str] = Query(None),
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"bookings": bookings.list_bookings(conn, int(user["user_id"]), status=status)}


@router.get("/bookings/{booking_id}")
def get_booking(
    booking_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        b = bookings.get_booking(conn, int(user["user_id"]), booking_id)
    if b is None:
        raise not_found("booking")
    return {"booking": b}


@router.post("/bookings", status_code=201)
def create_booking(
    payload: BookingRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            b = bookings.create_booking(conn, int(user["user_id"]), payload.model_dump())
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Booking created successfully", id=b["booking_id"], booking=b)


@router.put("/bookings/{booking_id}")
def update_booking(
    booking_id: int,
    payload: BookingUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            b = bookings.update_booking(conn, int(user["user_id"]), booking_id, payload.model_dump(exclude_unset=True))
        except ValueError as e:
            raise http_from_value_error(e)
    if b is None:
        raise not_found("booking")
    return ok("Booking updated successfully", booking=b)


@router.put("/bookings/{booking_id}/status")
def update_booking_status(
    booking_id: int,
    payload: StatusRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            b = bookings.set_booking_status(conn, int(user["user_id"]), booking_id, payload.status)
        except ValueError as e:
            raise http_from_value_error(e)
    if b is None:
        raise not_found("booking")
    return ok("Booking status updated successfully", booking=b)


@router.delete("/bookings/{booking_id}")
def delete_booking(
    booking_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        deleted = bookings.delete_booking(conn, int(user["user_id"]), booking_id)
    if not deleted:
        raise not_found("booking")
    return ok("Booking deleted successfully")


# -----------------------------
# Dashboard
# -----------------------------


@router.get("/dashboard")
def get_dashboard(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return dashboard(conn, int(user["user_id"]))
