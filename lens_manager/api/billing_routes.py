from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from lens_manager.auth import get_current_user
from lens_manager.config import Config
from lens_manager.db import connect
from lens_manager.studio import invoices, payments

from .common import get_config, http_from_value_error, not_found, ok


router = APIRouter()


class InvoiceRequest(BaseModel):
    client_id: int
    total_amount: float
    booking_id: Optional[int] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    subtotal: Optional[float] = None
    tax_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class InvoiceUpdateRequest(BaseModel):
    client_id: Optional[int] = None
    booking_id: Optional[int] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    subtotal: Optional[float] = None
    tax_amount: Optional[float] = None
    total_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


class ScheduleRequest(BaseModel):
    schedule_name: str
    due_date: str
    amount: float
    invoice_id: Optional[int] = None
    booking_id: Optional[int] = None
    schedule_type: Optional[str] = None
    paid_amount: Optional[float] = None
    status: Optional[str] = None
    payment_date: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class ScheduleUpdateRequest(BaseModel):
    schedule_name: Optional[str] = None
    due_date: Optional[str] = None
    amount: Optional[float] = None
    invoice_id: Optional[int] = None
    booking_id: Optional[int] = None
    schedule_type: Optional[str] = None
    paid_amount: Optional[float] = None
    status: Optional[str] = None
    payment_date: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class InstallmentRequest(BaseModel):
    amount: float
    paid_date: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


# -----------------------------
# Invoices
# -----------------------------


@router.get("/invoices")
def list_invoices(
    status: Optional[str] = Query(None),
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"invoices": invoices.list_invoices(conn, int(user["user_id"]), status=status)}


@router.get("/invoices/{invoice_id}")
def get_invoice(
    invoice_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        inv = invoices.get_invoice(conn, int(user["user_id"]), invoice_id)
        if inv is None:
            raise not_found("invoice")
        inv["payment_schedules"] = payments.list_schedules(conn, int(user["user_id"]), invoice_id=invoice_id)
    return {"invoice": inv}


@router.post("/invoices", status_code=201)
def create_invoice(
    payload: InvoiceRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            inv = invoices.create_invoice(conn, int(user["user_id"]), payload.model_dump())
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Invoice created successfully", id=inv["invoice_id"], invoice=inv)


@router.put("/invoices/{invoice_id}")
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            inv = invoices.update_invoice(conn, int(user["user_id"]), invoice_id, payload.model_dump(exclude_unset=True))
        except ValueError as e:
            raise http_from_value_error(e)
    if inv is None:
        raise not_found("invoice")
    return ok("Invoice updated successfully", invoice=inv)


@router.put("/invoices/{invoice_id}/status")
def update_invoice_status(
    invoice_id: int,
    payload: StatusRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            inv = invoices.set_invoice_status(conn, int(user["user_id"]), invoice_id, payload.status)
        except ValueError as e:
            raise http_from_value_error(e)
    if inv is None:
        raise not_found("invoice")
    return ok("Invoice status updated successfully", invoice=inv)


@router.delete("/invoices/{invoice_id}")
def delete_invoice(
    invoice_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        deleted = invoices.delete_invoice(conn, int(user["user_id"]), invoice_id)
    if not deleted:
        raise not_found("invoice")
    return ok("Invoice deleted successfully")


# -----------------------------
# Payment schedules
# -----------------------------


@router.get("/payments")
def list_schedules(
    invoice_id: Optional[int] = Query(None),
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"payment_schedules": payments.list_schedules(conn, int(user["user_id"]), invoice_id=invoice_id)}


@router.get("/payments/installments")
def list_all_installments(
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"installments": payments.list_all_installments(conn, int(user["user_id"]))}


@router.get("/payments/{schedule_id}")
def get_schedule(
    schedule_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        s = payments.get_schedule(conn, int(user["user_id"]), schedule_id)
    if s is None:
        raise not_found("payment schedule")
    return {"payment_schedule": s}


@router.post("/payments", status_code=201)
def create_schedule(
    payload: ScheduleRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            s = payments.create_schedule(conn, int(user["user_id"]), payload.model_dump())
        except ValueError as e:
            raise http_from_value_error(e)
    return ok("Payment schedule created successfully", id=s["schedule_id"], payment_schedule=s)


@router.put("/payments/{schedule_id}")
def update_schedule(
    schedule_id: int,
    payload: ScheduleUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            s = payments.update_schedule(conn, int(user["user_id"]), schedule_id, payload.model_dump(exclude_unset=True))
        except ValueError as e:
            raise http_from_value_error(e)
    if s is None:
        raise not_found("payment schedule")
    return ok("Payment schedule updated successfully", payment_schedule=s)


@router.delete("/payments/{schedule_id}")
def delete_schedule(
    schedule_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        deleted = payments.delete_schedule(conn, int(user["user_id"]), schedule_id)
    if not deleted:
        raise not_found("payment schedule")
    return ok("Payment schedule deleted successfully")


@router.get("/payments/{schedule_id}/installments")
def list_installments(
    schedule_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        rows = payments.list_installments(conn, int(user["user_id"]), schedule_id)
    if rows is None:
        raise not_found("payment schedule")
    return {"installments": rows}


@router.post("/payments/{schedule_id}/installments", status_code=201)
def add_installment(
    schedule_id: int,
    payload: InstallmentRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            out = payments.add_installment(conn, int(user["user_id"]), schedule_id, payload.model_dump())
        except ValueError as e:
            raise http_from_value_error(e)
    if out is None:
        raise not_found("payment schedule")
    return ok("Installment recorded successfully", **out)
