"""Bookings and their status flow.

Statuses: pending -> confirmed -> shoot_completed -> completed, plus the two
cancel states. A booking never returns to `pending`, and a completed booking
can only be cancelled. Confirming creates a draft invoice when the booking has
none; cancelling voids the booking's unpaid invoices and payment schedules.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from lens_manager.db import insert_returning_id, row_to_dict, rows_to_dicts, update_fields
from lens_manager.entitlements import ResourceKind, guard_create
from lens_manager.util.sanitize import clean_fields, reject_nulls
from lens_manager.util.time import compact_date, today_iso, utcnow_iso

from .clients import get_client
from .invoices import new_invoice_number


BOOKING_STATUSES = (
    "pending",
    "confirmed",
    "shoot_completed",
    "completed",
    "cancelled",
    "cancel_by_client",
)
CANCEL_STATUSES = ("cancelled", "cancel_by_client")

BOOKING_FIELDS = (
    "client_id",
    "title",
    "description",
    "booking_date",
    "start_time",
    "end_time",
    "location",
    "package_type",
    "package_name",
    "total_amount",
    "deposit_amount",
    "notes",
)
TEXT_FIELDS = ("title", "description", "location", "package_type", "package_name", "notes")

_SELECT = """
    SELECT b.*, c.name AS client_name, c.email AS client_email, c.phone AS client_phone
    FROM bookings b
    JOIN clients c ON c.client_id = b.client_id
"""


def _check_date(value: Any, code: str) -> str:
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValueError(code) from None


def _check_amounts(d: Dict[str, Any]) -> None:
    for k in ("total_amount", "deposit_amount"):
        if k in d and d[k] is not None and float(d[k]) < 0:
            raise ValueError(f"{k}_negative")


def list_bookings(conn: Any, user_id: int, *, status: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = _SELECT + " WHERE b.user_id=?"
    params: List[Any] = [int(user_id)]
    if status:
        sql += " AND b.status=?"
        params.append(status)
    sql += " ORDER BY b.booking_date DESC, b.booking_id DESC"
    return rows_to_dicts(conn.execute(sql, params).fetchall())


def get_booking(conn: Any, user_id: int, booking_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        _SELECT + " WHERE b.booking_id=? AND b.user_id=?",
        (int(booking_id), int(user_id)),
    ).fetchone()
    return row_to_dict(row)


def create_booking(conn: Any, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    d = clean_fields({k: data.get(k) for k in BOOKING_FIELDS}, TEXT_FIELDS)
    if not d.get("client_id"):
        raise ValueError("client_id_required")
    if not d.get("booking_date"):
        raise ValueError("booking_date_required")
    d["booking_date"] = _check_date(d["booking_date"], "booking_date_invalid")
    _check_amounts(d)
    status = data.get("status") or "pending"
    if status not in BOOKING_STATUSES:
        raise ValueError("invalid_status")
    if get_client(conn, user_id, int(d["client_id"])) is None:
        raise ValueError("client_not_found")

    guard_create(conn, user_id, ResourceKind.BOOKING)

    now = utcnow_iso()
    d["total_amount"] = float(d.get("total_amount") or 0)
    d["deposit_amount"] = float(d.get("deposit_amount") or 0)
    cols = list(BOOKING_FIELDS)
    booking_id = insert_returning_id(
        conn,
        f"""
        INSERT INTO bookings (user_id, {", ".join(cols)}, status, created_at, updated_at)
        VALUES ({", ".join(["?"] * (len(cols) + 4))})
        """,
        [int(user_id)] + [d.get(c) for c in cols] + [status, now, now],
        "booking_id",
    )
    out = get_booking(conn, user_id, booking_id)
    assert out is not None
    return out


def update_booking(conn: Any, user_id: int, booking_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Partial update. A `status` key goes through the same rules as set_booking_status."""
    current = get_booking(conn, user_id, booking_id)
    if current is None:
        return None

    fields = clean_fields({k: v for k, v in changes.items() if k in BOOKING_FIELDS}, TEXT_FIELDS)
    reject_nulls(fields, ("total_amount", "deposit_amount"))
    if "booking_date" in fields:
        if not fields["booking_date"]:
            raise ValueError("booking_date_required")
        fields["booking_date"] = _check_date(fields["booking_date"], "booking_date_invalid")
    if "client_id" in fields:
        if not fields["client_id"] or get_client(conn, user_id, int(fields["client_id"])) is None:
            raise ValueError("client_not_found")
    _check_amounts(fields)
    new_status = changes.get("status")
    if new_status:
        check_transition(str(current["status"]), new_status)

    update_fields(conn, "bookings", "booking_id", booking_id, user_id, fields)

    if new_status and new_status != current["status"]:
        return set_booking_status(conn, user_id, booking_id, new_status)
    return get_booking(conn, user_id, booking_id)


def delete_booking(conn: Any, user_id: int, booking_id: int) -> bool:
    cur = conn.execute(
        "DELETE FROM bookings WHERE booking_id=? AND user_id=?",
        (int(booking_id), int(user_id)),
    )
    return int(cur.rowcount or 0) > 0


def check_transition(current: str, new: str) -> None:
    if new not in BOOKING_STATUSES:
        raise ValueError("invalid_status")
    if new == current:
        return
    if new == "pending":
        raise ValueError("cannot_revert_to_pending")
    if current == "completed" and new not in CANCEL_STATUSES:
        raise ValueError("booking_completed")


def set_booking_status(conn: Any, user_id: int, booking_id: int, new_status: str) -> Optional[Dict[str, Any]]:
    booking = get_booking(conn, user_id, booking_id)
    if booking is None:
        return None
    current = str(booking["status"])
    check_transition(current, new_status)
    if new_status == current:
        return booking

    update_fields(conn, "bookings", "booking_id", booking_id, user_id, {"status": new_status})

    if new_status == "confirmed":
        ensure_draft_invoice(conn, user_id, booking)
    elif new_status in CANCEL_STATUSES:
        _cancel_unpaid_billing(conn, user_id, booking_id, new_status)

    return get_booking(conn, user_id, booking_id)


def ensure_draft_invoice(conn: Any, user_id: int, booking: Dict[str, Any]) -> Optional[int]:
    """Create a draft invoice for a booking that has none. Returns the new invoice id."""
    booking_id = int(booking["booking_id"])
    existing = conn.execute(
        "SELECT invoice_id FROM invoices WHERE booking_id=? AND user_id=? LIMIT 1",
        (booking_id, int(user_id)),
    ).fetchone()
    if existing is not None:
        return None

    today = today_iso()
    total = float(booking.get("total_amount") or 0)
    now = utcnow_iso()
    return insert_returning_id(
        conn,
        """
        INSERT INTO invoices (user_id, client_id, booking_id, invoice_number, invoice_date, due_date,
                              subtotal, tax_amount, total_amount, deposit_amount, status, notes,
                              created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            int(user_id),
            int(booking["client_id"]),
            booking_id,
            new_invoice_number(conn, user_id, today, preferred=f"INV-{compact_date(today)}-{booking_id:04d}"),
            today,
            booking.get("booking_date"),
            total,
            0.0,
            total,
            float(booking.get("deposit_amount") or 0),
            "draft",
            f"Auto-generated for booking: {booking.get('title') or booking_id}",
            now,
            now,
        ),
        "invoice_id",
    )


def _cancel_unpaid_billing(conn: Any, user_id: int, booking_id: int, cancel_status: str) -> None:
    now = utcnow_iso()
    conn.execute(
        """
        UPDATE invoices SET status=?, updated_at=?
        WHERE booking_id=? AND user_id=? AND status <> 'paid'
        """,
        (cancel_status, now, int(booking_id), int(user_id)),
    )
    conn.execute(
        """
        UPDATE payment_schedules SET status='cancelled', updated_at=?
        WHERE user_id=? AND status <> 'paid'
          AND (booking_id=? OR invoice_id IN (SELECT invoice_id FROM invoices WHERE booking_id=? AND user_id=?))
        """,
        (now, int(user_id), int(booking_id), int(booking_id), int(user_id)),
    )
