"""Invoices.

Status order is draft < pending < paid; an invoice never moves backwards
except into one of the cancel states, and a paid invoice is frozen.
Sending an invoice (-> pending) rebuilds its payment schedules: a deposit
schedule due today when there is a deposit, and a final schedule for the
remainder due on the invoice due date (or 30 days out).
"""

from __future__ import annotations

import secrets
from datetime import date
from typing import Any, Dict, List, Optional

from lens_manager.db import insert_returning_id, row_to_dict, rows_to_dicts, update_fields
from lens_manager.util.sanitize import clean_fields, reject_nulls
from lens_manager.util.time import add_days, compact_date, today_iso, utcnow_iso

from .clients import get_client


INVOICE_STATUSES = ("draft", "pending", "paid", "cancelled", "cancel_by_client")
CANCEL_STATUSES = ("cancelled", "cancel_by_client")
_STATUS_ORDER = {"draft": 1, "pending": 2, "paid": 3}

INVOICE_FIELDS = (
    "client_id",
    "booking_id",
    "invoice_number",
    "invoice_date",
    "due_date",
    "subtotal",
    "tax_amount",
    "total_amount",
    "deposit_amount",
    "notes",
)
TEXT_FIELDS = ("invoice_number", "notes")
FINAL_DUE_DAYS = 30

_SELECT = """
    SELECT i.*, c.name AS client_name, c.email AS client_email, c.phone AS client_phone,
           c.address AS client_address, b.title AS booking_title, b.booking_date AS booking_date
    FROM invoices i
    JOIN clients c ON c.client_id = i.client_id
    LEFT JOIN bookings b ON b.booking_id = i.booking_id
"""


def _check_date(value: Any, code: str) -> str:
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValueError(code) from None


def _number_taken(conn: Any, user_id: int, number: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM invoices WHERE user_id=? AND invoice_number=?",
        (int(user_id), number),
    ).fetchone()
    return row is not None


def new_invoice_number(conn: Any, user_id: int, day: str, *, preferred: Optional[str] = None) -> str:
    """An `INV-YYYYMMDD-NNNN` number that the owner has not used yet.

    `preferred` is returned as is when it is still free.
    """
    if preferred and not _number_taken(conn, user_id, preferred):
        return preferred
    for _ in range(20):
        candidate = f"INV-{compact_date(day)}-{1000 + secrets.randbelow(9000)}"
        if not _number_taken(conn, user_id, candidate):
            return candidate
    raise RuntimeError("could not allocate an invoice number")


def _check_refs(conn: Any, user_id: int, d: Dict[str, Any]) -> None:
    if "client_id" in d and (not d["client_id"] or get_client(conn, user_id, int(d["client_id"])) is None):
        raise ValueError("client_not_found")
    if d.get("booking_id"):
        row = conn.execute(
            "SELECT 1 FROM bookings WHERE booking_id=? AND user_id=?",
            (int(d["booking_id"]), int(user_id)),
        ).fetchone()
        if row is None:
            raise ValueError("booking_not_found")


def _check_amounts(d: Dict[str, Any]) -> None:
    for k in ("subtotal", "tax_amount", "total_amount", "deposit_amount"):
        if d.get(k) is not None and float(d[k]) < 0:
            raise ValueError(f"{k}_negative")


def list_invoices(conn: Any, user_id: int, *, status: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = _SELECT + " WHERE i.user_id=?"
    params: List[Any] = [int(user_id)]
    if status:
        sql += " AND i.status=?"
        params.append(status)
    sql += " ORDER BY i.invoice_date DESC, i.invoice_id DESC"
    return rows_to_dicts(conn.execute(sql, params).fetchall())


def get_invoice(conn: Any, user_id: int, invoice_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        _SELECT + " WHERE i.invoice_id=? AND i.user_id=?",
        (int(invoice_id), int(user_id)),
    ).fetchone()
    return row_to_dict(row)


def create_invoice(conn: Any, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    d = clean_fields({k: data.get(k) for k in INVOICE_FIELDS}, TEXT_FIELDS)
    if not d.get("client_id"):
        raise ValueError("client_id_required")
    if d.get("total_amount") is None:
        raise ValueError("total_amount_required")
    _check_amounts(d)
    _check_refs(conn, user_id, d)

    status = data.get("status") or "draft"
    if status not in INVOICE_STATUSES:
        raise ValueError("invalid_status")

    d["invoice_date"] = _check_date(d.get("invoice_date") or today_iso(), "invoice_date_invalid")
    if d.get("due_date"):
        d["due_date"] = _check_date(d["due_date"], "due_date_invalid")
    if not (d.get("invoice_number") or "").strip():
        d["invoice_number"] = new_invoice_number(conn, user_id, d["invoice_date"])
    elif conn.execute(
        "SELECT 1 FROM invoices WHERE user_id=? AND invoice_number=?",
        (int(user_id), d["invoice_number"]),
    ).fetchone() is not None:
        raise ValueError("invoice_number_exists")

    d["total_amount"] = float(d["total_amount"])
    d["subtotal"] = float(d["subtotal"]) if d.get("subtotal") is not None else d["total_amount"]
    d["tax_amount"] = float(d.get("tax_amount") or 0)
    d["deposit_amount"] = float(d.get("deposit_amount") or 0)

    now = utcnow_iso()
    cols = list(INVOICE_FIELDS)
    invoice_id = insert_returning_id(
        conn,
        f"""
        INSERT INTO invoices (user_id, {", ".join(cols)}, status, created_at, updated_at)
        VALUES ({", ".join(["?"] * (len(cols) + 4))})
        """,
        [int(user_id)] + [d.get(c) for c in cols] + [status, now, now],
        "invoice_id",
    )
    if status == "pending":
        rebuild_payment_schedules(conn, user_id, invoice_id)
    out = get_invoice(conn, user_id, invoice_id)
    assert out is not None
    return out


def check_transition(current: str, new: str) -> None:
    if new not in INVOICE_STATUSES:
        raise ValueError("invalid_status")
    if new == current:
        return
    if current == "paid":
        raise ValueError("invoice_paid")
    if new in CANCEL_STATUSES:
        return
    if current in CANCEL_STATUSES:
        raise ValueError("invoice_cancelled")
    if _STATUS_ORDER[new] < _STATUS_ORDER[current]:
        raise ValueError("cannot_move_to_previous_status")


def update_invoice(conn: Any, user_id: int, invoice_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Partial update; a `status` key follows the status rules and side effects."""
    current = get_invoice(conn, user_id, invoice_id)
    if current is None:
        return None

    fields = clean_fields({k: v for k, v in changes.items() if k in INVOICE_FIELDS}, TEXT_FIELDS)
    if str(current["status"]) == "paid" and fields:
        raise ValueError("invoice_paid")
    reject_nulls(fields, ("invoice_date", "subtotal", "tax_amount", "total_amount", "deposit_amount"))
    _check_amounts(fields)
    _check_refs(conn, user_id, fields)
    for k in ("invoice_date", "due_date"):
        if fields.get(k):
            fields[k] = _check_date(fields[k], f"{k}_invalid")
    if "invoice_number" in fields:
        if not (fields["invoice_number"] or "").strip():
            raise ValueError("invoice_number_blank")
        taken = conn.execute(
            "SELECT invoice_id FROM invoices WHERE user_id=? AND invoice_number=?",
            (int(user_id), fields["invoice_number"]),
        ).fetchone()
        if taken is not None and int(taken["invoice_id"]) != int(invoice_id):
            raise ValueError("invoice_number_exists")

    new_status = changes.get("status")
    if new_status:
        check_transition(str(current["status"]), new_status)

    update_fields(conn, "invoices", "invoice_id", invoice_id, user_id, fields)

    if new_status and new_status != current["status"]:
        return set_invoice_status(conn, user_id, invoice_id, new_status)
    return get_invoice(conn, user_id, invoice_id)


def set_invoice_status(conn: Any, user_id: int, invoice_id: int, new_status: str) -> Optional[Dict[str, Any]]:
    invoice = get_invoice(conn, user_id, invoice_id)
    if invoice is None:
        return None
    current = str(invoice["status"])
    check_transition(current, new_status)
    if new_status == current:
        return invoice

    fields: Dict[str, Any] = {"status": new_status}
    if new_status == "paid":
        fields["payment_date"] = today_iso()
    update_fields(conn, "invoices", "invoice_id", invoice_id, user_id, fields)

    if new_status == "pending":
        rebuild_payment_schedules(conn, user_id, invoice_id)
    elif new_status in CANCEL_STATUSES:
        conn.execute(
            "DELETE FROM payment_schedules WHERE invoice_id=? AND user_id=? AND status <> 'paid'",
            (int(invoice_id), int(user_id)),
        )

    return get_invoice(conn, user_id, invoice_id)


def rebuild_payment_schedules(conn: Any, user_id: int, invoice_id: int) -> List[int]:
    """Replace an invoice's schedules with deposit + final. Returns the new schedule ids."""
    invoice = get_invoice(conn, user_id, invoice_id)
    if invoice is None:
        raise ValueError("invoice_not_found")

    conn.execute(
        "DELETE FROM payment_schedules WHERE invoice_id=? AND user_id=?",
        (int(invoice_id), int(user_id)),
    )

    total = float(invoice["total_amount"] or 0)
    deposit = min(float(invoice["deposit_amount"] or 0), total)
    today = today_iso()
    now = utcnow_iso()
    plan = []
    if deposit > 0:
        plan.append(("Deposit Payment", "deposit", today, deposit))
    remainder = round(total - deposit, 2)
    if remainder > 0:
        plan.append(("Final Payment", "final", invoice["due_date"] or add_days(today, FINAL_DUE_DAYS), remainder))

    ids: List[int] = []
    for name, kind, due, amount in plan:
        ids.append(
            insert_returning_id(
                conn,
                """
                INSERT INTO payment_schedules (user_id, invoice_id, booking_id, schedule_name, schedule_type,
                                               due_date, amount, paid_amount, status, created_at, updated_at)
                VALUES (?,?,?,?,?,?,?,0,'pending',?,?)
                """,
                (int(user_id), int(invoice_id), invoice["booking_id"], name, kind, due, amount, now, now),
                "schedule_id",
            )
        )
    return ids


def delete_invoice(conn: Any, user_id: int, invoice_id: int) -> bool:
    cur = conn.execute(
        "DELETE FROM invoices WHERE invoice_id=? AND user_id=?",
        (int(invoice_id), int(user_id)),
    )
    return int(cur.rowcount or 0) > 0
