from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from lens_manager.db import insert_returning_id, row_to_dict, rows_to_dicts, update_fields
from lens_manager.util.sanitize import clean_fields, reject_nulls
from lens_manager.util.time import today_iso, utcnow_iso


SCHEDULE_STATUSES = ("pending", "paid", "cancelled")
SCHEDULE_TYPES = ("deposit", "final", "custom")

SCHEDULE_FIELDS = (
    "invoice_id",
    "booking_id",
    "schedule_name",
    "schedule_type",
    "due_date",
    "amount",
    "paid_amount",
    "status",
    "payment_date",
    "payment_method",
    "notes",
)
TEXT_FIELDS = ("schedule_name", "payment_method", "notes")

_SELECT = """
    SELECT ps.*, i.invoice_number AS invoice_number, b.title AS booking_title,
           c.name AS client_name, c.email AS client_email
    FROM payment_schedules ps
    LEFT JOIN invoices i ON i.invoice_id = ps.invoice_id
    LEFT JOIN bookings b ON b.booking_id = COALESCE(ps.booking_id, i.booking_id)
    LEFT JOIN clients c ON c.client_id = COALESCE(i.client_id, b.client_id)
"""


def _check_date(value: Any, code: str) -> str:
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValueError(code) from None


def _check_refs(conn: Any, user_id: int, d: Dict[str, Any]) -> None:
    if d.get("invoice_id"):
        row = conn.execute(
            "SELECT 1 FROM invoices WHERE invoice_id=? AND user_id=?",
            (int(d["invoice_id"]), int(user_id)),
        ).fetchone()
        if row is None:
            raise ValueError("invoice_not_found")
    if d.get("booking_id"):
        row = conn.execute(
            "SELECT 1 FROM bookings WHERE booking_id=? AND user_id=?",
            (int(d["booking_id"]), int(user_id)),
        ).fetchone()
        if row is None:
            raise ValueError("booking_not_found")


def _check_enums(d: Dict[str, Any]) -> None:
    if d.get("status") is not None and d["status"] not in SCHEDULE_STATUSES:
        raise ValueError("invalid_status")
    if d.get("schedule_type") is not None and d["schedule_type"] not in SCHEDULE_TYPES:
        raise ValueError("invalid_schedule_type")
    for k in ("amount", "paid_amount"):
        if d.get(k) is not None and float(d[k]) < 0:
            raise ValueError(f"{k}_negative")


def list_schedules(conn: Any, user_id: int, *, invoice_id: Optional[int] = None) -> List[Dict[str, Any]]:
    sql = _SELECT + " WHERE ps.user_id=?"
    params: List[Any] = [int(user_id)]
    if invoice_id is not None:
        sql += " AND ps.invoice_id=?"
        params.append(int(invoice_id))
    sql += " ORDER BY ps.due_date ASC, ps.schedule_id ASC"
    return rows_to_dicts(conn.execute(sql, params).fetchall())


def get_schedule(conn: Any, user_id: int, schedule_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        _SELECT + " WHERE ps.schedule_id=? AND ps.user_id=?",
        (int(schedule_id), int(user_id)),
    ).fetchone()
    return row_to_dict(row)


def create_schedule(conn: Any, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    d = clean_fields({k: data.get(k) for k in SCHEDULE_FIELDS}, TEXT_FIELDS)
    if not (d.get("schedule_name") or "").strip():
        raise ValueError("schedule_name_required")
    if not d.get("due_date"):
        raise ValueError("due_date_required")
    if d.get("amount") is None:
        raise ValueError("amount_required")
    d["due_date"] = _check_date(d["due_date"], "due_date_invalid")
    d["schedule_type"] = d.get("schedule_type") or "custom"
    d["status"] = d.get("status") or "pending"
    d["amount"] = float(d["amount"])
    d["paid_amount"] = float(d.get("paid_amount") or 0)
    _check_enums(d)
    _check_refs(conn, user_id, d)
    _auto_mark_paid(d, d["amount"])

    now = utcnow_iso()
    cols = list(SCHEDULE_FIELDS)
    schedule_id = insert_returning_id(
        conn,
        f"""
        INSERT INTO payment_schedules (user_id, {", ".join(cols)}, created_at, updated_at)
        VALUES ({", ".join(["?"] * (len(cols) + 3))})
        """,
        [int(user_id)] + [d.get(c) for c in cols] + [now, now],
        "schedule_id",
    )
    out = get_schedule(conn, user_id, schedule_id)
    assert out is not None
    return out


def _auto_mark_paid(fields: Dict[str, Any], amount: float) -> None:
    paid = fields.get("paid_amount")
    if paid is None or fields.get("status") == "cancelled":
        return
    if float(paid) >= float(amount) > 0:
        fields["status"] = "paid"
        if not fields.get("payment_date"):
            fields["payment_date"] = today_iso()


def update_schedule(conn: Any, user_id: int, schedule_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Partial update. Reaching the full amount marks the schedule paid (dated today)."""
    current = get_schedule(conn, user_id, schedule_id)
    if current is None:
        return None
    fields = clean_fields({k: v for k, v in changes.items() if k in SCHEDULE_FIELDS}, TEXT_FIELDS)
    reject_nulls(fields, ("schedule_name", "schedule_type", "due_date", "amount", "paid_amount", "status"))
    if fields.get("due_date"):
        fields["due_date"] = _check_date(fields["due_date"], "due_date_invalid")
    if fields.get("payment_date"):
        fields["payment_date"] = _check_date(fields["payment_date"], "payment_date_invalid")
    _check_enums(fields)
    _check_refs(conn, user_id, fields)
    amount = fields.get("amount") if fields.get("amount") is not None else current["amount"]
    _auto_mark_paid(fields, float(amount or 0))

    update_fields(conn, "payment_schedules", "schedule_id", schedule_id, user_id, fields)
    return get_schedule(conn, user_id, schedule_id)


def delete_schedule(conn: Any, user_id: int, schedule_id: int) -> bool:
    cur = conn.execute(
        "DELETE FROM payment_schedules WHERE schedule_id=? AND user_id=?",
        (int(schedule_id), int(user_id)),
    )
    return int(cur.rowcount or 0) > 0


# -----------------------------
# Installments
# -----------------------------


def list_installments(conn: Any, user_id: int, schedule_id: int) -> Optional[List[Dict[str, Any]]]:
    if get_schedule(conn, user_id, schedule_id) is None:
        return None
    rows = conn.execute(
        """
        SELECT * FROM payment_installments
        WHERE schedule_id=? AND user_id=?
        ORDER BY paid_date ASC, installment_id ASC
        """,
        (int(schedule_id), int(user_id)),
    ).fetchall()
    return rows_to_dicts(rows)


def list_all_installments(conn: Any, user_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT pi.*, ps.schedule_name AS schedule_name, ps.invoice_id AS invoice_id
        FROM payment_installments pi
        JOIN payment_schedules ps ON ps.schedule_id = pi.schedule_id
        WHERE pi.user_id=?
        ORDER BY pi.paid_date DESC, pi.installment_id DESC
        """,
        (int(user_id),),
    ).fetchall()
    return rows_to_dicts(rows)


def add_installment(conn: Any, user_id: int, schedule_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Record a part payment and recompute the schedule from the installment total.

    Insert, re-sum and status update happen on the caller's transaction.
    """
    schedule = get_schedule(conn, user_id, schedule_id)
    if schedule is None:
        return None
    if schedule["status"] == "cancelled":
        raise ValueError("schedule_cancelled")

    amount = data.get("amount")
    if amount is None or float(amount) <= 0:
        raise ValueError("amount_must_be_positive")
    paid_date = _check_date(data.get("paid_date") or today_iso(), "paid_date_invalid")
    d = clean_fields({"payment_method": data.get("payment_method"), "notes": data.get("notes")}, TEXT_FIELDS)

    installment_id = insert_returning_id(
        conn,
        """
        INSERT INTO payment_installments (user_id, schedule_id, amount, paid_date, payment_method, notes, created_at)
        VALUES (?,?,?,?,?,?,?)
        """,
        (int(user_id), int(schedule_id), float(amount), paid_date, d["payment_method"], d["notes"], utcnow_iso()),
        "installment_id",
    )

    total = conn.execute(
        "SELECT COALESCE(SUM(amount), 0) AS total FROM payment_installments WHERE schedule_id=?",
        (int(schedule_id),),
    ).fetchone()["total"]
    total = float(total or 0)
    fields: Dict[str, Any] = {"paid_amount": total}
    if total >= float(schedule["amount"] or 0):
        fields["status"] = "paid"
        fields["payment_date"] = paid_date
        fields["payment_method"] = d["payment_method"] or schedule["payment_method"]
    else:
        fields["status"] = "pending"
    update_fields(conn, "payment_schedules", "schedule_id", schedule_id, user_id, fields)

    row = conn.execute(
        "SELECT * FROM payment_installments WHERE installment_id=?",
        (installment_id,),
    ).fetchone()
    return {"installment": dict(row), "schedule": get_schedule(conn, user_id, schedule_id)}
