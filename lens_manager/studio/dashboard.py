from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from lens_manager.db import rows_to_dicts
from lens_manager.entitlements import snapshot
from lens_manager.util.time import today_iso


def _last_months(today: str, n: int) -> List[str]:
    d = date.fromisoformat(today)
    y, m = d.year, d.month
    out: List[str] = []
    for _ in range(n):
        out.append(f"{y:04d}-{m:02d}")
        m -= 1
        if m == 0:
            y, m = y - 1, 12
    return list(reversed(out))


def booking_stats(conn: Any, user_id: int) -> Dict[str, Any]:
    row = conn.execute(
        """
        SELECT
            COUNT(*) AS total_bookings,
            COALESCE(SUM(CASE WHEN status='pending' THEN 1 ELSE 0 END), 0) AS pending_bookings,
            COALESCE(SUM(CASE WHEN status='confirmed' THEN 1 ELSE 0 END), 0) AS confirmed_bookings,
            COALESCE(SUM(CASE WHEN status='completed' THEN 1 ELSE 0 END), 0) AS completed_bookings,
            COALESCE(SUM(CASE WHEN status IN ('cancelled','cancel_by_client') THEN 1 ELSE 0 END), 0) AS cancelled_bookings,
            COALESCE(SUM(total_amount), 0) AS total_revenue,
            COALESCE(SUM(deposit_amount), 0) AS total_deposits
        FROM bookings
        WHERE user_id=?
        """,
        (int(user_id),),
    ).fetchone()
    d = dict(row)
    for k in ("total_revenue", "total_deposits"):
        d[k] = float(d[k] or 0)
    for k in ("total_bookings", "pending_bookings", "confirmed_bookings", "completed_bookings", "cancelled_bookings"):
        d[k] = int(d[k] or 0)
    return d


def monthly_revenue(conn: Any, user_id: int, *, months: int = 12, today: Optional[str] = None) -> List[Dict[str, Any]]:
    """Booked revenue per calendar month for the last `months` months (oldest first).

    Cancelled bookings are left out.
    """
    keys = _last_months(today or today_iso(), months)
    rows = conn.execute(
        """
        SELECT substr(booking_date, 1, 7) AS month, COALESCE(SUM(total_amount), 0) AS revenue, COUNT(*) AS bookings
        FROM bookings
        WHERE user_id=? AND booking_date >= ? AND status NOT IN ('cancelled','cancel_by_client')
        GROUP BY substr(booking_date, 1, 7)
        """,
        (int(user_id), f"{keys[0]}-01"),
    ).fetchall()
    by_month = {str(r["month"]): r for r in rows}
    out = []
    for k in keys:
        r = by_month.get(k)
        out.append(
            {
                "month": k,
                "revenue": float(r["revenue"]) if r is not None else 0.0,
                "bookings": int(r["bookings"]) if r is not None else 0,
            }
        )
    return out


def recent_bookings(conn: Any, user_id: int, *, limit: int = 5) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT b.booking_id, b.title, b.booking_date, b.status, b.total_amount, c.name AS client_name
        FROM bookings b
        JOIN clients c ON c.client_id = b.client_id
        WHERE b.user_id=?
        ORDER BY b.created_at DESC, b.booking_id DESC
        LIMIT ?
        """,
        (int(user_id), int(limit)),
    ).fetchall()
    return rows_to_dicts(rows)


def dashboard(conn: Any, user_id: int, *, today: Optional[str] = None) -> Dict[str, Any]:
    n = conn.execute("SELECT COUNT(*) AS n FROM clients WHERE user_id=?", (int(user_id),)).fetchone()["n"]
    snap = snapshot(conn, user_id)
    return {
        "stats": booking_stats(conn, user_id),
        "client_count": int(n or 0),
        "recent_bookings": recent_bookings(conn, user_id),
        "monthly_revenue": monthly_revenue(conn, user_id, today=today),
        "access": snap.as_dict() if snap is not None else None,
    }
