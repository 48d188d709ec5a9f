from __future__ import annotations

from typing import Any, Dict, List, Optional

from lens_manager.db import dialect_of, insert_returning_id, rows_to_dicts
from lens_manager.util.sanitize import clean_text
from lens_manager.util.time import today_iso, utcnow_iso


PLAN_FIELDS = ("level_name", "max_clients", "max_bookings", "max_storage_gb")


def _validate_bounds(data: Dict[str, Any]) -> None:
    for k in ("max_clients", "max_bookings", "max_storage_gb"):
        v = data.get(k)
        if v is not None and v < 0:
            raise ValueError(f"{k}_negative")


def list_access_levels(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM access_levels ORDER BY access_level_id ASC").fetchall()
    return rows_to_dicts(rows)


def get_access_level(conn: Any, access_level_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT * FROM access_levels WHERE access_level_id=?",
        (int(access_level_id),),
    ).fetchone()
    return dict(row) if row is not None else None


def get_access_level_by_name(conn: Any, level_name: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT * FROM access_levels WHERE level_name=?",
        (level_name,),
    ).fetchone()
    return dict(row) if row is not None else None


def create_access_level(conn: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    name = clean_text((data.get("level_name") or "").strip())
    if not name:
        raise ValueError("level_name_blank")
    _validate_bounds(data)
    if get_access_level_by_name(conn, name) is not None:
        raise ValueError("level_name_exists")

    now = utcnow_iso()
    access_level_id = insert_returning_id(
        conn,
        """
        INSERT INTO access_levels (level_name, max_clients, max_bookings, max_storage_gb, created_at, updated_at)
        VALUES (?,?,?,?,?,?)
        """,
        (name, data.get("max_clients"), data.get("max_bookings"), data.get("max_storage_gb"), now, now),
        "access_level_id",
    )
    out = get_access_level(conn, access_level_id)
    assert out is not None
    return out


def update_access_level(conn: Any, access_level_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Partial update. Passing None for a bound makes it unlimited."""
    fields = {k: v for k, v in changes.items() if k in PLAN_FIELDS}
    _validate_bounds(fields)
    if "level_name" in fields:
        fields["level_name"] = clean_text((fields["level_name"] or "").strip())
        if not fields["level_name"]:
            raise ValueError("level_name_blank")
        other = get_access_level_by_name(conn, fields["level_name"])
        if other is not None and int(other["access_level_id"]) != int(access_level_id):
            raise ValueError("level_name_exists")

    if get_access_level(conn, access_level_id) is None:
        raise ValueError("access_level_not_found")

    if fields:
        items = list(fields.items()) + [("updated_at", utcnow_iso())]
        sets = ", ".join([f"{k}=?" for k, _ in items])
        conn.execute(
            f"UPDATE access_levels SET {sets} WHERE access_level_id=?",
            [v for _, v in items] + [int(access_level_id)],
        )
    out = get_access_level(conn, access_level_id)
    assert out is not None
    return out


def downgrade_expired_access(conn: Any, *, today: Optional[str] = None, free_plan_name: str = "Free") -> int:
    """Move every non-Free user whose access expired on or before `today` to Free.

    Runs as one transaction on `conn`: resolve the Free plan id, then a single
    UPDATE that also clears `access_expires_at`. Returns the number of users moved.
    """
    day = today or today_iso()

    if dialect_of(conn) == "postgres":
        conn.execute("LOCK TABLE users IN SHARE ROW EXCLUSIVE MODE")
    elif not conn.in_transaction:
        conn.execute("BEGIN IMMEDIATE")

    free = get_access_level_by_name(conn, free_plan_name)
    if free is None:
        raise RuntimeError(f"access level {free_plan_name!r} not found")
    free_id = int(free["access_level_id"])

    cur = conn.execute(
        """
        UPDATE users
        SET access_level_id=?, access_expires_at=NULL, updated_at=?
        WHERE access_expires_at IS NOT NULL
          AND access_expires_at <= ?
          AND (access_level_id IS NULL OR access_level_id <> ?)
        """,
        (free_id, utcnow_iso(), day, free_id),
    )
    return int(cur.rowcount or 0)
