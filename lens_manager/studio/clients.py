from __future__ import annotations

from typing import Any, Dict, List, Optional

from lens_manager.db import insert_returning_id, row_to_dict, rows_to_dicts, update_fields
from lens_manager.entitlements import ResourceKind, guard_create
from lens_manager.util.sanitize import clean_fields
from lens_manager.util.time import utcnow_iso


CLIENT_FIELDS = (
    "name",
    "email",
    "phone",
    "address",
    "city",
    "state",
    "zip_code",
    "country",
    "notes",
)


def list_clients(conn: Any, user_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM clients WHERE user_id=? ORDER BY created_at DESC, client_id DESC",
        (int(user_id),),
    ).fetchall()
    return rows_to_dicts(rows)


def get_client(conn: Any, user_id: int, client_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT * FROM clients WHERE client_id=? AND user_id=?",
        (int(client_id), int(user_id)),
    ).fetchone()
    return row_to_dict(row)


def create_client(
    conn: Any,
    user_id: int,
    data: Dict[str, Any],
    *,
    default_country: str = "Sri Lanka",
) -> Dict[str, Any]:
    d = clean_fields({k: data.get(k) for k in CLIENT_FIELDS}, CLIENT_FIELDS)
    if not (d.get("name") or "").strip():
        raise ValueError("name_required")
    if not d.get("country"):
        d["country"] = default_country

    guard_create(conn, user_id, ResourceKind.CLIENT)

    now = utcnow_iso()
    cols = list(CLIENT_FIELDS)
    client_id = insert_returning_id(
        conn,
        f"""
        INSERT INTO clients (user_id, {", ".join(cols)}, created_at, updated_at)
        VALUES ({", ".join(["?"] * (len(cols) + 3))})
        """,
        [int(user_id)] + [d.get(c) for c in cols] + [now, now],
        "client_id",
    )
    out = get_client(conn, user_id, client_id)
    assert out is not None
    return out


def update_client(conn: Any, user_id: int, client_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    fields = clean_fields({k: v for k, v in changes.items() if k in CLIENT_FIELDS}, CLIENT_FIELDS)
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValueError("name_required")
    if get_client(conn, user_id, client_id) is None:
        return None
    update_fields(conn, "clients", "client_id", client_id, user_id, fields)
    return get_client(conn, user_id, client_id)


def delete_client(conn: Any, user_id: int, client_id: int) -> bool:
    cur = conn.execute(
        "DELETE FROM clients WHERE client_id=? AND user_id=?",
        (int(client_id), int(user_id)),
    )
    return int(cur.rowcount or 0) > 0
