from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from lens_manager.auth.security import hash_password, verify_password
from lens_manager.db import insert_returning_id, rows_to_dicts, update_fields
from lens_manager.entitlements import ResourceKind, guard_create
from lens_manager.util.sanitize import clean_fields, clean_text, reject_nulls
from lens_manager.util.time import today_iso, utcnow_iso


GALLERY_FIELDS = (
    "booking_id",
    "gallery_name",
    "description",
    "gallery_date",
    "cover_image",
    "is_public",
    "password_protected",
    "download_enabled",
    "expiry_date",
)
TEXT_FIELDS = ("gallery_name", "description")
FLAG_FIELDS = ("is_public", "password_protected", "download_enabled")
MAX_IMAGE_BYTES = 1024 * 1024

_SELECT = """
    SELECT g.*,
           (SELECT COUNT(*) FROM gallery_images gi WHERE gi.gallery_id = g.gallery_id) AS image_count,
           (SELECT gi.image_url FROM gallery_images gi WHERE gi.gallery_id = g.gallery_id
             ORDER BY gi.image_order ASC, gi.image_id ASC LIMIT 1) AS first_image,
           b.title AS booking_title, c.name AS client_name
    FROM galleries g
    LEFT JOIN bookings b ON b.booking_id = g.booking_id
    LEFT JOIN clients c ON c.client_id = b.client_id
"""


def _public(row: Any) -> Dict[str, Any]:
    d = dict(row)
    d.pop("gallery_password_hash", None)
    return d


def _check_date(value: Any, code: str) -> str:
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValueError(code) from None


def _normalize(conn: Any, user_id: int, d: Dict[str, Any]) -> Dict[str, Any]:
    for f in FLAG_FIELDS:
        if f in d and d[f] is not None:
            d[f] = 1 if d[f] else 0
    for f in ("gallery_date", "expiry_date"):
        if d.get(f):
            d[f] = _check_date(d[f], f"{f}_invalid")
    if d.get("booking_id"):
        row = conn.execute(
            "SELECT 1 FROM bookings WHERE booking_id=? AND user_id=?",
            (int(d["booking_id"]), int(user_id)),
        ).fetchone()
        if row is None:
            raise ValueError("booking_not_found")
    return d


def list_galleries(conn: Any, user_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        _SELECT + " WHERE g.user_id=? ORDER BY g.created_at DESC, g.gallery_id DESC",
        (int(user_id),),
    ).fetchall()
    return [_public(r) for r in rows]


def get_gallery(conn: Any, user_id: int, gallery_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        _SELECT + " WHERE g.gallery_id=? AND g.user_id=?",
        (int(gallery_id), int(user_id)),
    ).fetchone()
    return _public(row) if row is not None else None


def create_gallery(conn: Any, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    d = clean_fields({k: data.get(k) for k in GALLERY_FIELDS}, TEXT_FIELDS)
    if not (d.get("gallery_name") or "").strip():
        raise ValueError("gallery_name_required")
    d = _normalize(conn, user_id, d)
    for f, default in (("is_public", 0), ("password_protected", 0), ("download_enabled", 1)):
        if d.get(f) is None:
            d[f] = default

    password = data.get("gallery_password") or ""
    if d["password_protected"] and not password:
        raise ValueError("gallery_password_required")
    password_hash = hash_password(password) if d["password_protected"] else None

    now = utcnow_iso()
    cols = list(GALLERY_FIELDS)
    gallery_id = insert_returning_id(
        conn,
        f"""
        INSERT INTO galleries (user_id, {", ".join(cols)}, gallery_password_hash, created_at, updated_at)
        VALUES ({", ".join(["?"] * (len(cols) + 4))})
        """,
        [int(user_id)] + [d.get(c) for c in cols] + [password_hash, now, now],
        "gallery_id",
    )
    out = get_gallery(conn, user_id, gallery_id)
    assert out is not None
    return out


def update_gallery(conn: Any, user_id: int, gallery_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    current = get_gallery(conn, user_id, gallery_id)
    if current is None:
        return None
    fields = clean_fields({k: v for k, v in changes.items() if k in GALLERY_FIELDS}, TEXT_FIELDS)
    if "gallery_name" in fields and not (fields["gallery_name"] or "").strip():
        raise ValueError("gallery_name_required")
    reject_nulls(fields, FLAG_FIELDS)
    fields = _normalize(conn, user_id, fields)

    password = changes.get("gallery_password")
    protected = fields.get("password_protected", current["password_protected"])
    if password:
        fields["gallery_password_hash"] = hash_password(password)
    elif protected and not current["password_protected"]:
        raise ValueError("gallery_password_required")
    if not protected:
        fields["gallery_password_hash"] = None

    update_fields(conn, "galleries", "gallery_id", gallery_id, user_id, fields)
    return get_gallery(conn, user_id, gallery_id)


def delete_gallery(conn: Any, user_id: int, gallery_id: int) -> bool:
    cur = conn.execute(
        "DELETE FROM galleries WHERE gallery_id=? AND user_id=?",
        (int(gallery_id), int(user_id)),
    )
    return int(cur.rowcount or 0) > 0


# -----------------------------
# Images
# -----------------------------


def _images(conn: Any, gallery_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM gallery_images WHERE gallery_id=? ORDER BY image_order ASC, image_id ASC",
        (int(gallery_id),),
    ).fetchall()
    return rows_to_dicts(rows)


def list_images(conn: Any, user_id: int, gallery_id: int) -> Optional[List[Dict[str, Any]]]:
    if get_gallery(conn, user_id, gallery_id) is None:
        return None
    return _images(conn, gallery_id)


def add_image(conn: Any, user_id: int, gallery_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Attach image metadata to a gallery. Counts against the storage allowance."""
    if get_gallery(conn, user_id, gallery_id) is None:
        return None
    url = (data.get("image_url") or "").strip()
    if not url:
        raise ValueError("image_url_required")
    file_size = int(data.get("file_size") or 0)
    if file_size < 0:
        raise ValueError("file_size_negative")
    if file_size > MAX_IMAGE_BYTES:
        raise ValueError("image_too_large")

    guard_create(conn, user_id, ResourceKind.STORAGE, incoming=file_size)

    order = data.get("image_order")
    if order is None:
        order = conn.execute(
            "SELECT COALESCE(MAX(image_order), -1) + 1 AS n FROM gallery_images WHERE gallery_id=?",
            (int(gallery_id),),
        ).fetchone()["n"]

    image_id = insert_returning_id(
        conn,
        """
        INSERT INTO gallery_images (gallery_id, image_url, image_name, file_size, image_order, created_at)
        VALUES (?,?,?,?,?,?)
        """,
        (int(gallery_id), url, clean_text(data.get("image_name")), file_size, int(order), utcnow_iso()),
        "image_id",
    )
    row = conn.execute("SELECT * FROM gallery_images WHERE image_id=?", (image_id,)).fetchone()
    return dict(row)


def delete_image(conn: Any, user_id: int, gallery_id: int, image_id: int) -> bool:
    cur = conn.execute(
        """
        DELETE FROM gallery_images
        WHERE image_id=? AND gallery_id=?
          AND gallery_id IN (SELECT gallery_id FROM galleries WHERE user_id=?)
        """,
        (int(image_id), int(gallery_id), int(user_id)),
    )
    return int(cur.rowcount or 0) > 0


def get_public_gallery(conn: Any, gallery_id: int, *, password: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Client-facing view of a shared gallery.

    Returns None unless the gallery is public and not past its expiry date.
    Raises ValueError("gallery_password_required") when the password is missing or wrong.
    """
    row = conn.execute(
        _SELECT + " WHERE g.gallery_id=? AND g.is_public=1",
        (int(gallery_id),),
    ).fetchone()
    if row is None:
        return None
    if row["expiry_date"] and str(row["expiry_date"]) < today_iso():
        return None
    if int(row["password_protected"] or 0) == 1:
        if not verify_password(password or "", str(row["gallery_password_hash"] or "")):
            raise ValueError("gallery_password_required")

    gallery = _public(row)
    for k in ("user_id", "client_name"):
        gallery.pop(k, None)
    gallery["images"] = _images(conn, gallery_id)
    return gallery
