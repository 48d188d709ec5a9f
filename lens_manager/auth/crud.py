from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from lens_manager.config import Config
from lens_manager.db import connect, insert_returning_id
from lens_manager.plans import get_access_level
from lens_manager.util.sanitize import clean_text, reject_nulls
from lens_manager.util.time import utcnow_iso

from .security import Identity, hash_password, verify_password


ROLES = ("admin", "photographer")

# Columns a user may change on their own profile.
PROFILE_FIELDS = (
    "full_name",
    "phone",
    "currency_type",
    "business_name",
    "business_email",
    "business_phone",
    "business_address",
)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password_hash", None)
    d["is_admin"] = d.get("role") == "admin"
    return d


def identity_of(row: Any | Dict[str, Any]) -> Identity:
    return Identity(user_id=int(row["user_id"]), email=str(row["email"]), role=str(row["role"]))


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute("SELECT * FROM users WHERE email=?", (e,)).fetchone()


def get_user_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute(
        """
        SELECT u.*, al.level_name AS access_level_name
        FROM users u
        LEFT JOIN access_levels al ON al.access_level_id = u.access_level_id
        WHERE u.user_id=?
        """,
        (int(user_id),),
    ).fetchone()


def list_users(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT u.*, al.level_name AS access_level_name
        FROM users u
        LEFT JOIN access_levels al ON al.access_level_id = u.access_level_id
        ORDER BY u.user_id ASC
        """
    ).fetchall()
    return [public_user(r) for r in rows]


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    """Return the user row when the password matches, regardless of is_active.

    Callers decide how to report an inactive account.
    """
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def _plan_id_by_name(conn: Any, level_name: str) -> Optional[int]:
    row = conn.execute(
        "SELECT access_level_id FROM access_levels WHERE level_name=?",
        (level_name,),
    ).fetchone()
    return int(row["access_level_id"]) if row is not None else None


def create_user(
    conn: Any,
    *,
    email: str,
    password: str,
    full_name: str = "",
    role: str = "photographer",
    is_active: bool = True,
    access_level_id: Optional[int] = None,
    default_plan_name: str = "Free",
    currency_type: str = "USD",
    phone: Optional[str] = None,
) -> Dict[str, Any]:
    e = normalize_email(email)
    if not e or "@" not in e:
        raise ValueError("email_invalid")
    if role not in ROLES:
        raise ValueError("invalid_role")
    if len(password or "") < 8:
        raise ValueError("password_too_short")

    existing = conn.execute("SELECT 1 FROM users WHERE email=?", (e,)).fetchone()
    if existing is not None:
        raise ValueError("email_exists")

    if access_level_id is None:
        access_level_id = _plan_id_by_name(conn, default_plan_name)
    elif get_access_level(conn, access_level_id) is None:
        raise ValueError("access_level_not_found")

    now = utcnow_iso()
    user_id = insert_returning_id(
        conn,
        """
        INSERT INTO users (email, password_hash, full_name, phone, role, is_active,
                           access_level_id, currency_type, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?,?,?)
        """,
        (
            e,
            hash_password(password),
            clean_text(full_name) or "",
            clean_text(phone),
            role,
            1 if is_active else 0,
            access_level_id,
            currency_type,
            now,
            now,
        ),
        "user_id",
    )
    row = get_user_by_id(conn, user_id)
    assert row is not None
    return public_user(row)


def update_profile(conn: Any, user_id: int, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    fields = {k: clean_text(v) if k != "currency_type" else v for k, v in changes.items() if k in PROFILE_FIELDS}
    if "full_name" in fields and not fields["full_name"]:
        raise ValueError("full_name_blank")
    reject_nulls(fields, ("currency_type",))
    if fields:
        items = list(fields.items()) + [("updated_at", utcnow_iso())]
        sets = ", ".join([f"{k}=?" for k, _ in items])
        conn.execute(f"UPDATE users SET {sets} WHERE user_id=?", [v for _, v in items] + [int(user_id)])
    row = get_user_by_id(conn, user_id)
    return public_user(row) if row is not None else None


def change_password(conn: Any, user_id: int, current_password: str, new_password: str) -> None:
    row = conn.execute("SELECT password_hash FROM users WHERE user_id=?", (int(user_id),)).fetchone()
    if row is None:
        raise ValueError("user_not_found")
    if not verify_password(current_password, str(row["password_hash"])):
        raise ValueError("invalid_credentials")
    if len(new_password or "") < 8:
        raise ValueError("password_too_short")
    conn.execute(
        "UPDATE users SET password_hash=?, updated_at=? WHERE user_id=?",
        (hash_password(new_password), utcnow_iso(), int(user_id)),
    )


def assign_access_level(
    conn: Any,
    user_id: int,
    *,
    access_level_id: int,
    access_expires_at: Optional[str] = None,
) -> Dict[str, Any]:
    """Admin: move a user onto a plan, optionally until a given date."""
    if access_expires_at:
        try:
            access_expires_at = date.fromisoformat(access_expires_at).isoformat()
        except ValueError:
            raise ValueError("access_expires_at_invalid") from None
    if get_access_level(conn, access_level_id) is None:
        raise ValueError("access_level_not_found")
    cur = conn.execute(
        "UPDATE users SET access_level_id=?, access_expires_at=?, updated_at=? WHERE user_id=?",
        (int(access_level_id), access_expires_at, utcnow_iso(), int(user_id)),
    )
    if int(cur.rowcount or 0) == 0:
        raise ValueError("user_not_found")
    row = get_user_by_id(conn, user_id)
    assert row is not None
    return public_user(row)


def set_active(conn: Any, user_id: int, is_active: bool) -> Dict[str, Any]:
    cur = conn.execute(
        "UPDATE users SET is_active=?, updated_at=? WHERE user_id=?",
        (1 if is_active else 0, utcnow_iso(), int(user_id)),
    )
    if int(cur.rowcount or 0) == 0:
        raise ValueError("user_not_found")
    row = get_user_by_id(conn, user_id)
    assert row is not None
    return public_user(row)


def touch_last_login(conn: Any, user_id: int) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, int(user_id)),
    )


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first admin user if there is no admin yet.

    Only runs when both AUTH_BOOTSTRAP_ADMIN_EMAIL and AUTH_BOOTSTRAP_ADMIN_PASSWORD
    are set. There are no built-in default credentials.
    """
    email = normalize_email(cfg.AUTH_BOOTSTRAP_ADMIN_EMAIL or "")
    password = cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD or ""
    if not email or not password:
        return None

    with connect(cfg.DB_DSN) as conn:
        n = conn.execute("SELECT COUNT(*) AS n FROM users WHERE role='admin'").fetchone()["n"]
        if int(n) > 0:
            return None
        if get_user_by_email(conn, email) is not None:
            return None
        return create_user(
            conn,
            email=email,
            password=password,
            full_name="Administrator",
            role="admin",
            access_level_id=_plan_id_by_name(conn, "Unlimited"),
            currency_type=cfg.DEFAULT_CURRENCY,
        )
