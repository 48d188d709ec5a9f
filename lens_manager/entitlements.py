"""Plan-based limits on what a photographer may create.

Usage is recomputed from live rows on every call; nothing is cached or
pre-aggregated. A bound of NULL/None means unlimited, otherwise creation is
allowed while `usage < bound` (the bound caps total rows, checked before the
insert). An image upload must fit whole: `usage + file_size <= bound`.

`check()` / `can_create()` never raise for a "no". `guard_create()` is the
write-path variant: it serializes creators for one owner inside the caller's
transaction and raises `LimitReached` / `PlanUnresolved` so the API layer can
answer 403 with an upgrade hint.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from lens_manager.db import dialect_of
from lens_manager.errors import LimitReached, PlanUnresolved


GIB = 1024 * 1024 * 1024


def _debug(msg: str) -> None:
    print(f"[entitlements] {msg}")


class ResourceKind(str, Enum):
    CLIENT = "client"
    BOOKING = "booking"
    STORAGE = "storage"


_NOUNS = {
    ResourceKind.CLIENT: "client",
    ResourceKind.BOOKING: "booking",
    ResourceKind.STORAGE: "image",
}

_USAGE_SQL = {
    ResourceKind.CLIENT: "SELECT COUNT(*) AS n FROM clients WHERE user_id=?",
    ResourceKind.BOOKING: "SELECT COUNT(*) AS n FROM bookings WHERE user_id=?",
    ResourceKind.STORAGE: """
        SELECT COALESCE(SUM(gi.file_size), 0) AS n
        FROM gallery_images gi
        JOIN galleries g ON g.gallery_id = gi.gallery_id
        WHERE g.user_id=?
    """,
}


@dataclass(frozen=True)
class AccessPlan:
    access_level_id: int
    level_name: str
    max_clients: Optional[int]
    max_bookings: Optional[int]
    max_storage_gb: Optional[float]

    def bound_for(self, kind: ResourceKind) -> Optional[float]:
        """Bound in the same unit `count_usage` reports (rows, or bytes for storage)."""
        if kind == ResourceKind.CLIENT:
            return self.max_clients
        if kind == ResourceKind.BOOKING:
            return self.max_bookings
        if self.max_storage_gb is None:
            return None
        return float(self.max_storage_gb) * GIB


@dataclass(frozen=True)
class UsageSnapshot:
    clients: int
    bookings: int
    storage_bytes: int

    @property
    def storage_gb(self) -> float:
        return round(self.storage_bytes / GIB, 4)

    def for_kind(self, kind: ResourceKind) -> int:
        if kind == ResourceKind.CLIENT:
            return self.clients
        if kind == ResourceKind.BOOKING:
            return self.bookings
        return self.storage_bytes


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str  # ok | limit_reached | plan_unresolved
    kind: ResourceKind
    usage: int
    bound: Optional[float]
    plan: Optional[AccessPlan]


def within_limit(usage: float, bound: Optional[float], incoming: float = 0) -> bool:
    """`incoming` is a size about to be added (image bytes); row kinds pass 0."""
    if bound is None:
        return True
    if incoming > 0:
        return usage + incoming <= bound
    return usage < bound


def _plan_from_row(row: Any) -> AccessPlan:
    return AccessPlan(
        access_level_id=int(row["access_level_id"]),
        level_name=str(row["level_name"]),
        max_clients=None if row["max_clients"] is None else int(row["max_clients"]),
        max_bookings=None if row["max_bookings"] is None else int(row["max_bookings"]),
        max_storage_gb=None if row["max_storage_gb"] is None else float(row["max_storage_gb"]),
    )


def resolve_plan(conn: Any, user_id: int) -> Optional[AccessPlan]:
    row = conn.execute(
        """
        SELECT al.access_level_id, al.level_name, al.max_clients, al.max_bookings, al.max_storage_gb
        FROM users u
        JOIN access_levels al ON al.access_level_id = u.access_level_id
        WHERE u.user_id=?
        """,
        (int(user_id),),
    ).fetchone()
    if row is None:
        return None
    return _plan_from_row(row)


def count_usage(conn: Any, user_id: int, kind: ResourceKind) -> int:
    row = conn.execute(_USAGE_SQL[ResourceKind(kind)], (int(user_id),)).fetchone()
    return int(row["n"] or 0)


def usage_snapshot(conn: Any, user_id: int) -> UsageSnapshot:
    return UsageSnapshot(
        clients=count_usage(conn, user_id, ResourceKind.CLIENT),
        bookings=count_usage(conn, user_id, ResourceKind.BOOKING),
        storage_bytes=count_usage(conn, user_id, ResourceKind.STORAGE),
    )


def check(conn: Any, user_id: int, kind: ResourceKind, incoming: float = 0) -> Decision:
    kind = ResourceKind(kind)
    plan = resolve_plan(conn, user_id)
    if plan is None:
        # Every account is created with a plan; reaching this means bad data.
        _debug(f"plan_unresolved user_id={user_id} kind={kind.value}")
        return Decision(False, "plan_unresolved", kind, 0, None, None)

    usage = count_usage(conn, user_id, kind)
    bound = plan.bound_for(kind)
    allowed = within_limit(usage, bound, incoming)
    return Decision(allowed, "ok" if allowed else "limit_reached", kind, usage, bound, plan)


def can_create(conn: Any, user_id: int, kind: ResourceKind) -> bool:
    return check(conn, user_id, kind).allowed


def lock_owner(conn: Any, user_id: int) -> None:
    """Serialize writers for one owner until the current transaction ends.

    - Postgres: row lock on the owner's users row.
    - SQLite: take the database write lock up front (BEGIN IMMEDIATE).
    """
    if dialect_of(conn) == "postgres":
        conn.execute("SELECT user_id FROM users WHERE user_id=? FOR UPDATE", (int(user_id),))
        return
    # A transaction that is already open has written, so it holds the write lock.
    if not conn.in_transaction:
        conn.execute("BEGIN IMMEDIATE")


def guard_create(conn: Any, user_id: int, kind: ResourceKind, incoming: float = 0) -> Decision:
    """Lock, re-check and raise on denial. The caller inserts on the same connection.

    For storage, pass the new image's byte size as `incoming` so the upload
    itself has to fit in what is left of the allowance.
    """
    kind = ResourceKind(kind)
    lock_owner(conn, user_id)
    decision = check(conn, user_id, kind, incoming)
    if decision.allowed:
        return decision
    if decision.plan is None:
        raise PlanUnresolved(int(user_id))

    plan = decision.plan
    # A denial with a plan always has a finite bound; within_limit never refuses None.
    bound = plan.max_storage_gb if kind == ResourceKind.STORAGE else decision.bound
    raise LimitReached(
        kind=kind.value,
        bound=float(bound or 0),
        usage=decision.usage,
        plan_name=plan.level_name,
        noun=_NOUNS[kind],
    )


@dataclass(frozen=True)
class EntitlementSnapshot:
    user_id: int
    name: str
    email: str
    plan: Optional[AccessPlan]
    usage: UsageSnapshot

    def can_create(self, kind: ResourceKind) -> bool:
        if self.plan is None:
            return False
        return within_limit(self.usage.for_kind(kind), self.plan.bound_for(kind))

    def as_dict(self) -> Dict[str, Any]:
        p = self.plan
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "access_level": {
                "id": p.access_level_id if p else None,
                "name": p.level_name if p else None,
                "max_clients": p.max_clients if p else None,
                "max_bookings": p.max_bookings if p else None,
                "max_storage_gb": p.max_storage_gb if p else None,
            },
            "current_usage": {
                "clients": self.usage.clients,
                "bookings": self.usage.bookings,
                "storage_bytes": self.usage.storage_bytes,
                "storage_gb": self.usage.storage_gb,
            },
            "can_create": {k.value: self.can_create(k) for k in ResourceKind},
        }


def snapshot(conn: Any, user_id: int) -> Optional[EntitlementSnapshot]:
    """Plan, bounds, live usage and per-resource flags for the frontend."""
    row = conn.execute(
        "SELECT user_id, full_name, email FROM users WHERE user_id=?",
        (int(user_id),),
    ).fetchone()
    if row is None:
        return None
    plan = resolve_plan(conn, user_id)
    if plan is None:
        _debug(f"plan_unresolved user_id={user_id} (snapshot)")
    return EntitlementSnapshot(
        user_id=int(row["user_id"]),
        name=str(row["full_name"] or ""),
        email=str(row["email"]),
        plan=plan,
        usage=usage_snapshot(conn, user_id),
    )
