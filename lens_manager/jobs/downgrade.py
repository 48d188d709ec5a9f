"""Nightly job: put users whose paid access has lapsed back on the Free plan."""

from __future__ import annotations

from typing import Optional

from lens_manager.db import connect
from lens_manager.plans import downgrade_expired_access
from lens_manager.util.time import today_iso


def _debug(msg: str) -> None:
    print(f"[jobs] {msg}")


def run_downgrade(db_dsn: str, *, today: Optional[str] = None, free_plan_name: str = "Free") -> int:
    """Run the downgrade in its own transaction. Any error rolls the whole batch back."""
    day = today or today_iso()
    try:
        with connect(db_dsn) as conn:
            n = downgrade_expired_access(conn, today=day, free_plan_name=free_plan_name)
    except Exception as e:
        _debug(f"downgrade_expired_access failed (rolled back) today={day}: {e}")
        raise
    _debug(f"downgrade_expired_access today={day} downgraded={n}")
    return n
