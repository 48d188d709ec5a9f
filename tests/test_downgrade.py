"""
Tests for the nightly downgrade of expired plans.
"""
import pytest

from lens_manager.auth.crud import assign_access_level, get_user_by_id
from lens_manager.db import connect
from lens_manager.jobs.downgrade import run_downgrade
from lens_manager.plans import get_access_level_by_name

TODAY = "2025-03-10"


def _plan_id(conn, name):
    return int(get_access_level_by_name(conn, name)["access_level_id"])


def _assign(db, user, plan, expires):
    with connect(db) as conn:
        assign_access_level(conn, user["user_id"], access_level_id=_plan_id(conn, plan), access_expires_at=expires)


def _state(db, user):
    with connect(db) as conn:
        row = get_user_by_id(conn, user["user_id"])
        return row["access_level_name"], row["access_expires_at"]


@pytest.fixture
def population(db, make_user):
    users = {
        "expired_yesterday": make_user(),
        "expires_today": make_user(),
        "expires_tomorrow": make_user(),
        "never_expires": make_user(),
        "free_with_date": make_user(),
    }
    _assign(db, users["expired_yesterday"], "Pro", "2025-03-09")
    _assign(db, users["expires_today"], "Premium", TODAY)
    _assign(db, users["expires_tomorrow"], "Pro", "2025-03-11")
    _assign(db, users["never_expires"], "Unlimited", None)
    _assign(db, users["free_with_date"], "Free", "2025-01-01")
    return users


def test_downgrades_expired_paid_users(db, population):
    n = run_downgrade(db, today=TODAY)

    assert n == 2
    assert _state(db, population["expired_yesterday"]) == ("Free", None)
    assert _state(db, population["expires_today"]) == ("Free", None)
    assert _state(db, population["expires_tomorrow"]) == ("Pro", "2025-03-11")
    assert _state(db, population["never_expires"]) == ("Unlimited", None)
    # Already on Free: not counted and left untouched.
    assert _state(db, population["free_with_date"]) == ("Free", "2025-01-01")


def test_second_run_is_a_no_op(db, population):
    assert run_downgrade(db, today=TODAY) == 2
    assert run_downgrade(db, today=TODAY) == 0


def test_later_run_picks_up_newly_expired(db, population):
    run_downgrade(db, today=TODAY)
    assert run_downgrade(db, today="2025-03-11") == 1
    assert _state(db, population["expires_tomorrow"]) == ("Free", None)


def test_user_without_plan_but_expired_is_moved_to_free(db, make_user):
    user = make_user()
    with connect(db) as conn:
        conn.execute(
            "UPDATE users SET access_level_id=NULL, access_expires_at=? WHERE user_id=?",
            ("2025-01-01", user["user_id"]),
        )
    assert run_downgrade(db, today=TODAY) == 1
    assert _state(db, user) == ("Free", None)


def test_missing_free_plan_rolls_back(db, population):
    with connect(db) as conn:
        conn.execute("UPDATE access_levels SET level_name='Basic' WHERE level_name='Free'")

    with pytest.raises(RuntimeError):
        run_downgrade(db, today=TODAY)

    assert _state(db, population["expired_yesterday"]) == ("Pro", "2025-03-09")


def test_custom_free_plan_name(db, make_plan, population):
    make_plan("Starter", max_clients=1, max_bookings=1, max_storage_gb=1)
    assert run_downgrade(db, today=TODAY, free_plan_name="Starter") == 3
    assert _state(db, population["free_with_date"]) == ("Starter", None)
