"""
Invoices, payment schedules and installments.
"""
import re

import pytest

from lens_manager.db import connect
from lens_manager.studio import clients, invoices, payments
from lens_manager.util.time import add_days, today_iso


@pytest.fixture
def owner(make_user):
    return make_user(plan="Unlimited")


@pytest.fixture
def client_id(db, owner):
    with connect(db) as conn:
        return clients.create_client(conn, owner["user_id"], {"name": "Kamala Silva"})["client_id"]


def _invoice(db, owner, client_id, **data):
    with connect(db) as conn:
        return invoices.create_invoice(conn, owner["user_id"], {"client_id": client_id, **data})


def _schedules(db, owner, invoice_id):
    with connect(db) as conn:
        return payments.list_schedules(conn, owner["user_id"], invoice_id=invoice_id)


def test_invoice_number_is_generated(db, owner, client_id):
    inv = _invoice(db, owner, client_id, total_amount=250, invoice_date="2025-04-02")
    assert re.fullmatch(r"INV-20250402-\d{4}", inv["invoice_number"])
    assert inv["status"] == "draft"
    assert inv["subtotal"] == 250
    assert inv["client_name"] == "Kamala Silva"


def test_invoice_number_must_be_unique_per_owner(db, owner, client_id, make_user):
    _invoice(db, owner, client_id, total_amount=1, invoice_number="INV-A")
    with pytest.raises(ValueError, match="invoice_number_exists"):
        _invoice(db, owner, client_id, total_amount=1, invoice_number="INV-A")

    other = make_user(plan="Unlimited")
    with connect(db) as conn:
        other_client = clients.create_client(conn, other["user_id"], {"name": "Other"})
        inv = invoices.create_invoice(
            conn,
            other["user_id"],
            {"client_id": other_client["client_id"], "total_amount": 1, "invoice_number": "INV-A"},
        )
    assert inv["invoice_number"] == "INV-A"


def test_invoice_requires_own_client(db, owner, make_user):
    stranger = make_user()
    with connect(db) as conn:
        foreign = clients.create_client(conn, stranger["user_id"], {"name": "Not Yours"})
    with pytest.raises(ValueError, match="client_not_found"):
        _invoice(db, owner, foreign["client_id"], total_amount=10)
    with pytest.raises(ValueError, match="total_amount_required"):
        with connect(db) as conn:
            invoices.create_invoice(conn, owner["user_id"], {"client_id": foreign["client_id"]})


def test_sending_invoice_builds_deposit_and_final_schedules(db, owner, client_id):
    inv = _invoice(db, owner, client_id, total_amount=1000, deposit_amount=300, due_date="2025-09-30")
    with connect(db) as conn:
        invoices.set_invoice_status(conn, owner["user_id"], inv["invoice_id"], "pending")

    sched = _schedules(db, owner, inv["invoice_id"])
    by_type = {s["schedule_type"]: s for s in sched}
    assert set(by_type) == {"deposit", "final"}
    assert by_type["deposit"]["schedule_name"] == "Deposit Payment"
    assert by_type["deposit"]["amount"] == 300
    assert by_type["deposit"]["due_date"] == today_iso()
    assert by_type["final"]["schedule_name"] == "Final Payment"
    assert by_type["final"]["amount"] == 700
    assert by_type["final"]["due_date"] == "2025-09-30"
    assert all(s["status"] == "pending" and s["paid_amount"] == 0 for s in sched)


def test_final_schedule_defaults_to_thirty_days(db, owner, client_id):
    inv = _invoice(db, owner, client_id, total_amount=400, status="pending")
    sched = _schedules(db, owner, inv["invoice_id"])
    assert len(sched) == 1
    assert sched[0]["schedule_type"] == "final"
    assert sched[0]["due_date"] == add_days(today_iso(), 30)


def test_invoice_status_only_moves_forward(db, owner, client_id):
    inv = _invoice(db, owner, client_id, total_amount=100, status="pending")
    with connect(db) as conn:
        with pytest.raises(ValueError, match="cannot_move_to_previous_status"):
            invoices.set_invoice_status(conn, owner["user_id"], inv["invoice_id"], "draft")
        with pytest.raises(ValueError, match="invalid_status"):
            invoices.set_invoice_status(conn, owner["user_id"], inv["invoice_id"], "overdue")


def test_paid_invoice_is_frozen(db, owner, client_id):
    inv = _invoice(db, owner, client_id, total_amount=100, status="pending")
    with connect(db) as conn:
        paid = invoices.set_invoice_status(conn, owner["user_id"], inv["invoice_id"], "paid")
    assert paid["status"] == "paid"
    assert paid["payment_date"] == today_iso()

    with connect(db) as conn:
        with pytest.raises(ValueError, match="invoice_paid"):
            invoices.update_invoice(conn, owner["user_id"], inv["invoice_id"], {"notes": "late edit"})
        with pytest.raises(ValueError, match="invoice_paid"):
            invoices.set_invoice_status(conn, owner["user_id"], inv["invoice_id"], "cancelled")


def test_cancelling_invoice_keeps_only_paid_schedules(db, owner, client_id):
    inv = _invoice(db, owner, client_id, total_amount=1000, deposit_amount=300, status="pending")
    deposit = next(s for s in _schedules(db, owner, inv["invoice_id"]) if s["schedule_type"] == "deposit")
    with connect(db) as conn:
        payments.update_schedule(conn, owner["user_id"], deposit["schedule_id"], {"paid_amount": 300})
        invoices.set_invoice_status(conn, owner["user_id"], inv["invoice_id"], "cancel_by_client")

    remaining = _schedules(db, owner, inv["invoice_id"])
    assert [(s["schedule_type"], s["status"]) for s in remaining] == [("deposit", "paid")]

    with connect(db) as conn:
        with pytest.raises(ValueError, match="invoice_cancelled"):
            invoices.set_invoice_status(conn, owner["user_id"], inv["invoice_id"], "pending")


def test_schedule_marks_itself_paid_when_fully_paid(db, owner, client_id):
    with connect(db) as conn:
        s = payments.create_schedule(
            conn,
            owner["user_id"],
            {"schedule_name": "Album", "due_date": "2025-08-01", "amount": 150},
        )
        assert s["status"] == "pending"
        assert s["schedule_type"] == "custom"
        partial = payments.update_schedule(conn, owner["user_id"], s["schedule_id"], {"paid_amount": 100})
        assert partial["status"] == "pending"
        full = payments.update_schedule(conn, owner["user_id"], s["schedule_id"], {"paid_amount": 150})
    assert full["status"] == "paid"
    assert full["payment_date"] == today_iso()


def test_schedule_validation(db, owner):
    with connect(db) as conn:
        with pytest.raises(ValueError, match="invalid_schedule_type"):
            payments.create_schedule(
                conn,
                owner["user_id"],
                {"schedule_name": "X", "due_date": "2025-08-01", "amount": 1, "schedule_type": "weekly"},
            )
        with pytest.raises(ValueError, match="invoice_not_found"):
            payments.create_schedule(
                conn,
                owner["user_id"],
                {"schedule_name": "X", "due_date": "2025-08-01", "amount": 1, "invoice_id": 999},
            )


def test_installments_accumulate_until_paid(db, owner, client_id):
    inv = _invoice(db, owner, client_id, total_amount=700, status="pending")
    (final,) = _schedules(db, owner, inv["invoice_id"])
    sid = final["schedule_id"]

    with connect(db) as conn:
        first = payments.add_installment(conn, owner["user_id"], sid, {"amount": 200, "payment_method": "cash"})
    assert first["installment"]["amount"] == 200
    assert first["schedule"]["paid_amount"] == 200
    assert first["schedule"]["status"] == "pending"

    with connect(db) as conn:
        second = payments.add_installment(
            conn, owner["user_id"], sid, {"amount": 500, "paid_date": "2025-05-01", "payment_method": "bank"}
        )
    assert second["schedule"]["paid_amount"] == 700
    assert second["schedule"]["status"] == "paid"
    assert second["schedule"]["payment_date"] == "2025-05-01"
    assert second["schedule"]["payment_method"] == "bank"

    with connect(db) as conn:
        rows = payments.list_installments(conn, owner["user_id"], sid)
        everything = payments.list_all_installments(conn, owner["user_id"])
    assert [r["amount"] for r in rows] == [500, 200]
    assert len(everything) == 2
    assert everything[0]["schedule_name"] == "Final Payment"


def test_installment_rules(db, owner, client_id, make_user):
    stranger = make_user()
    with connect(db) as conn:
        s = payments.create_schedule(
            conn, owner["user_id"], {"schedule_name": "Prints", "due_date": "2025-08-01", "amount": 50}
        )
        with pytest.raises(ValueError, match="amount_must_be_positive"):
            payments.add_installment(conn, owner["user_id"], s["schedule_id"], {"amount": 0})

        assert payments.add_installment(conn, stranger["user_id"], s["schedule_id"], {"amount": 10}) is None
        assert payments.list_installments(conn, stranger["user_id"], s["schedule_id"]) is None

        payments.update_schedule(conn, owner["user_id"], s["schedule_id"], {"status": "cancelled"})
        with pytest.raises(ValueError, match="schedule_cancelled"):
            payments.add_installment(conn, owner["user_id"], s["schedule_id"], {"amount": 10})


def test_installment_endpoint(client, register):
    _user, h = register("pay@example.com")
    c = client.post("/clients", headers=h, json={"name": "Payer"}).json()["client"]
    inv = client.post(
        "/invoices",
        headers=h,
        json={"client_id": c["client_id"], "total_amount": 120, "status": "pending"},
    ).json()["invoice"]

    detail = client.get(f"/invoices/{inv['invoice_id']}", headers=h).json()["invoice"]
    (sched,) = detail["payment_schedules"]

    r = client.post(f"/payments/{sched['schedule_id']}/installments", headers=h, json={"amount": 120})
    assert r.status_code == 201
    assert r.json()["schedule"]["status"] == "paid"

    listed = client.get(f"/payments/{sched['schedule_id']}/installments", headers=h).json()["installments"]
    assert len(listed) == 1
    assert len(client.get("/payments/installments", headers=h).json()["installments"]) == 1

    bad = client.post(f"/payments/{sched['schedule_id']}/installments", headers=h, json={"amount": -1})
    assert bad.status_code == 400
    assert bad.json()["details"] == "amount_must_be_positive"

    missing = client.get("/payments/9999", headers=h)
    assert missing.status_code == 404
    assert missing.json()["details"] == "payment_schedule_not_found"


@pytest.mark.parametrize("field", ["invoice_date", "subtotal", "tax_amount", "total_amount", "deposit_amount"])
def test_invoice_update_rejects_null_for_required_columns(db, owner, client_id, field):
    inv = _invoice(db, owner, client_id, total_amount=300)
    with connect(db) as conn:
        with pytest.raises(ValueError, match=f"{field}_required"):
            invoices.update_invoice(conn, owner["user_id"], inv["invoice_id"], {field: None})
        assert invoices.get_invoice(conn, owner["user_id"], inv["invoice_id"])["total_amount"] == 300


def test_schedule_update_rejects_null_amount(client, register):
    _user, h = register("nulls@example.com")
    s = client.post(
        "/payments",
        headers=h,
        json={"schedule_name": "Album", "due_date": "2025-08-01", "amount": 150},
    ).json()["payment_schedule"]

    for field in ("amount", "paid_amount", "due_date", "status"):
        r = client.put(f"/payments/{s['schedule_id']}", headers=h, json={field: None})
        assert r.status_code == 400
        assert r.json()["details"] == f"{field}_required"

    after = client.get(f"/payments/{s['schedule_id']}", headers=h).json()["payment_schedule"]
    assert after["amount"] == 150
