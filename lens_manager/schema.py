"""Database schema for Lens Manager.

SQLite is the default store; Postgres is supported through the same DDL.

We keep timestamps as ISO-8601 TEXT (UTC, with 'Z') and calendar dates as
YYYY-MM-DD TEXT so comparisons like `access_expires_at <= today` behave the
same on both engines.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Access plans. NULL bound = unlimited.
CREATE TABLE IF NOT EXISTS access_levels (
    access_level_id INTEGER PRIMARY KEY AUTOINCREMENT,
    level_name TEXT NOT NULL UNIQUE,
    max_clients INTEGER,
    max_bookings INTEGER,
    max_storage_gb REAL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Users / Auth
-- Plans are referenced by numeric id only.
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    full_name TEXT NOT NULL DEFAULT '',
    phone TEXT,
    role TEXT NOT NULL CHECK (role IN ('admin','photographer')),
    is_active INTEGER NOT NULL DEFAULT 1,
    access_level_id INTEGER REFERENCES access_levels(access_level_id),
    access_expires_at TEXT,
    currency_type TEXT NOT NULL DEFAULT 'USD',
    business_name TEXT,
    business_email TEXT,
    business_phone TEXT,
    business_address TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_users_role_active ON users (role, is_active);
CREATE INDEX IF NOT EXISTS idx_users_access_expiry ON users (access_expires_at);

CREATE TABLE IF NOT EXISTS clients (
    client_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    email TEXT,
    phone TEXT,
    address TEXT,
    city TEXT,
    state TEXT,
    zip_code TEXT,
    country TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_clients_user ON clients (user_id, created_at);

CREATE TABLE IF NOT EXISTS bookings (
    booking_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    client_id INTEGER NOT NULL REFERENCES clients(client_id) ON DELETE CASCADE,
    title TEXT,
    description TEXT,
    booking_date TEXT NOT NULL,
    start_time TEXT,
    end_time TEXT,
    location TEXT,
    package_type TEXT,
    package_name TEXT,
    total_amount REAL NOT NULL DEFAULT 0,
    deposit_amount REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_bookings_user_date ON bookings (user_id, booking_date);
CREATE INDEX IF NOT EXISTS idx_bookings_client ON bookings (client_id);

CREATE TABLE IF NOT EXISTS invoices (
    invoice_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    client_id INTEGER NOT NULL REFERENCES clients(client_id) ON DELETE CASCADE,
    booking_id INTEGER REFERENCES bookings(booking_id) ON DELETE SET NULL,
    invoice_number TEXT NOT NULL,
    invoice_date TEXT NOT NULL,
    due_date TEXT,
    subtotal REAL NOT NULL DEFAULT 0,
    tax_amount REAL NOT NULL DEFAULT 0,
    total_amount REAL NOT NULL DEFAULT 0,
    deposit_amount REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'draft',
    notes TEXT,
    payment_date TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, invoice_number)
);
CREATE INDEX IF NOT EXISTS idx_invoices_booking ON invoices (booking_id);

CREATE TABLE IF NOT EXISTS payment_schedules (
    schedule_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    invoice_id INTEGER REFERENCES invoices(invoice_id) ON DELETE CASCADE,
    booking_id INTEGER REFERENCES bookings(booking_id) ON DELETE SET NULL,
    schedule_name TEXT NOT NULL,
    schedule_type TEXT NOT NULL DEFAULT 'custom',
    due_date TEXT NOT NULL,
    amount REAL NOT NULL,
    paid_amount REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    payment_date TEXT,
    payment_method TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_schedules_user_due ON payment_schedules (user_id, due_date);
CREATE INDEX IF NOT EXISTS idx_schedules_invoice ON payment_schedules (invoice_id);

CREATE TABLE IF NOT EXISTS payment_installments (
    installment_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    schedule_id INTEGER NOT NULL REFERENCES payment_schedules(schedule_id) ON DELETE CASCADE,
    amount REAL NOT NULL,
    paid_date TEXT NOT NULL,
    payment_method TEXT,
    notes TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_installments_schedule ON payment_installments (schedule_id);

CREATE TABLE IF NOT EXISTS galleries (
    gallery_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    booking_id INTEGER REFERENCES bookings(booking_id) ON DELETE SET NULL,
    gallery_name TEXT NOT NULL,
    description TEXT,
    gallery_date TEXT,
    cover_image TEXT,
    is_public INTEGER NOT NULL DEFAULT 0,
    password_protected INTEGER NOT NULL DEFAULT 0,
    gallery_password_hash TEXT,
    download_enabled INTEGER NOT NULL DEFAULT 1,
    expiry_date TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_galleries_user ON galleries (user_id, created_at);

CREATE TABLE IF NOT EXISTS gallery_images (
    image_id INTEGER PRIMARY KEY AUTOINCREMENT,
    gallery_id INTEGER NOT NULL REFERENCES galleries(gallery_id) ON DELETE CASCADE,
    image_url TEXT NOT NULL,
    image_name TEXT,
    file_size INTEGER NOT NULL DEFAULT 0,
    image_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_gallery_images_gallery ON gallery_images (gallery_id, image_order);
"""


# (level_name, max_clients, max_bookings, max_storage_gb)
DEFAULT_ACCESS_LEVELS = [
    ("Free", 5, 10, 5.0),
    ("Pro", 50, 100, 10.0),
    ("Premium", 200, 500, 20.0),
    ("Unlimited", None, None, 50.0),
]


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
