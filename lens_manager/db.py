from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from lens_manager.schema import DEFAULT_ACCESS_LEVELS, get_schema_sql
from lens_manager.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except ValueError:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def dialect_of(conn: Any) -> str:
    return getattr(conn, "dialect", "sqlite")


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    Question marks inside single/double-quoted literals are left alone. Literal
    percent signs are doubled so psycopg2 does not read them as placeholders.
    """
    out: List[str] = []
    quote: Optional[str] = None
    for ch in sql:
        if quote is not None:
            out.append("%%" if ch == "%" else ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
        elif ch == "?":
            out.append("%s")
        elif ch == "%":
            out.append("%%")
        else:
            out.append(ch)
    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def rowcount(self) -> int:
        return int(self._cur.rowcount or 0)

    def close(self) -> None:
        self._cur.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cur, name)


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        return PGCursor(self._conn.cursor()).execute(sql, params)

    def cursor(self) -> PGCursor:
        return PGCursor(self._conn.cursor())

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open one connection for a unit of work.

    Commits when the block exits cleanly, rolls back on any exception.

    - SQLite: WAL + NORMAL sync, foreign keys on, rows as sqlite3.Row.
    - Postgres: psycopg2 with RealDictCursor so rows behave like dicts.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    if dialect == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install lens-manager[postgres] and try again."
            ) from e

        raw = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
        conn: Any = PGConnection(raw)
    else:
        if dsn.lower().startswith("sqlite:///"):
            dsn = dsn[len("sqlite:///") :]
        Path(dsn).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.execute("PRAGMA foreign_keys = ON;")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def insert_returning_id(conn: Any, sql: str, params: Sequence[Any], id_col: str) -> int:
    """Run an INSERT and return the new surrogate key (RETURNING works on both engines)."""
    rows = conn.execute(f"{sql.rstrip()} RETURNING {id_col}", params).fetchall()
    return int(rows[0][id_col])


def row_to_dict(row: Any) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return dict(row)


def rows_to_dicts(rows: Sequence[Any]) -> List[Dict[str, Any]]:
    return [dict(r) for r in rows]


def update_fields(
    conn: Any,
    table: str,
    key_col: str,
    key: int,
    user_id: int,
    fields: Dict[str, Any],
) -> int:
    """UPDATE only the provided columns of an owner-scoped row. Returns rowcount."""
    if not fields:
        return 0
    items = list(fields.items())
    items.append(("updated_at", utcnow_iso()))
    sets = ", ".join([f"{k}=?" for k, _ in items])
    params = [v for _, v in items] + [int(key), int(user_id)]
    cur = conn.execute(f"UPDATE {table} SET {sets} WHERE {key_col}=? AND user_id=?", params)
    return int(cur.rowcount or 0)


def init_db(db_dsn: str) -> None:
    """Create all tables, run lightweight migrations and seed the default plans."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        schema_sql = get_schema_sql(dialect)
        # Only one process runs schema DDL at a time on Postgres.
        if dialect == "postgres":
            conn.execute("SELECT pg_advisory_lock(2147483646);")
            try:
                _exec_schema(conn, schema_sql, dialect=dialect)
            finally:
                conn.execute("SELECT pg_advisory_unlock(2147483646);")
        else:
            _exec_schema(conn, schema_sql, dialect=dialect)

        _migrate(conn, dialect=dialect)
        _seed_access_levels(conn)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    conn.executescript(ddl)


def _has_column(conn: Any, table: str, col: str, *, dialect: str) -> bool:
    if dialect == "postgres":
        r = conn.execute(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_schema='public'
              AND table_name=?
              AND column_name=?
            LIMIT 1
            """,
            (table, col),
        ).fetchone()
        return r is not None

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _migrate(conn: Any, *, dialect: str) -> None:
    """Lightweight forward-only migrations for existing DBs."""
    # users: business profile columns were added after the first release
    user_cols_to_add = [
        ("business_name", "TEXT"),
        ("business_email", "TEXT"),
        ("business_phone", "TEXT"),
        ("business_address", "TEXT"),
    ]
    for col, ctype in user_cols_to_add:
        if not _has_column(conn, "users", col, dialect=dialect):
            conn.execute(f"ALTER TABLE users ADD COLUMN {col} {ctype}")

    if not _has_column(conn, "galleries", "download_enabled", dialect=dialect):
        conn.execute("ALTER TABLE galleries ADD COLUMN download_enabled INTEGER NOT NULL DEFAULT 1")


def _seed_access_levels(conn: Any) -> None:
    now = utcnow_iso()
    for name, max_clients, max_bookings, max_storage_gb in DEFAULT_ACCESS_LEVELS:
        conn.execute(
            """
            INSERT INTO access_levels (level_name, max_clients, max_bookings, max_storage_gb, created_at, updated_at)
            VALUES (?,?,?,?,?,?)
            ON CONFLICT(level_name) DO NOTHING
            """,
            (name, max_clients, max_bookings, max_storage_gb, now, now),
        )
