import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, List

from .schema import ADDED_COLUMNS, INDEXES_SQL, SCHEMA_SQL, SCHEMA_VERSION, TABLE_COLUMNS

CONFIG_DIR = Path.home() / ".sentencepaths"
DB_PATH = CONFIG_DIR / "sentencepaths.db"
BACKUP_DIR = CONFIG_DIR / "backups"

logger = logging.getLogger(__name__)


class MigrationError(RuntimeError):
    """Raised when the on-disk store cannot be brought up to SCHEMA_VERSION."""


def init_db():
    """Create tables, patch legacy columns, and run pending migrations.

    Safe to call on every start: each step is idempotent and only steps newer
    than the stored PRAGMA user_version are applied.
    """
    from .migrations import run_migrations
    from utils.backup import run_daily_backup

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    with get_conn() as conn:
        conn.executescript(SCHEMA_SQL)
        ensure_added_columns(conn)
        conn.executescript(INDEXES_SQL)
        current = get_schema_version(conn)
        try:
            with transaction(conn):
                run_migrations(conn, current)
                ensure_schema_version(conn)
        except Exception as exc:
            logger.exception("Migration from schema v%s failed", current)
            raise MigrationError(f"Could not migrate store from v{current} to v{SCHEMA_VERSION}: {exc}") from exc
    run_daily_backup()

def table_columns(conn: sqlite3.Connection, table: str) -> set:
    cursor = conn.cursor()
    cursor.execute(f"PRAGMA table_info({table})")
    return {row[1] for row in cursor.fetchall()}

def ensure_added_columns(conn: sqlite3.Connection) -> None:
    """Ensure legacy tables have every column added since the first release."""
    cursor = conn.cursor()
    for table, columns in ADDED_COLUMNS.items():
        existing = table_columns(conn, table)
        for name, ddl in columns.items():
            if name not in existing:
                logger.info("Adding column %s.%s", table, name)
                cursor.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
    conn.commit()

def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the SQLite schema version from PRAGMA user_version."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA user_version")
    row = cursor.fetchone()
    return int(row[0]) if row else 0

def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Set the SQLite schema version via PRAGMA user_version."""
    conn.execute(f"PRAGMA user_version = {int(version)}")

def ensure_schema_version(conn: sqlite3.Connection) -> None:
    """Ensure the current schema version is written to the database."""
    current = get_schema_version(conn)
    if current != SCHEMA_VERSION:
        set_schema_version(conn, SCHEMA_VERSION)

@contextmanager
def transaction(conn: sqlite3.Connection):
    """All-or-nothing block. Joins an already-open transaction when nested."""
    if conn.in_transaction:
        yield conn
        return
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()

def fetch_rows(conn: sqlite3.Connection, table: str) -> List[Dict]:
    """Return every row of a declared table as plain dicts."""
    columns = TABLE_COLUMNS[table]
    cursor = conn.cursor()
    cursor.execute(f"SELECT {', '.join(columns)} FROM {table}")
    return [dict(row) for row in cursor.fetchall()]

def bulk_put(conn: sqlite3.Connection, table: str, rows: Iterable[Dict]) -> int:
    """Upsert rows into a declared table; missing keys are written as NULL."""
    columns = TABLE_COLUMNS[table]
    placeholders = ", ".join("?" for _ in columns)
    values = [tuple(row.get(column) for column in columns) for row in rows]
    if not values:
        return 0
    conn.executemany(
        f"INSERT OR REPLACE INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
        values,
    )
    return len(values)

def clear_table(conn: sqlite3.Connection, table: str) -> None:
    if table not in TABLE_COLUMNS:
        raise KeyError(f"Unknown table: {table}")
    conn.execute(f"DELETE FROM {table}")

@contextmanager
def get_conn():
    """Context manager for SQLite connection, using row_factory for dict-like rows."""
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def get_db():
    """FastAPI dependency that yields a DB connection and closes it afterwards."""
    with get_conn() as conn:
        yield conn
