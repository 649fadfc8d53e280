"""Database connection and schema management."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "home-meter" / "meter.db"

SCHEMA = """
-- Cumulative meter readings entered by the user
CREATE TABLE IF NOT EXISTS readings (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    value REAL NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Single-row tariff configuration, stored as a versioned JSON document
CREATE TABLE IF NOT EXISTS tariff_config (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    schema_version INTEGER NOT NULL,
    data TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_readings_date ON readings(date);
"""


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed.

    METER_DB_PATH overrides the default location.
    """
    db_path = Path(os.environ.get("METER_DB_PATH") or DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def migrate_db(db_path: Path | None = None) -> None:
    """Apply database migrations for existing databases."""
    with get_connection(db_path) as conn:
        tables = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='readings'"
        ).fetchone()

        if not tables:
            return

        cursor = conn.execute("PRAGMA table_info(readings)")
        existing_columns = {row["name"] for row in cursor.fetchall()}

        # Early databases had no created_at; SQLite refuses non-constant
        # defaults in ALTER TABLE, so the column is added without one.
        columns_to_add = {
            "created_at": "TEXT",
        }

        for col_name, col_type in columns_to_add.items():
            if col_name not in existing_columns:
                logger.info("Adding column readings.%s", col_name)
                conn.execute(f"ALTER TABLE readings ADD COLUMN {col_name} {col_type}")

        conn.commit()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        conn.commit()

    # Apply migrations for existing databases
    migrate_db(db_path)


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    with get_connection(db_path) as conn:
        stats = {}

        row = conn.execute(
            "SELECT COUNT(*) as count, MIN(date) as earliest, MAX(date) as latest FROM readings"
        ).fetchone()
        stats["readings"] = {
            "count": row["count"],
            "earliest": row["earliest"],
            "latest": row["latest"],
        }

        row = conn.execute(
            "SELECT schema_version, updated_at FROM tariff_config WHERE id = 1"
        ).fetchone()
        stats["tariffs"] = {
            "configured": row is not None,
            "schema_version": row["schema_version"] if row else None,
            "updated_at": row["updated_at"] if row else None,
        }

        return stats
