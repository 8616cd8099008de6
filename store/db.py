from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path

from app.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Database:
    conn: sqlite3.Connection
    lock: threading.Lock


_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version INTEGER NOT NULL PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS geocode_cache (
          namespace TEXT NOT NULL,
          location_key TEXT NOT NULL,
          lon REAL NOT NULL,
          lat REAL NOT NULL,
          place_name TEXT NULL,
          resolved_at TEXT NOT NULL,
          PRIMARY KEY (namespace, location_key)
        );

        CREATE TABLE IF NOT EXISTS feed_cache (
          feed_key TEXT NOT NULL PRIMARY KEY,
          records_json TEXT NOT NULL,
          item_count INTEGER NOT NULL,
          cached_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS fetch_tracker (
          feed_key TEXT NOT NULL PRIMARY KEY,
          last_fetch_at TEXT NOT NULL
        );
        """,
    ),
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS feed_health (
          feed_key TEXT NOT NULL PRIMARY KEY,
          last_success_at TEXT NULL,
          last_error_at TEXT NULL,
          last_error TEXT NULL,
          last_status_code INTEGER NULL,
          last_fetch_ms INTEGER NULL,
          last_item_count INTEGER NULL,
          consecutive_failures INTEGER NOT NULL DEFAULT 0,
          success_count INTEGER NOT NULL DEFAULT 0,
          error_count INTEGER NOT NULL DEFAULT 0
        );
        """,
    ),
]


def open_database(path: Path) -> Database:
    """Open (creating if needed) the store and bring its schema up to date."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        version = _migrate(conn)
    except (OSError, sqlite3.Error) as e:
        raise ConfigurationError(f"cannot open store at {path}: {e}") from e
    logger.info("store_opened path=%s schema_version=%d", path, version)
    return Database(conn=conn, lock=threading.Lock())


def close_database(db: Database) -> None:
    with db.lock:
        db.conn.close()


def schema_version(conn: sqlite3.Connection) -> int:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER NOT NULL PRIMARY KEY);"
    )
    row = conn.execute("SELECT MAX(version) AS v FROM schema_migrations;").fetchone()
    return int(row["v"] or 0)


def _migrate(conn: sqlite3.Connection) -> int:
    applied = schema_version(conn)
    pending = [(v, sql) for v, sql in _MIGRATIONS if v > applied]
    for version, sql in pending:
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_migrations(version) VALUES (?);", (version,))
        conn.commit()
        applied = version
    return applied
