from __future__ import annotations

from ingest.models import utc_now_iso
from store.db import Database


def record_fetch_success(
    db: Database,
    *,
    feed_key: str,
    status_code: int,
    fetch_ms: int,
    item_count: int,
) -> None:
    now_iso = utc_now_iso()
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO feed_health(
              feed_key, last_success_at, last_status_code, last_fetch_ms,
              last_item_count, consecutive_failures, success_count
            )
            VALUES(?, ?, ?, ?, ?, 0, 1)
            ON CONFLICT(feed_key) DO UPDATE SET
              last_success_at = excluded.last_success_at,
              last_status_code = excluded.last_status_code,
              last_fetch_ms = excluded.last_fetch_ms,
              last_item_count = excluded.last_item_count,
              consecutive_failures = 0,
              last_error = NULL,
              last_error_at = NULL,
              success_count = success_count + 1;
            """,
            (feed_key, now_iso, status_code, fetch_ms, item_count),
        )
        db.conn.commit()


def record_fetch_error(
    db: Database,
    *,
    feed_key: str,
    status_code: int | None,
    error: str,
) -> int:
    now_iso = utc_now_iso()
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO feed_health(
              feed_key, last_error_at, last_error, last_status_code,
              consecutive_failures, error_count
            )
            VALUES(?, ?, ?, ?, 1, 1)
            ON CONFLICT(feed_key) DO UPDATE SET
              last_error_at = excluded.last_error_at,
              last_error = excluded.last_error,
              last_status_code = COALESCE(excluded.last_status_code, last_status_code),
              consecutive_failures = consecutive_failures + 1,
              error_count = error_count + 1;
            """,
            (feed_key, now_iso, error, status_code),
        )
        row = db.conn.execute(
            "SELECT consecutive_failures FROM feed_health WHERE feed_key = ?;",
            (feed_key,),
        ).fetchone()
        db.conn.commit()
    return int(row["consecutive_failures"])


def feed_health(db: Database) -> list[dict]:
    with db.lock:
        rows = db.conn.execute(
            """
            SELECT feed_key, last_success_at, last_error_at, last_error, last_status_code,
                   last_fetch_ms, last_item_count, consecutive_failures,
                   success_count, error_count
            FROM feed_health
            ORDER BY feed_key;
            """
        ).fetchall()
    return [dict(r) for r in rows]
