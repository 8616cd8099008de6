from __future__ import annotations

import json
from dataclasses import dataclass

from ingest.models import AlertRecord
from store.db import Database


@dataclass(frozen=True)
class GeocodeCacheEntry:
    namespace: str
    key: str
    coordinates: tuple[float, float]
    place_name: str | None
    resolved_at: str


@dataclass(frozen=True)
class FeedCacheEntry:
    feed_key: str
    records: list[AlertRecord]
    cached_at: str


def get_geocode(db: Database, *, namespace: str, key: str) -> GeocodeCacheEntry | None:
    with db.lock:
        row = db.conn.execute(
            """
            SELECT lon, lat, place_name, resolved_at
            FROM geocode_cache
            WHERE namespace = ? AND location_key = ?
            LIMIT 1;
            """,
            (namespace, key),
        ).fetchone()
    if row is None:
        return None
    return GeocodeCacheEntry(
        namespace=namespace,
        key=key,
        coordinates=(float(row["lon"]), float(row["lat"])),
        place_name=row["place_name"],
        resolved_at=str(row["resolved_at"]),
    )


def insert_geocode(db: Database, entry: GeocodeCacheEntry) -> bool:
    """Write-once: an existing key is never replaced. Returns True if inserted."""
    lon, lat = entry.coordinates
    with db.lock:
        cur = db.conn.execute(
            """
            INSERT OR IGNORE INTO geocode_cache(
              namespace, location_key, lon, lat, place_name, resolved_at
            )
            VALUES(?, ?, ?, ?, ?, ?);
            """,
            (entry.namespace, entry.key, lon, lat, entry.place_name, entry.resolved_at),
        )
        db.conn.commit()
    return cur.rowcount > 0


def get_feed_cache(db: Database, feed_key: str) -> FeedCacheEntry | None:
    with db.lock:
        row = db.conn.execute(
            "SELECT records_json, cached_at FROM feed_cache WHERE feed_key = ? LIMIT 1;",
            (feed_key,),
        ).fetchone()
    if row is None:
        return None
    records = [AlertRecord.from_dict(r) for r in json.loads(row["records_json"])]
    return FeedCacheEntry(feed_key=feed_key, records=records, cached_at=str(row["cached_at"]))


def put_feed_cache(db: Database, entry: FeedCacheEntry) -> None:
    payload = json.dumps(
        [r.to_dict() for r in entry.records], separators=(",", ":"), ensure_ascii=False
    )
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO feed_cache(feed_key, records_json, item_count, cached_at)
            VALUES(?, ?, ?, ?)
            ON CONFLICT(feed_key) DO UPDATE SET
              records_json = excluded.records_json,
              item_count = excluded.item_count,
              cached_at = excluded.cached_at;
            """,
            (entry.feed_key, payload, len(entry.records), entry.cached_at),
        )
        db.conn.commit()


def get_last_fetch(db: Database, feed_key: str) -> str | None:
    with db.lock:
        row = db.conn.execute(
            "SELECT last_fetch_at FROM fetch_tracker WHERE feed_key = ? LIMIT 1;",
            (feed_key,),
        ).fetchone()
    return str(row["last_fetch_at"]) if row is not None else None


def set_last_fetch(db: Database, feed_key: str, last_fetch_at: str) -> None:
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO fetch_tracker(feed_key, last_fetch_at)
            VALUES(?, ?)
            ON CONFLICT(feed_key) DO UPDATE SET last_fetch_at = excluded.last_fetch_at;
            """,
            (feed_key, last_fetch_at),
        )
        db.conn.commit()
