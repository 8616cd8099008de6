"""
Per-feed fetch coordination backed by the persistent store.

A feed is Fresh while ``now - last_fetch_at < ttl`` and a snapshot exists;
callers then get the stored snapshot without touching the network. Otherwise
it is Stale and the caller runs fetch -> parse -> enrich itself. There is no
lock: two callers that both observe Stale will both fetch, which upstream
tolerates.

A failed refresh leaves ``last_fetch_at`` alone so the next call retries at
once, and serves whatever snapshot exists, however old.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from app.errors import FetchError, ParseError
from geo.geocoder import MapboxGeocoder
from health.health import record_fetch_error, record_fetch_success
from ingest.enrich import enrich_records
from ingest.fetch import FetchedFeed
from ingest.models import AlertRecord, parse_iso, to_iso
from store.cache import (
    FeedCacheEntry,
    get_feed_cache,
    get_last_fetch,
    put_feed_cache,
    set_last_fetch,
)
from store.db import Database

logger = logging.getLogger(__name__)


FetchFn = Callable[[], Awaitable[FetchedFeed]]
ParseFn = Callable[[bytes], list[AlertRecord]]

DEFAULT_TTL_SECONDS = 60


class FeedStatus(str, Enum):
    FRESH_FETCH = "fresh_fetch"
    CACHE_HIT = "cache_hit"
    STALE_FALLBACK = "stale_fallback"


@dataclass(frozen=True)
class FeedResult:
    feed_key: str
    records: list[AlertRecord]
    status: FeedStatus
    cached_at: str | None


# Refreshes outlive a cancelled caller; hold references until they finish.
_refresh_tasks: set[asyncio.Task] = set()


def is_fresh(last_fetch_at: str | None, now: datetime, ttl_seconds: float) -> bool:
    if last_fetch_at is None:
        return False
    return now - parse_iso(last_fetch_at) < timedelta(seconds=ttl_seconds)


async def _refresh(
    db: Database | None,
    *,
    feed_key: str,
    fetch: FetchFn,
    parse: ParseFn,
    geocoder: MapboxGeocoder | None,
    geocode_delay_seconds: float,
    started_at: datetime,
) -> FeedCacheEntry:
    try:
        fetched = await fetch()
        records = parse(fetched.content)
    except (FetchError, ParseError) as e:
        if db is not None:
            record_fetch_error(
                db,
                feed_key=feed_key,
                status_code=e.status_code if isinstance(e, FetchError) else None,
                error=str(e),
            )
        raise

    await enrich_records(
        records, geocoder, namespace=feed_key, delay_seconds=geocode_delay_seconds
    )

    entry = FeedCacheEntry(feed_key=feed_key, records=records, cached_at=to_iso(started_at))
    if db is not None:
        put_feed_cache(db, entry)
        set_last_fetch(db, feed_key, entry.cached_at)
        record_fetch_success(
            db,
            feed_key=feed_key,
            status_code=fetched.status_code,
            fetch_ms=fetched.elapsed_ms,
            item_count=len(records),
        )
    logger.info("feed_refreshed feed=%s records=%d", feed_key, len(records))
    return entry


def _on_refresh_done(task: asyncio.Task) -> None:
    _refresh_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("feed_refresh_failed error=%s", error)


async def get_enriched_feed(
    db: Database | None,
    *,
    feed_key: str,
    fetch: FetchFn,
    parse: ParseFn,
    geocoder: MapboxGeocoder | None = None,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
    geocode_delay_seconds: float = 0.1,
    now: datetime | None = None,
) -> FeedResult:
    now = now or datetime.now(tz=UTC)

    if db is not None:
        last_fetch_at = get_last_fetch(db, feed_key)
        if is_fresh(last_fetch_at, now, ttl_seconds):
            cached = get_feed_cache(db, feed_key)
            if cached is not None:
                logger.debug("feed_cache_hit feed=%s last_fetch_at=%s", feed_key, last_fetch_at)
                return FeedResult(
                    feed_key=feed_key,
                    records=cached.records,
                    status=FeedStatus.CACHE_HIT,
                    cached_at=cached.cached_at,
                )

    task = asyncio.ensure_future(
        _refresh(
            db,
            feed_key=feed_key,
            fetch=fetch,
            parse=parse,
            geocoder=geocoder,
            geocode_delay_seconds=geocode_delay_seconds,
            started_at=now,
        )
    )
    _refresh_tasks.add(task)
    task.add_done_callback(_on_refresh_done)

    try:
        entry = await asyncio.shield(task)
    except (FetchError, ParseError) as e:
        previous = get_feed_cache(db, feed_key) if db is not None else None
        if previous is not None:
            logger.warning(
                "feed_stale_fallback feed=%s cached_at=%s error=%s",
                feed_key,
                previous.cached_at,
                e,
            )
            return FeedResult(
                feed_key=feed_key,
                records=previous.records,
                status=FeedStatus.STALE_FALLBACK,
                cached_at=previous.cached_at,
            )
        logger.error("feed_unavailable feed=%s error=%s", feed_key, e)
        if isinstance(e, FetchError):
            raise
        raise FetchError(f"{feed_key}: {e}") from e

    return FeedResult(
        feed_key=feed_key,
        records=entry.records,
        status=FeedStatus.FRESH_FETCH,
        cached_at=entry.cached_at,
    )
