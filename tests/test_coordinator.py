import asyncio
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from app.errors import FetchError, ParseError
from geo.geocoder import MapboxGeocoder
from health.health import feed_health
from ingest import coordinator
from ingest.coordinator import FeedStatus, get_enriched_feed, is_fresh
from ingest.fetch import FetchedFeed
from ingest.models import AlertRecord, AlertSource, to_iso
from store.cache import get_feed_cache, get_last_fetch


T0 = datetime(2024, 1, 15, 3, 30, tzinfo=UTC)
TTL = 60


class FakeFeed:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error

    async def fetch(self) -> FetchedFeed:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return FetchedFeed(url="https://feed.test", status_code=200, content=b"x", elapsed_ms=12)


def _parse(content: bytes) -> list[AlertRecord]:
    return [
        AlertRecord(
            message="GRASS FIRE 230 CHURCHILL RD YARRAWONGA / F240100001",
            timestamp="2024-01-15T03:30:00Z",
            source=AlertSource.PAGER,
            location="230 CHURCHILL RD, YARRAWONGA",
            incident_id="F240100001",
        ),
        AlertRecord(
            message="BUSHFIRE at KANGAROO GROUND",
            timestamp="2024-01-15T03:31:00Z",
            source=AlertSource.VIC_RSS,
            location="KANGAROO GROUND",
            coordinates=(145.23, -37.68),
        ),
    ]


def _get(db, feed: FakeFeed, now: datetime, **kwargs):
    return asyncio.run(
        get_enriched_feed(
            db,
            feed_key="cfa",
            fetch=feed.fetch,
            parse=kwargs.pop("parse", _parse),
            ttl_seconds=TTL,
            geocode_delay_seconds=0,
            now=now,
            **kwargs,
        )
    )


def test_is_fresh_boundary() -> None:
    last = to_iso(T0)
    assert is_fresh(last, T0 + timedelta(seconds=TTL) - timedelta(milliseconds=1), TTL)
    assert not is_fresh(last, T0 + timedelta(seconds=TTL), TTL)
    assert not is_fresh(None, T0, TTL)


def test_cache_hit_inside_ttl_and_refetch_after(db) -> None:
    feed = FakeFeed()

    first = _get(db, feed, T0)
    assert first.status == FeedStatus.FRESH_FETCH
    assert first.cached_at == to_iso(T0)
    assert get_last_fetch(db, "cfa") == to_iso(T0)

    hit = _get(db, feed, T0 + timedelta(seconds=TTL) - timedelta(milliseconds=1))
    assert hit.status == FeedStatus.CACHE_HIT
    assert feed.calls == 1
    assert [r.to_dict() for r in hit.records] == [r.to_dict() for r in first.records]

    later = T0 + timedelta(seconds=TTL) + timedelta(milliseconds=1)
    refetched = _get(db, feed, later)
    assert refetched.status == FeedStatus.FRESH_FETCH
    assert feed.calls == 2
    assert get_last_fetch(db, "cfa") == to_iso(later)


def test_failed_refresh_serves_stale_snapshot(db) -> None:
    _get(db, FakeFeed(), T0)

    failing = FakeFeed(error=FetchError("upstream down", status_code=502))
    result = _get(db, failing, T0 + timedelta(seconds=300))
    assert result.status == FeedStatus.STALE_FALLBACK
    assert result.cached_at == to_iso(T0)
    assert len(result.records) == 2
    # tracker untouched so the next call retries immediately
    assert get_last_fetch(db, "cfa") == to_iso(T0)

    health = {h["feed_key"]: h for h in feed_health(db)}
    assert health["cfa"]["consecutive_failures"] == 1
    assert health["cfa"]["last_status_code"] == 502


def test_failure_without_snapshot_raises(db) -> None:
    with pytest.raises(FetchError):
        _get(db, FakeFeed(error=FetchError("upstream down")), T0)
    assert get_feed_cache(db, "cfa") is None


def test_parse_failure_without_snapshot_raises_fetch_error(db) -> None:
    def broken(content: bytes) -> list[AlertRecord]:
        raise ParseError("bad document")

    with pytest.raises(FetchError):
        _get(db, FakeFeed(), T0, parse=broken)


def test_without_store_every_call_fetches() -> None:
    feed = FakeFeed()
    assert _get(None, feed, T0).status == FeedStatus.FRESH_FETCH
    assert _get(None, feed, T0).status == FeedStatus.FRESH_FETCH
    assert feed.calls == 2

    with pytest.raises(FetchError):
        _get(None, FakeFeed(error=FetchError("down")), T0)


def test_enrichment_fills_only_missing_coordinates(db) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={"features": [{"center": [146.0, -36.0], "place_name": "Yarrawonga VIC"}]},
        )

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            geocoder = MapboxGeocoder(client, db, token="tok")
            return await get_enriched_feed(
                db,
                feed_key="cfa",
                fetch=FakeFeed().fetch,
                parse=_parse,
                geocoder=geocoder,
                ttl_seconds=TTL,
                geocode_delay_seconds=0,
                now=T0,
            )

    result = asyncio.run(run())
    pager, vic = result.records
    assert pager.coordinates == (146.0, -36.0)
    assert pager.place_name == "Yarrawonga VIC"
    assert vic.coordinates == (145.23, -37.68)
    assert len(requests) == 1

    stored = get_feed_cache(db, "cfa")
    assert stored is not None
    assert stored.records[0].coordinates == (146.0, -36.0)


def test_cancelled_caller_does_not_abort_refresh(db) -> None:
    async def run():
        release = asyncio.Event()

        async def slow_fetch() -> FetchedFeed:
            await release.wait()
            return FetchedFeed(url="https://feed.test", status_code=200, content=b"x", elapsed_ms=1)

        caller = asyncio.create_task(
            get_enriched_feed(
                db,
                feed_key="cfa",
                fetch=slow_fetch,
                parse=_parse,
                geocode_delay_seconds=0,
                now=T0,
            )
        )
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        pending = [t for t in coordinator._refresh_tasks if not t.done()]
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        await asyncio.gather(*pending)
        return pending

    pending = asyncio.run(run())
    assert len(pending) == 1
    assert get_feed_cache(db, "cfa") is not None
    assert get_last_fetch(db, "cfa") == to_iso(T0)


def test_malformed_geocoder_reply_does_not_fail_refresh(db) -> None:
    _get(db, FakeFeed(), T0)

    def parse_two(content: bytes) -> list[AlertRecord]:
        return [
            AlertRecord(
                message="GRASS FIRE 230 CHURCHILL RD YARRAWONGA / F240100001",
                timestamp="2024-01-15T03:30:00Z",
                source=AlertSource.PAGER,
                location="230 CHURCHILL RD, YARRAWONGA",
            ),
            AlertRecord(
                message="STRUC1 HOUSE FIRE CNR MAROONDAH HWY/HEALESVILLE RD YARRA GLEN SVNE 8123",
                timestamp="2024-01-15T03:31:00Z",
                source=AlertSource.PAGER,
                location="YARRA GLEN",
            ),
        ]

    replies = [
        httpx.Response(200, json={"features": [None]}),
        httpx.Response(200, json={"features": [{"center": [145.37, -37.65]}]}),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return replies.pop(0)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await get_enriched_feed(
                db,
                feed_key="cfa",
                fetch=FakeFeed().fetch,
                parse=parse_two,
                geocoder=MapboxGeocoder(client, db, token="tok"),
                ttl_seconds=TTL,
                geocode_delay_seconds=0,
                now=T0 + timedelta(seconds=300),
            )

    result = asyncio.run(run())
    assert result.status == FeedStatus.FRESH_FETCH
    first, second = result.records
    assert first.coordinates is None
    assert second.coordinates == (145.37, -37.65)
