from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from app.errors import ConfigurationError, FetchError
from app.settings import Settings
from geo.geocoder import MapboxGeocoder
from health.health import feed_health
from ingest.coordinator import FeedResult, get_enriched_feed
from ingest.feeds import FeedSource, load_feed_sources, source_fetcher
from store.db import Database, close_database, open_database

logger = logging.getLogger(__name__)

EMERGENCY_FEEDS = ("vic", "nsw")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )
    settings = Settings()
    db: Database | None
    try:
        db = open_database(settings.db_path)
    except ConfigurationError as e:
        logger.error("store_unavailable error=%s; serving live fetches only", e)
        db = None

    client = httpx.AsyncClient(follow_redirects=True)
    app.state.settings = settings
    app.state.db = db
    app.state.http = client
    app.state.geocoder = MapboxGeocoder.from_settings(client, db, settings)
    app.state.sources = load_feed_sources(settings)
    try:
        yield
    finally:
        await client.aclose()
        if db is not None:
            close_database(db)


app = FastAPI(lifespan=lifespan)


def _result_payload(result: FeedResult) -> dict:
    return {
        "feed_key": result.feed_key,
        "status": result.status.value,
        "cached_at": result.cached_at,
        "count": len(result.records),
        "records": [r.to_dict() for r in result.records],
    }


def _source(request: Request, feed_key: str) -> FeedSource:
    sources: dict[str, FeedSource] = request.app.state.sources
    source = sources.get(feed_key)
    if source is None or not source.enabled:
        raise HTTPException(status_code=404, detail={"code": "unknown_feed", "feed": feed_key})
    return source


async def _enriched(request: Request, source: FeedSource) -> FeedResult:
    settings: Settings = request.app.state.settings
    return await get_enriched_feed(
        request.app.state.db,
        feed_key=source.feed_key,
        fetch=source_fetcher(request.app.state.http, source, settings),
        parse=source.parse,
        geocoder=request.app.state.geocoder,
        ttl_seconds=source.ttl_seconds,
        geocode_delay_seconds=settings.geocode_delay_ms / 1000.0,
    )


@app.get("/api/feeds/{feed_key}")
async def api_feed(request: Request, feed_key: str) -> JSONResponse:
    source = _source(request, feed_key)
    try:
        result = await _enriched(request, source)
    except FetchError as e:
        raise HTTPException(
            status_code=503,
            detail={"code": "feed_unavailable", "feed": feed_key, "message": str(e)},
        ) from e
    return JSONResponse(
        _result_payload(result), headers={"X-Feed-Status": result.status.value}
    )


@app.get("/api/emergency")
async def api_emergency(request: Request) -> JSONResponse:
    records: list[dict] = []
    feeds: dict[str, dict] = {}
    for feed_key in EMERGENCY_FEEDS:
        try:
            source = _source(request, feed_key)
        except HTTPException:
            continue
        try:
            result = await _enriched(request, source)
        except FetchError as e:
            logger.warning("emergency_feed_unavailable feed=%s error=%s", feed_key, e)
            feeds[feed_key] = {"status": "unavailable", "cached_at": None, "count": 0}
            continue
        feeds[feed_key] = {
            "status": result.status.value,
            "cached_at": result.cached_at,
            "count": len(result.records),
        }
        records.extend(r.to_dict() for r in result.records)
    return JSONResponse({"feeds": feeds, "count": len(records), "records": records})


@app.get("/api/config")
def api_config(request: Request) -> JSONResponse:
    settings: Settings = request.app.state.settings
    return JSONResponse(
        {"mapboxToken": settings.mapbox_public_token},
        headers={"Cache-Control": "public, max-age=3600"},
    )


@app.get("/api/health")
def api_health(request: Request) -> JSONResponse:
    db: Database | None = request.app.state.db
    if db is None:
        return JSONResponse({"store": "unavailable", "feeds": []})
    return JSONResponse({"store": "ok", "feeds": feed_health(db)})
