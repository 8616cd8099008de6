from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

import httpx
import yaml

from app.settings import Settings
from ingest.coordinator import FetchFn, ParseFn
from ingest.fetch import FetchedFeed, fetch
from ingest.parsers.nsw_rss import parse_nsw_rss
from ingest.parsers.pager import parse_pager_feed
from ingest.parsers.vic_rss import parse_vic_rss


PARSERS: dict[str, ParseFn] = {
    "pager": parse_pager_feed,
    "vic_rss": parse_vic_rss,
    "nsw_rss": parse_nsw_rss,
}


@dataclass(frozen=True)
class FeedSource:
    feed_key: str
    name: str
    dialect: str
    url: str
    ttl_seconds: int
    enabled: bool = True

    @property
    def parse(self) -> ParseFn:
        return PARSERS[self.dialect]


def default_sources(settings: Settings) -> list[FeedSource]:
    ttl = settings.feed_ttl_seconds
    return [
        FeedSource(
            feed_key="cfa",
            name="CFA pager dispatches",
            dialect="pager",
            url=settings.cfa_feed_url,
            ttl_seconds=ttl,
        ),
        FeedSource(
            feed_key="vic",
            name="Emergency Victoria incidents",
            dialect="vic_rss",
            url="https://data.emergency.vic.gov.au/Show?pageId=getIncidentRSS",
            ttl_seconds=ttl,
        ),
        FeedSource(
            feed_key="nsw",
            name="NSW RFS major incidents",
            dialect="nsw_rss",
            url="https://www.rfs.nsw.gov.au/feeds/majorIncidents.xml",
            ttl_seconds=ttl,
        ),
    ]


def load_feed_sources(settings: Settings, path: Path | None = None) -> dict[str, FeedSource]:
    """Built-in feeds, overridden or extended by entries in a YAML list."""
    sources = {s.feed_key: s for s in default_sources(settings)}
    path = path or settings.feeds_path
    if not path.exists():
        return sources

    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        return sources
    if not isinstance(raw, list):
        raise ValueError(f"invalid feeds file: {path}")

    for entry in raw:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ValueError(f"invalid feed entry in: {path}")
        feed_key = str(entry["id"])
        base = sources.get(feed_key)
        if base is None:
            dialect = str(entry.get("dialect") or "")
            if dialect not in PARSERS or not entry.get("url"):
                raise ValueError(f"feed {feed_key} needs a url and a known dialect")
            base = FeedSource(
                feed_key=feed_key,
                name=str(entry.get("name") or feed_key),
                dialect=dialect,
                url=str(entry["url"]),
                ttl_seconds=settings.feed_ttl_seconds,
            )
        elif entry.get("dialect") and str(entry["dialect"]) not in PARSERS:
            raise ValueError(f"unknown dialect for feed {feed_key}: {entry['dialect']}")

        ttl = entry.get("ttl_seconds")
        sources[feed_key] = replace(
            base,
            name=str(entry.get("name") or base.name),
            dialect=str(entry.get("dialect") or base.dialect),
            url=str(entry.get("url") or base.url),
            ttl_seconds=base.ttl_seconds if ttl is None else int(ttl),
            enabled=bool(entry.get("enabled", base.enabled)),
        )
    return sources


def source_fetcher(
    client: httpx.AsyncClient, source: FeedSource, settings: Settings
) -> FetchFn:
    async def _fetch() -> FetchedFeed:
        return await fetch(
            client,
            url=source.url,
            user_agent=settings.user_agent,
            timeout_seconds=settings.fetch_timeout_seconds,
        )

    return _fetch
