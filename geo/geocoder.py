"""
Mapbox forward geocoding with a write-once location cache.

Each distinct location key is sent to Mapbox at most once for the life of
the store: hits are served from ``geocode_cache`` and successful lookups are
stored with ``INSERT OR IGNORE``. Failures and empty results are not cached,
so a transient outage never blocks a later retry.

Docs: https://docs.mapbox.com/api/search/geocoding/
"""

from __future__ import annotations

import logging
import math
import urllib.parse
from dataclasses import dataclass
from typing import Any

import httpx

from app.errors import ConfigurationError
from app.settings import Settings
from ingest.models import utc_now_iso
from normalize.text import normalize_location_key
from store.cache import GeocodeCacheEntry, get_geocode, insert_geocode
from store.db import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    coordinates: tuple[float, float]
    place_name: str | None
    from_cache: bool


def _top_feature(data: Any) -> tuple[tuple[float, float], str | None] | None:
    if not isinstance(data, dict):
        return None
    features = data.get("features")
    if not isinstance(features, list) or not features:
        return None
    feature = features[0]
    if not isinstance(feature, dict):
        return None
    center = feature.get("center")
    try:
        lon, lat = float(center[0]), float(center[1])
    except (TypeError, ValueError, IndexError, KeyError):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    place_name = feature.get("place_name")
    return (lon, lat), place_name if isinstance(place_name, str) else None


class MapboxGeocoder:
    """Cache-first wrapper around Mapbox Geocoding v5 forward search."""

    BASE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"

    def __init__(
        self,
        client: httpx.AsyncClient,
        db: Database | None,
        *,
        token: str | None,
        region: str = "Victoria, Australia",
        country: str = "AU",
        timeout_seconds: float = 10.0,
    ) -> None:
        if not token:
            raise ConfigurationError("MAPBOX_TOKEN is not set")
        if db is None:
            raise ConfigurationError("geocoding requires the persistent store")
        self.client = client
        self.db = db
        self.token = token
        self.region = region
        self.country = country
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(
        cls, client: httpx.AsyncClient, db: Database | None, settings: Settings
    ) -> MapboxGeocoder | None:
        """None when the token or store is missing; every lookup then misses."""
        try:
            return cls(
                client,
                db,
                token=settings.mapbox_token,
                region=settings.geocode_region,
                country=settings.geocode_country,
                timeout_seconds=settings.geocode_timeout_seconds,
            )
        except ConfigurationError as e:
            logger.warning("geocoder_disabled reason=%s", e)
            return None

    def cached(self, location: str | None, namespace: str) -> GeocodeResult | None:
        key = normalize_location_key(location)
        if not key:
            return None
        entry = get_geocode(self.db, namespace=namespace, key=key)
        if entry is None:
            return None
        return GeocodeResult(
            coordinates=entry.coordinates, place_name=entry.place_name, from_cache=True
        )

    async def resolve(self, location: str | None, namespace: str) -> GeocodeResult | None:
        key = normalize_location_key(location)
        if not key:
            return None

        hit = self.cached(location, namespace)
        if hit is not None:
            logger.debug("geocode_cache_hit namespace=%s key=%r", namespace, key)
            return hit

        found = await self._search(str(location))
        if found is None:
            return None

        coordinates, place_name = found
        inserted = insert_geocode(
            self.db,
            GeocodeCacheEntry(
                namespace=namespace,
                key=key,
                coordinates=coordinates,
                place_name=place_name,
                resolved_at=utc_now_iso(),
            ),
        )
        if not inserted:
            # another request resolved the same key first; keep its answer
            existing = self.cached(location, namespace)
            if existing is not None:
                return existing
        logger.info(
            "geocode_stored namespace=%s key=%r place=%r", namespace, key, place_name
        )
        return GeocodeResult(coordinates=coordinates, place_name=place_name, from_cache=False)

    async def _search(self, location: str) -> tuple[tuple[float, float], str | None] | None:
        query = f"{location}, {self.region}"
        url = f"{self.BASE_URL}/{urllib.parse.quote(query, safe='')}.json"
        params = {"access_token": self.token, "limit": "1"}
        if self.country:
            params["country"] = self.country

        logger.info("mapbox_geocode query=%r", query)
        try:
            response = await self.client.get(
                url, params=params, timeout=self.timeout_seconds
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "mapbox_geocode_http_error status=%d query=%r",
                e.response.status_code,
                query,
            )
            return None
        except httpx.TimeoutException:
            logger.error("mapbox_geocode_timeout query=%r", query)
            return None
        except httpx.RequestError as e:
            logger.error("mapbox_geocode_request_error query=%r error=%s", query, e)
            return None
        except ValueError:
            logger.error("mapbox_geocode_bad_json query=%r", query)
            return None

        found = _top_feature(data)
        if found is None and isinstance(data, dict) and data.get("features"):
            logger.error("mapbox_geocode_bad_payload query=%r", query)
        elif found is None:
            logger.info("mapbox_geocode_no_results query=%r", query)
        return found
