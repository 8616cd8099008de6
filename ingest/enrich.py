from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from geo.geocoder import MapboxGeocoder
from ingest.models import AlertRecord

logger = logging.getLogger(__name__)


@dataclass
class EnrichStats:
    geocoded: int = 0
    cached: int = 0
    failed: int = 0
    skipped: int = 0


async def enrich_records(
    records: list[AlertRecord],
    geocoder: MapboxGeocoder | None,
    *,
    namespace: str,
    delay_seconds: float = 0.1,
) -> EnrichStats:
    """Fill missing coordinates in place, one provider call at a time."""
    stats = EnrichStats()
    for record in records:
        if record.coordinates is not None:
            stats.skipped += 1
            continue
        if not record.location or geocoder is None:
            stats.failed += 1
            continue

        hit = geocoder.cached(record.location, namespace)
        if hit is not None:
            record.coordinates = hit.coordinates
            record.place_name = hit.place_name
            stats.cached += 1
            continue

        result = await geocoder.resolve(record.location, namespace)
        if result is None:
            stats.failed += 1
        else:
            record.coordinates = result.coordinates
            record.place_name = result.place_name
            stats.geocoded += 1
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)

    logger.info(
        "enrich_complete namespace=%s geocoded=%d cached=%d failed=%d skipped=%d",
        namespace,
        stats.geocoded,
        stats.cached,
        stats.failed,
        stats.skipped,
    )
    return stats
