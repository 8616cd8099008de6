from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET

from app.errors import ParseError
from ingest.models import (
    AlertRecord,
    AlertSource,
    WarningLevel,
    drop_duplicate_incidents,
    utc_now_iso,
)
from ingest.parsers.common import (
    extract_fields,
    inner_markup,
    leading_int,
    load_xml_root,
    rfc822_to_iso,
)
from normalize.text import strip_html


logger = logging.getLogger(__name__)

VIC_FIELDS: dict[str, str] = {
    "Incident Name": "incident_name",
    "Territory": "territory",
    "Agency": "agency",
    "Fire District": "fire_district",
    "Incident No": "incident_no",
    "Date/Time": "date_time",
    "Type": "type",
    "Location": "location",
    "Status": "status",
    "Size": "size",
    "Vehicles": "vehicles",
    "Latitude": "latitude",
    "Longitude": "longitude",
}

BUSHFIRE_VEHICLE_THRESHOLD = 10
LARGE_VEHICLE_THRESHOLD = 20


def vic_warning_level(fields: dict[str, str]) -> WarningLevel:
    """Severity guess; the feed publishes no explicit warning level."""
    incident_type = fields.get("type", "").upper()
    size = fields.get("size", "").upper()
    status = fields.get("status", "").upper()
    vehicles = leading_int(fields.get("vehicles"))

    if "EMERGENCY" in status:
        return WarningLevel.EMERGENCY
    if "WATCH" in status or "ACT" in status:
        return WarningLevel.WATCH_AND_ACT
    if incident_type == "BUSHFIRE" and (
        size == "UNKNOWN" or vehicles > BUSHFIRE_VEHICLE_THRESHOLD
    ):
        return WarningLevel.WATCH_AND_ACT
    if size == "LARGE" or vehicles > LARGE_VEHICLE_THRESHOLD:
        return WarningLevel.WATCH_AND_ACT
    return WarningLevel.ADVICE


def _format_message(title: str | None, fields: dict[str, str]) -> str:
    incident_type = fields.get("type") or "FIRE"
    location = fields.get("location") or title
    status = fields.get("status") or "Unknown status"
    size = fields.get("size") or "Unknown size"
    vehicles = fields.get("vehicles") or "0"
    return f"{incident_type} at {location} - {status} - Size: {size} - Vehicles: {vehicles}"


def _parse_item(item: ET.Element) -> AlertRecord | None:
    title = strip_html(item.findtext("title") or "") or None
    fields = extract_fields(
        inner_markup(item.find("description")),
        VIC_FIELDS,
        label_prefix="<strong>",
        label_suffix="</strong>",
    )

    latitude = fields.get("latitude")
    longitude = fields.get("longitude")
    if not latitude or not longitude:
        return None
    try:
        coordinates = (float(longitude), float(latitude))
    except ValueError as e:
        raise ParseError(f"bad coordinates lat={latitude!r} lon={longitude!r}") from e
    if not all(math.isfinite(c) for c in coordinates):
        raise ParseError(f"non-finite coordinates lat={latitude!r} lon={longitude!r}")

    details = {
        key: value
        for key, value in fields.items()
        if key not in ("latitude", "longitude", "location", "incident_no")
    }
    return AlertRecord(
        message=_format_message(title, fields),
        timestamp=rfc822_to_iso(item.findtext("pubDate")) or utc_now_iso(),
        source=AlertSource.VIC_RSS,
        location=fields.get("location") or title,
        coordinates=coordinates,
        incident_id=fields.get("incident_no") or None,
        warning_level=vic_warning_level(fields),
        title=title or "Unknown Location",
        link=(item.findtext("link") or "").strip() or None,
        details=details,
    )


def parse_vic_rss(data: bytes) -> list[AlertRecord]:
    root = load_xml_root(data)
    records: list[AlertRecord] = []
    for index, item in enumerate(root.iter("item")):
        try:
            record = _parse_item(item)
        except ParseError as e:
            logger.warning("vic_rss_item_skipped index=%d error=%s", index, e)
            continue
        if record is not None:
            records.append(record)
    return drop_duplicate_incidents(records)
