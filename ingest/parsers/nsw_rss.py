from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET

from ingest.models import AlertRecord, AlertSource, WarningLevel, utc_now_iso
from ingest.parsers.common import (
    GEORSS_NS,
    extract_fields,
    inner_markup,
    load_xml_root,
    rfc822_to_iso,
)
from normalize.text import strip_html


logger = logging.getLogger(__name__)

NSW_FIELDS: dict[str, str] = {
    "ALERT LEVEL": "alert_level",
    "LOCATION": "location",
    "COUNCIL AREA": "council_area",
    "STATUS": "status",
    "TYPE": "type",
    "FIRE": "fire",
    "SIZE": "size",
    "RESPONSIBLE AGENCY": "agency",
    "UPDATED": "updated",
}


def nsw_warning_level(category: str | None) -> WarningLevel:
    if not category:
        return WarningLevel.ADVICE
    lowered = category.casefold()
    if "emergency" in lowered:
        return WarningLevel.EMERGENCY
    if "watch" in lowered or "act" in lowered:
        return WarningLevel.WATCH_AND_ACT
    return WarningLevel.ADVICE


def _parse_point(item: ET.Element) -> tuple[float, float] | None:
    point = item.findtext(f"{GEORSS_NS}point") or item.findtext("point")
    if not point:
        return None
    parts = point.split()
    if len(parts) < 2:
        return None
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    return (lon, lat)


def _format_message(title: str, fields: dict[str, str]) -> str:
    incident_type = fields.get("type") or "FIRE"
    status = fields.get("status") or "Unknown status"
    size = fields.get("size") or "Unknown size"
    alert_level = fields.get("alert_level") or "Advice"
    return f"{alert_level}: {incident_type} at {title} - {status} - Size: {size}"


def parse_nsw_rss(data: bytes) -> list[AlertRecord]:
    root = load_xml_root(data)
    records: list[AlertRecord] = []
    for item in root.iter("item"):
        coordinates = _parse_point(item)
        if coordinates is None:
            logger.debug("nsw_rss_item_skipped reason=no_point")
            continue

        title = strip_html(item.findtext("title") or "") or "Unknown Location"
        fields = extract_fields(
            inner_markup(item.find("description")),
            NSW_FIELDS,
            label_prefix="",
            label_suffix="",
        )
        records.append(
            AlertRecord(
                message=_format_message(title, fields),
                timestamp=rfc822_to_iso(item.findtext("pubDate")) or utc_now_iso(),
                source=AlertSource.NSW_RSS,
                location=title,
                coordinates=coordinates,
                incident_id=None,
                warning_level=nsw_warning_level(item.findtext("category")),
                title=title,
                link=(item.findtext("link") or "").strip() or None,
                details={k: v for k, v in fields.items() if k != "location"},
            )
        )
    return records
