from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from geo.location_extract import clean_dispatch_message, extract_location
from ingest.models import AlertRecord, AlertSource, to_iso, utc_now_iso
from normalize.text import strip_html


_ROW_RE = re.compile(
    r"<tr><td class=['\"]capcode['\"]>([^<]*)</td>"
    r"<td class=['\"]timestamp['\"]>([^<]*)</td>"
    r"<td>(.*?)</td></tr>",
    flags=re.IGNORECASE | re.DOTALL,
)
_INCIDENT_RE = re.compile(r"F\d{9}")

ALERT_MARKER = "@@ALERT"
OPERATOR_NOTICE = "STOP SCRAPING"

# Upstream stamps pager rows in AEDT year-round; no DST adjustment.
PAGER_UTC_OFFSET = timezone(timedelta(hours=11))


def parse_pager_timestamp(value: str) -> str:
    parts = value.split()
    if len(parts) == 2:
        time_part, date_part = parts
        try:
            local = datetime.strptime(f"{date_part} {time_part}", "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return utc_now_iso()
        return to_iso(local.replace(tzinfo=PAGER_UTC_OFFSET))
    return utc_now_iso()


def parse_pager_feed(data: bytes) -> list[AlertRecord]:
    text = data.decode("utf-8", errors="replace")
    records: list[AlertRecord] = []
    seen_incidents: set[str] = set()

    for match in _ROW_RE.finditer(text):
        capcode = match.group(1).strip()
        message = strip_html(match.group(3))

        if ALERT_MARKER not in message:
            continue
        if OPERATOR_NOTICE in message:
            continue

        incident_match = _INCIDENT_RE.search(message)
        incident_id = incident_match.group(0) if incident_match else None
        if incident_id is not None:
            # one incident is paged to every attending unit
            if incident_id in seen_incidents:
                continue
            seen_incidents.add(incident_id)

        records.append(
            AlertRecord(
                message=clean_dispatch_message(message),
                timestamp=parse_pager_timestamp(match.group(2).strip()),
                source=AlertSource.PAGER,
                location=extract_location(message),
                coordinates=None,
                incident_id=incident_id,
                warning_level=None,
                capcode=capcode or None,
            )
        )
    return records
