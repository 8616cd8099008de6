from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from email.utils import parsedate_to_datetime

from app.errors import ParseError
from ingest.models import to_iso


GEORSS_NS = "{http://www.georss.org/georss}"

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


def load_xml_root(data: bytes) -> ET.Element:
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        raise ParseError(f"invalid feed document: {e}") from e


def inner_markup(element: ET.Element | None) -> str:
    """Description markup, whether it arrived escaped or as child elements."""
    if element is None:
        return ""
    parts = [element.text or ""]
    for child in element:
        parts.append(ET.tostring(child, encoding="unicode"))
    return "".join(parts).strip()


def extract_fields(
    description: str, labels: dict[str, str], *, label_prefix: str, label_suffix: str
) -> dict[str, str]:
    fields: dict[str, str] = {}
    if not description:
        return fields
    for label, key in labels.items():
        pattern = re.compile(
            rf"{label_prefix}{re.escape(label)}:{label_suffix}\s*([^<]*?)(?:<br\s*/?>|$)",
            flags=re.IGNORECASE,
        )
        match = pattern.search(description)
        if match is not None:
            fields[key] = match.group(1).strip()
    return fields


def rfc822_to_iso(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return to_iso(parsedate_to_datetime(value.strip()))
    except (TypeError, ValueError):
        return None


def leading_int(value: str | None) -> int:
    if not value:
        return 0
    match = _LEADING_INT_RE.match(value)
    return int(match.group(1)) if match else 0
