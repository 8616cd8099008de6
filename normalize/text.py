from __future__ import annotations

import re


_TAG_RE = re.compile(r"<[^>]*>")
_OTHER_ENTITY_RE = re.compile(r"&[^;]+;")
_ANGLE_RE = re.compile(r"[<>]")
_WS_RE = re.compile(r"\s+")
_KEY_CLEAN_RE = re.compile(r"[^A-Z0-9 ]")

_NAMED_ENTITIES: tuple[tuple[str, str], ...] = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)

MAX_LOCATION_KEY_LENGTH = 100


def strip_html(fragment: str) -> str:
    text = fragment
    previous = None
    # nested or malformed markup can leave a new tag behind after one pass
    while text != previous:
        previous = text
        text = _TAG_RE.sub("", text)

    for entity, char in _NAMED_ENTITIES:
        text = text.replace(entity, char)
    text = _OTHER_ENTITY_RE.sub(" ", text)
    text = text.replace("&amp;", "&")

    text = _ANGLE_RE.sub("", text)
    return text.strip()


def normalize_location_key(location: str | None) -> str:
    if not location:
        return ""
    collapsed = _WS_RE.sub(" ", location.upper()).strip()
    return _KEY_CLEAN_RE.sub("", collapsed)[:MAX_LOCATION_KEY_LENGTH]
