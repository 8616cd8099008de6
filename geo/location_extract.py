"""
Location extraction for CFA pager dispatch messages.

Dispatch text loosely follows a handful of layouts:

    [TYPE] [NUM] [STREET] [SUBURB] /[CROSS ST] //[CROSS ST] [REGION] [GRID] (CODE) [UNITS]
    [TYPE] CNR [ROAD]/[ROAD] [SUBURB] [REGION] ...
    STRIKE TEAM ... ASSEMBLE AT [PLACE] [ADDRESS] [SUBURB] / ...
    [TYPE] [DESCRIPTION] AT [PLACE] [ADDRESS] [SUBURB] / ...

LOCATION_RULES is evaluated in order and the first rule that yields a
location wins. Earlier rules are more specific than later ones, so the order
of the tuple changes results on ambiguous messages.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass


NON_LOCATION_KEYWORDS: tuple[str, ...] = (
    "FIRE",
    "GRASS",
    "HOUSE",
    "BATTERY",
    "STRUCTURE",
    "VEHICLE",
    "UNDEFINED",
    "SPREADING",
    "INCIDENT",
    "STRIKE",
    "TEAM",
    "CODE",
    "TANKER",
    "REQUIRED",
    "ASSEMBLE",
    "ALERT",
    "NOW",
    "EXTINGUISHED",
    "ISSUING",
    "SMOKE",
    "COLUMN",
    "ALARM",
    "OPERATING",
    "LEAKING",
    "DOWN",
    "POWERLINES",
    "SPREAD",
    "BUSH",
    "SCRUB",
)

MIN_LOCATION_LENGTH = 3
MIN_SUBURB_CHARS = 4
MAX_SUBURB_CHARS = 30
SUBURB_PREFIX_ST = "ST "

_KEYWORDS = "|".join(NON_LOCATION_KEYWORDS)
_REJECT_PREFIX_RE = re.compile(rf"^(?:{_KEYWORDS})\b")
_REJECT_ANYWHERE_RE = re.compile(rf"\b(?:{_KEYWORDS})\b")
_GRID_TAIL_RE = re.compile(r"\s+[A-Z]\d*$")
_SINGLE_LETTER_RE = re.compile(r"^[A-Z]$")

# region codes look like SVNE / SVSW, Melway grid refs like "M 123"
_REGION = r"SV[A-Z]+|M\s+\d"
_STREET_SUFFIX = (
    r"RD|ST|AV|AVE|CR|CT|DR|PDE|WAY|HWY|LANE|BOULEVARD|ROAD|STREET|AVENUE"
    r"|CRESCENT|COURT|DRIVE|PARADE|HIGHWAY"
)

_ASSEMBLE_RE = re.compile(
    r"ASSEMBLE AT\s+([A-Z\s-]+?)\s+(?:CFA\s+)?(?:STATION|SHOWGROUNDS|RESERVE|FIRE STATION)"
    r"[A-Z\s-]*?\s+(?:\d+\s+)?(?:[A-Z]+\s+(?:RD|ST|AV|HWY|CR|CT|DR))?\s+([A-Z][A-Z\s]+?)\s+/"
)
_STREET_ADDRESS_RE = re.compile(
    rf"\b(\d+\s+[A-Z][A-Za-z\s-]+?(?:{_STREET_SUFFIX}))\s+([A-Z][A-Z\s]+?)\s+/"
)
_CORNER_RE = re.compile(
    r"CNR\s+[A-Z][A-Za-z\s-]+?(?:HWY|RD|CR|ST)\s*/\s*[A-Z][A-Za-z\s-]+?(?:RD|HWY|CR|ST)"
    r"\s+([A-Z][A-Z\s]+?)(?:\s+SV[A-Z]+|\s+M\s+\d)"
)
_ROAD_NAME_RE = re.compile(
    rf"\b([A-Z][A-Za-z\s-]+?)\s+RD\s+([A-Z][A-Z\s]+?)\s+(?:/|{_REGION})"
)
_AT_ADDRESS_RE = re.compile(
    r"\bAT\s+(?:[A-Z\s]+-\s+)?[A-Z][A-Za-z\s-]+?\s+(\d+\s+[A-Z][A-Za-z\s-]+?)"
    rf"\s+([A-Z][A-Z\s]+?)\s+(?:/|{_REGION})"
)
_BEFORE_REGION_RE = re.compile(
    rf"\b([A-Z][A-Z\s]{{{MIN_SUBURB_CHARS},{MAX_SUBURB_CHARS}}}?)\s+(?:{_REGION})"
)
_BEFORE_SLASH_RE = re.compile(
    rf"\b([A-Z][A-Z\s]{{{MIN_SUBURB_CHARS},{MAX_SUBURB_CHARS}}}?)\s+/"
)


def is_rejected(candidate: str) -> bool:
    return _REJECT_PREFIX_RE.match(candidate) is not None


def strip_grid_tail(candidate: str) -> str:
    return _GRID_TAIL_RE.sub("", candidate).strip()


def _clean_suburb(raw: str, *, min_length: int = MIN_LOCATION_LENGTH) -> str | None:
    suburb = raw.strip()
    if is_rejected(suburb) or len(suburb) < min_length:
        return None
    suburb = strip_grid_tail(suburb)
    if len(suburb) < min_length:
        return None
    return suburb


def _assemble_point(match: re.Match[str]) -> str | None:
    suburb = match.group(2).strip()
    if suburb.startswith(SUBURB_PREFIX_ST) and len(suburb) > len(SUBURB_PREFIX_ST):
        suburb = suburb[len(SUBURB_PREFIX_ST) :]
    return _clean_suburb(suburb)


def _street_address(match: re.Match[str]) -> str | None:
    suburb = _clean_suburb(match.group(2))
    if suburb is None:
        return None
    return f"{match.group(1).strip()}, {suburb}"


def _corner(match: re.Match[str]) -> str | None:
    return _clean_suburb(match.group(1))


def _road_name(match: re.Match[str]) -> str | None:
    road = match.group(1).strip()
    if _REJECT_ANYWHERE_RE.search(road):
        return None
    suburb = _clean_suburb(match.group(2))
    if suburb is None:
        return None
    return f"{road} Rd, {suburb}"


def _at_address(match: re.Match[str]) -> str | None:
    suburb = _clean_suburb(match.group(2))
    if suburb is None:
        return None
    return f"{match.group(1).strip()}, {suburb}"


def _before_region(match: re.Match[str]) -> str | None:
    # longest acceptable trailing run of words wins
    words = match.group(1).split()
    best = None
    for i in range(len(words) - 1, -1, -1):
        candidate = " ".join(words[i:])
        if is_rejected(candidate):
            continue
        if (
            len(candidate) < MIN_SUBURB_CHARS
            or _SINGLE_LETTER_RE.match(candidate)
            or candidate[0].isdigit()
        ):
            continue
        if " " in candidate or len(candidate) >= 6:
            cleaned = _clean_suburb(candidate, min_length=MIN_SUBURB_CHARS)
            if cleaned is not None:
                best = cleaned
    return best


def _before_slash(match: re.Match[str]) -> str | None:
    words = match.group(1).split()
    for i in range(max(0, len(words) - 3), len(words)):
        candidate = " ".join(words[i:])
        if is_rejected(candidate) or len(candidate) < MIN_SUBURB_CHARS:
            continue
        cleaned = strip_grid_tail(candidate)
        if len(cleaned) >= MIN_SUBURB_CHARS:
            return cleaned
    return None


@dataclass(frozen=True)
class LocationRule:
    name: str
    pattern: re.Pattern[str]
    resolve: Callable[[re.Match[str]], str | None]

    def apply(self, message: str) -> str | None:
        match = self.pattern.search(message)
        if match is None:
            return None
        return self.resolve(match)


LOCATION_RULES: tuple[LocationRule, ...] = (
    LocationRule("assemble_point", _ASSEMBLE_RE, _assemble_point),
    LocationRule("street_address", _STREET_ADDRESS_RE, _street_address),
    LocationRule("corner", _CORNER_RE, _corner),
    LocationRule("road_name", _ROAD_NAME_RE, _road_name),
    LocationRule("at_address", _AT_ADDRESS_RE, _at_address),
    LocationRule("before_region", _BEFORE_REGION_RE, _before_region),
    LocationRule("before_slash", _BEFORE_SLASH_RE, _before_slash),
)

RULES_BY_NAME: dict[str, LocationRule] = {rule.name: rule for rule in LOCATION_RULES}


def clean_dispatch_message(message: str) -> str:
    return message.replace("@@ALERT ", "", 1).strip()


def match_location(message: str) -> tuple[str, str] | None:
    """Return ``(rule name, location)`` for the first rule that matches."""
    cleaned = clean_dispatch_message(message)
    for rule in LOCATION_RULES:
        location = rule.apply(cleaned)
        if location is not None and len(location.strip()) >= MIN_LOCATION_LENGTH:
            return (rule.name, location.strip())
    return None


def extract_location(message: str) -> str | None:
    matched = match_location(message)
    if matched is None:
        return None
    return matched[1]
