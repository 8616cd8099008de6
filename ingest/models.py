from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class AlertSource(str, Enum):
    PAGER = "pager"
    VIC_RSS = "vic_rss"
    NSW_RSS = "nsw_rss"


class WarningLevel(str, Enum):
    ADVICE = "advice"
    WATCH_AND_ACT = "watch_and_act"
    EMERGENCY = "emergency"


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def to_iso(dt: datetime) -> str:
    return dt.astimezone(tz=UTC).isoformat().replace("+00:00", "Z")


def parse_iso(ts: str) -> datetime:
    if ts.endswith("Z"):
        return datetime.fromisoformat(ts.removesuffix("Z") + "+00:00")
    return datetime.fromisoformat(ts)


@dataclass
class AlertRecord:
    message: str
    timestamp: str
    source: AlertSource
    location: str | None = None
    coordinates: tuple[float, float] | None = None
    incident_id: str | None = None
    warning_level: WarningLevel | None = None
    place_name: str | None = None
    capcode: str | None = None
    title: str | None = None
    link: str | None = None
    details: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "timestamp": self.timestamp,
            "source": self.source.value,
            "location": self.location,
            "coordinates": list(self.coordinates) if self.coordinates else None,
            "incident_id": self.incident_id,
            "warning_level": self.warning_level.value if self.warning_level else None,
            "place_name": self.place_name,
            "capcode": self.capcode,
            "title": self.title,
            "link": self.link,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: dict) -> AlertRecord:
        coords = data.get("coordinates")
        level = data.get("warning_level")
        return cls(
            message=str(data.get("message") or ""),
            timestamp=str(data["timestamp"]),
            source=AlertSource(data["source"]),
            location=data.get("location"),
            coordinates=(float(coords[0]), float(coords[1])) if coords else None,
            incident_id=data.get("incident_id"),
            warning_level=WarningLevel(level) if level else None,
            place_name=data.get("place_name"),
            capcode=data.get("capcode"),
            title=data.get("title"),
            link=data.get("link"),
            details={str(k): str(v) for k, v in (data.get("details") or {}).items()},
        )


def drop_duplicate_incidents(records: list[AlertRecord]) -> list[AlertRecord]:
    """Keep the first record per incident id, preserving input order."""
    seen: set[str] = set()
    kept: list[AlertRecord] = []
    for record in records:
        if record.incident_id is not None:
            if record.incident_id in seen:
                continue
            seen.add(record.incident_id)
        kept.append(record)
    return kept
