from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    db_path: Path = Field(default=Path("data/fire-alerts.db"), validation_alias="DB_PATH")
    feeds_path: Path = Field(default=Path("feeds.yaml"), validation_alias="FEEDS_PATH")

    user_agent: str = Field(
        default="CFA-Location-Finder/1.0", validation_alias="USER_AGENT"
    )
    cfa_feed_url: str = Field(
        default="https://www.mazzanet.net.au/cfa/pager-cfa.php",
        validation_alias="CFA_FEED_URL",
    )
    fetch_timeout_seconds: float = Field(
        default=10.0, validation_alias="FETCH_TIMEOUT_SECONDS"
    )
    feed_ttl_seconds: int = Field(default=60, validation_alias="FEED_TTL_SECONDS")

    mapbox_token: str | None = Field(default=None, validation_alias="MAPBOX_TOKEN")
    mapbox_public_token: str | None = Field(
        default=None, validation_alias="MAPBOX_PUBLIC_TOKEN"
    )
    geocode_region: str = Field(
        default="Victoria, Australia", validation_alias="GEOCODE_REGION"
    )
    geocode_country: str = Field(default="AU", validation_alias="GEOCODE_COUNTRY")
    geocode_timeout_seconds: float = Field(
        default=10.0, validation_alias="GEOCODE_TIMEOUT_SECONDS"
    )
    geocode_delay_ms: int = Field(default=100, validation_alias="GEOCODE_DELAY_MS")
