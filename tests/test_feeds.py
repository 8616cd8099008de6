from pathlib import Path

import pytest

from app.settings import Settings
from ingest.feeds import load_feed_sources
from ingest.parsers.pager import parse_pager_feed


def _settings(tmp_path: Path) -> Settings:
    return Settings(_env_file=None, FEEDS_PATH=str(tmp_path / "feeds.yaml"), FEED_TTL_SECONDS=60)


def test_defaults_without_feeds_file(tmp_path: Path) -> None:
    sources = load_feed_sources(_settings(tmp_path))
    assert sorted(sources) == ["cfa", "nsw", "vic"]
    assert sources["cfa"].parse is parse_pager_feed
    assert all(s.ttl_seconds == 60 and s.enabled for s in sources.values())


def test_feeds_file_overrides_and_extends(tmp_path: Path) -> None:
    (tmp_path / "feeds.yaml").write_text(
        """
- id: vic
  ttl_seconds: 120
- id: nsw
  enabled: false
- id: cfa-mirror
  name: CFA pager mirror
  dialect: pager
  url: https://mirror.example/pager.php
""",
        encoding="utf-8",
    )
    sources = load_feed_sources(_settings(tmp_path))
    assert sources["vic"].ttl_seconds == 120
    assert sources["cfa"].ttl_seconds == 60
    assert sources["nsw"].enabled is False
    assert sources["cfa-mirror"].dialect == "pager"
    assert sources["cfa-mirror"].ttl_seconds == 60


def test_feeds_file_rejects_unknown_dialect(tmp_path: Path) -> None:
    (tmp_path / "feeds.yaml").write_text(
        "- id: other\n  dialect: atom\n  url: https://example.test/feed\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError):
        load_feed_sources(_settings(tmp_path))


def test_feeds_file_allows_zero_ttl(tmp_path: Path) -> None:
    (tmp_path / "feeds.yaml").write_text("- id: cfa\n  ttl_seconds: 0\n", encoding="utf-8")
    sources = load_feed_sources(_settings(tmp_path))
    assert sources["cfa"].ttl_seconds == 0
    assert sources["vic"].ttl_seconds == 60
