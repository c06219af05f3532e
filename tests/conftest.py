"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from questfeed.config import load_config
from questfeed.db import get_connection, init_db, insert_feed
from questfeed.models import Feed

FROZEN_NOW = datetime(2025, 1, 6, 12, 0, 0, tzinfo=timezone.utc)

RSS_TWO_ITEMS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <description>A test RSS feed</description>
    <link>https://example.com</link>
    <item>
      <title>Test Article 1</title>
      <description>This is the first test article</description>
      <link>https://example.com/article/1</link>
      <guid>article-1-guid</guid>
      <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
      <author>Test Author</author>
    </item>
    <item>
      <title>Test Article 2</title>
      <description><![CDATA[This is the second test article with <img src="https://example.com/image.jpg" alt="test">]]></description>
      <link>https://example.com/article/2</link>
      <guid>article-2-guid</guid>
      <pubDate>Mon, 06 Jan 2025 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


class FakeFetcher:
    """Stands in for FeedFetcher: maps URL -> body bytes or an exception to raise."""

    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def sample_config(tmp_path):
    """Minimal config for testing."""
    config_text = """
database:
  path: "DB_PATH_PLACEHOLDER"

fetch:
  user_agent: "Columbus Quest RSS Reader/1.0"
  timeout: 5

refresh:
  max_concurrency: 2

feeds:
  - name: "Atlas Obscura"
    url: "https://www.atlasobscura.com/feeds/latest"
    refresh_interval: 3600
  - name: "No URL"
"""
    db_path = str(tmp_path / "test.db")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(config_text.replace("DB_PATH_PLACEHOLDER", db_path))
    return load_config(str(cfg_path))


@pytest.fixture
def db_conn(sample_config):
    """Initialized test database connection."""
    db_path = sample_config["database"]["path"]
    init_db(db_path)
    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def feed(db_conn):
    """A stored, active feed that has never been fetched."""
    f = Feed(
        name="Test Feed",
        url="https://example.com/rss.xml",
        description="A test RSS feed",
        refresh_interval=3600,
    )
    insert_feed(db_conn, f)
    return f


@pytest.fixture
def clock():
    return lambda: FROZEN_NOW
