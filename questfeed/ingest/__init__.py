"""Feed ingestion: fetch, parse, normalize and store feed items."""

from __future__ import annotations

from questfeed.ingest.fetcher import FeedFetcher  # noqa: F401
from questfeed.ingest.parser import parse_feed  # noqa: F401
from questfeed.ingest.service import FeedIngestor  # noqa: F401
