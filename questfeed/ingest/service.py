"""Ingest one feed: fetch, parse, and upsert its articles by guid."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable

from questfeed.db import find_article_by_guid, insert_article, update_feed_last_fetched
from questfeed.errors import ItemValidationError
from questfeed.ingest.fetcher import FeedFetcher
from questfeed.ingest.fields import (
    derive_guid,
    extract_author,
    extract_content,
    extract_image_url,
    extract_published_date,
)
from questfeed.ingest.parser import parse_feed
from questfeed.models import Article, Feed, FeedItem, Inserted, RefreshResult, utcnow

logger = logging.getLogger(__name__)


def build_article(feed: Feed, item: FeedItem, now: datetime) -> Article:
    """Normalize a feed item into a new Article owned by `feed`.

    Raises ItemValidationError when title, url or guid is missing.
    """
    article = Article(
        feed_id=feed.id,
        title=str(item.title or "").strip(),
        description=str(item.description) if item.description is not None else "",
        content=extract_content(item),
        url=str(item.link or "").strip(),
        image_url=extract_image_url(item),
        author=extract_author(item),
        published_at=extract_published_date(item, now),
        guid=str(derive_guid(item) or "").strip(),
    )
    article.validate()
    return article


class FeedIngestor:
    """Run the fetch → parse → upsert pipeline for a single feed."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        fetcher: FeedFetcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.conn = conn
        self.fetcher = fetcher or FeedFetcher()
        self.clock = clock

    async def refresh_feed(self, feed: Feed) -> RefreshResult:
        """Ingest every item of `feed`.

        FetchError and ParseError propagate and leave the feed untouched.
        Items that fail validation are logged and skipped.
        """
        raw = await self.fetcher.fetch(feed.url)
        items = parse_feed(raw)

        result = RefreshResult(feed_id=feed.id, total=len(items))
        now = self.clock()

        for index, item in enumerate(items):
            guid = derive_guid(item)
            try:
                if guid and find_article_by_guid(self.conn, str(guid).strip()):
                    result.existing += 1
                    continue
                article = build_article(feed, item, now)
            except ItemValidationError as exc:
                result.skipped += 1
                logger.warning(
                    "Skipping item %d (guid=%s) of feed '%s': %s",
                    index, exc.guid or guid, feed.name, exc,
                )
                continue

            outcome = insert_article(self.conn, article)
            if isinstance(outcome, Inserted):
                result.created += 1
            else:
                result.existing += 1
                logger.debug("Article %s inserted concurrently, skipping", outcome.guid)

        fetched_at = self.clock()
        update_feed_last_fetched(self.conn, feed.id, fetched_at)
        feed.last_fetched_at = fetched_at

        logger.info(
            "Parsed %d items from %s (%d new, %d existing, %d skipped)",
            result.total, feed.name, result.created, result.existing, result.skipped,
        )
        return result
