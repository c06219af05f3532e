"""Refresh entry points: one feed by id, or every active feed that is due."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime
from typing import Callable

from questfeed.config import get_refresh_config
from questfeed.db import get_feed, insert_feed, list_active_feeds, set_feed_active
from questfeed.errors import FetchError, NotFoundError, ParseError
from questfeed.ingest.fetcher import FeedFetcher
from questfeed.ingest.service import FeedIngestor
from questfeed.models import DEFAULT_REFRESH_INTERVAL, Feed, RefreshResult, utcnow

logger = logging.getLogger(__name__)


class FeedRefresher:
    """Select feeds and hand them to the ingestor.

    Refreshes of the same feed id are serialized; different feeds run
    concurrently up to `max_concurrency`.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        fetcher: FeedFetcher | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_concurrency: int = 4,
    ):
        self.conn = conn
        self.clock = clock
        self.ingestor = FeedIngestor(conn, fetcher, clock=clock)
        self.max_concurrency = max(1, max_concurrency)
        self._locks: dict[int, asyncio.Lock] = {}

    @classmethod
    def from_config(cls, conn: sqlite3.Connection, config: dict) -> FeedRefresher:
        return cls(
            conn,
            fetcher=FeedFetcher.from_config(config),
            max_concurrency=get_refresh_config(config)["max_concurrency"],
        )

    def _lock_for(self, feed_id: int) -> asyncio.Lock:
        lock = self._locks.get(feed_id)
        if lock is None:
            lock = self._locks[feed_id] = asyncio.Lock()
        return lock

    async def _refresh(self, feed: Feed) -> RefreshResult:
        async with self._lock_for(feed.id):
            return await self.ingestor.refresh_feed(feed)

    async def refresh_feed(self, feed_id: int) -> RefreshResult:
        """Refresh one feed. Every error, including NotFoundError, propagates."""
        feed = get_feed(self.conn, feed_id)
        if feed is None:
            raise NotFoundError("Feed", feed_id)
        result = await self._refresh(feed)
        logger.info("Successfully refreshed feed: %s", feed.name)
        return result

    def due_feeds(self) -> list[Feed]:
        now = self.clock()
        return [f for f in list_active_feeds(self.conn) if f.needs_refresh(now)]

    async def refresh_due_feeds(self, feed_id: int | None = None) -> list[RefreshResult]:
        """Refresh `feed_id`, or all active feeds whose interval has elapsed.

        In batch mode a failing feed is logged and does not stop the others.
        """
        if feed_id is not None:
            return [await self.refresh_feed(feed_id)]

        feeds = self.due_feeds()
        if not feeds:
            logger.info("No feeds due for refresh")
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _run(feed: Feed) -> RefreshResult | None:
            async with semaphore:
                try:
                    result = await self._refresh(feed)
                except Exception:
                    logger.exception("Failed to refresh feed %s", feed.name)
                    return None
                logger.info("Successfully refreshed feed: %s", feed.name)
                return result

        results = await asyncio.gather(*[_run(f) for f in feeds])
        done = [r for r in results if r is not None]
        logger.info("Refreshed %d/%d due feeds", len(done), len(feeds))
        return done

    async def add_feed(
        self,
        name: str,
        url: str,
        refresh_interval: int = DEFAULT_REFRESH_INTERVAL,
        description: str | None = None,
    ) -> tuple[Feed, RefreshResult | None]:
        """Store a new feed and try a first refresh.

        A feed whose first refresh fails is kept but deactivated.
        """
        feed = Feed(
            name=name,
            url=url,
            refresh_interval=refresh_interval,
            description=description,
        )
        insert_feed(self.conn, feed)
        try:
            result = await self._refresh(feed)
        except (FetchError, ParseError) as exc:
            logger.warning("Feed %s created but parsing failed: %s", feed.name, exc)
            set_feed_active(self.conn, feed.id, False)
            feed.active = False
            return feed, None
        return feed, result
