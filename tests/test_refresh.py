"""Tests for feed selection and batch refresh."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import FROZEN_NOW, RSS_TWO_ITEMS, FakeFetcher
from questfeed.db import count_articles, get_feed, insert_feed
from questfeed.errors import FetchError, NotFoundError
from questfeed.models import Feed
from questfeed.refresh import FeedRefresher


def _add(db_conn, name, url, **kwargs) -> Feed:
    feed = Feed(name=name, url=url, **kwargs)
    insert_feed(db_conn, feed)
    return feed


@pytest.mark.asyncio
async def test_refresh_feed_by_id(db_conn, feed, clock):
    fetcher = FakeFetcher({feed.url: RSS_TWO_ITEMS})
    refresher = FeedRefresher(db_conn, fetcher, clock=clock)

    result = await refresher.refresh_feed(feed.id)

    assert result.created == 2
    assert get_feed(db_conn, feed.id).last_fetched_at == FROZEN_NOW


@pytest.mark.asyncio
async def test_refresh_unknown_feed_raises(db_conn, clock):
    refresher = FeedRefresher(db_conn, FakeFetcher({}), clock=clock)

    with pytest.raises(NotFoundError):
        await refresher.refresh_feed(999)
    with pytest.raises(NotFoundError):
        await refresher.refresh_due_feeds(999)


@pytest.mark.asyncio
async def test_refresh_feed_by_id_propagates_fetch_error(db_conn, feed, clock):
    fetcher = FakeFetcher({feed.url: FetchError(feed.url, ConnectionError("down"))})
    refresher = FeedRefresher(db_conn, fetcher, clock=clock)

    with pytest.raises(FetchError):
        await refresher.refresh_due_feeds(feed.id)


@pytest.mark.asyncio
async def test_due_feed_selection(db_conn, clock):
    never = _add(db_conn, "Never Fetched", "https://a.example.com/rss")
    stale = _add(
        db_conn, "Stale", "https://b.example.com/rss",
        refresh_interval=3600, last_fetched_at=FROZEN_NOW - timedelta(hours=2),
    )
    _add(
        db_conn, "Fresh", "https://c.example.com/rss",
        refresh_interval=3600, last_fetched_at=FROZEN_NOW - timedelta(minutes=10),
    )
    _add(db_conn, "Inactive", "https://d.example.com/rss", active=False)

    refresher = FeedRefresher(db_conn, FakeFetcher({}), clock=clock)
    due = refresher.due_feeds()

    assert sorted(f.id for f in due) == sorted([never.id, stale.id])


@pytest.mark.asyncio
async def test_batch_continues_past_failing_feed(db_conn, clock, caplog):
    """One broken feed never blocks the others."""
    broken = _add(db_conn, "A Broken Feed", "https://broken.example.com/rss")
    healthy = _add(db_conn, "B Healthy Feed", "https://healthy.example.com/rss")
    fetcher = FakeFetcher({
        broken.url: FetchError(broken.url, ConnectionError("DNS failure")),
        healthy.url: RSS_TWO_ITEMS,
    })
    refresher = FeedRefresher(db_conn, fetcher, clock=clock)

    results = await refresher.refresh_due_feeds()

    assert [r.feed_id for r in results] == [healthy.id]
    assert count_articles(db_conn, feed_id=healthy.id) == 2
    assert get_feed(db_conn, broken.id).last_fetched_at is None
    assert get_feed(db_conn, healthy.id).last_fetched_at == FROZEN_NOW
    assert "Failed to refresh feed A Broken Feed" in caplog.text


@pytest.mark.asyncio
async def test_batch_survives_parse_error(db_conn, clock):
    bad = _add(db_conn, "Bad XML", "https://bad.example.com/rss")
    good = _add(db_conn, "Good XML", "https://good.example.com/rss")
    fetcher = FakeFetcher({bad.url: b"not a feed", good.url: RSS_TWO_ITEMS})

    results = await FeedRefresher(db_conn, fetcher, clock=clock).refresh_due_feeds()

    assert [r.feed_id for r in results] == [good.id]


@pytest.mark.asyncio
async def test_batch_with_nothing_due(db_conn, clock):
    _add(
        db_conn, "Fresh", "https://c.example.com/rss",
        last_fetched_at=FROZEN_NOW - timedelta(minutes=1),
    )
    fetcher = FakeFetcher({})

    assert await FeedRefresher(db_conn, fetcher, clock=clock).refresh_due_feeds() == []
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_same_feed_refreshes_do_not_overlap(db_conn, feed, clock):
    in_flight = 0
    max_in_flight = 0

    class SlowFetcher:
        async def fetch(self, url):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return RSS_TWO_ITEMS

    refresher = FeedRefresher(db_conn, SlowFetcher(), clock=clock)
    results = await asyncio.gather(
        refresher.refresh_feed(feed.id), refresher.refresh_feed(feed.id),
    )

    assert max_in_flight == 1
    assert sum(r.created for r in results) == 2
    assert count_articles(db_conn) == 2


@pytest.mark.asyncio
async def test_add_feed_refreshes_immediately(db_conn, clock):
    url = "https://new.example.com/rss"
    refresher = FeedRefresher(db_conn, FakeFetcher({url: RSS_TWO_ITEMS}), clock=clock)

    feed, result = await refresher.add_feed("New Feed", url)

    assert feed.id is not None
    assert feed.active
    assert result.created == 2


@pytest.mark.asyncio
async def test_add_feed_deactivates_on_failure(db_conn, clock):
    url = "https://down.example.com/rss"
    fetcher = FakeFetcher({url: FetchError(url, ConnectionError("down"))})
    refresher = FeedRefresher(db_conn, fetcher, clock=clock)

    feed, result = await refresher.add_feed("Down Feed", url)

    assert result is None
    stored = get_feed(db_conn, feed.id)
    assert stored is not None
    assert stored.active is False


def test_from_config(db_conn, sample_config):
    refresher = FeedRefresher.from_config(db_conn, sample_config)
    assert refresher.max_concurrency == 2
    assert refresher.ingestor.fetcher.user_agent == "Columbus Quest RSS Reader/1.0"
