"""CLI entrypoint: python -m questfeed {init-db|add-feed|feeds|refresh|articles|seed}."""

from __future__ import annotations

import argparse
import asyncio
import inspect
import logging
import logging.handlers
import os
import sqlite3
import sys
from pathlib import Path

from questfeed.config import get_db_path, get_seed_feeds, load_config
from questfeed.db import (
    count_articles,
    get_connection,
    get_feed_by_url,
    get_recent_articles,
    init_db,
    insert_feed,
    list_feeds,
    paginate,
)
from questfeed.errors import FeedValidationError
from questfeed.models import DEFAULT_REFRESH_INTERVAL, Feed
from questfeed.refresh import FeedRefresher


def setup_logging(config: dict) -> None:
    """Configure logging with console + rotating file output."""
    root = logging.getLogger()
    root.setLevel(logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # File handler (rotate at 5MB, keep 3 backups)
    log_dir = Path(get_db_path(config)).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        str(log_dir / "questfeed.log"), maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("feedparser").setLevel(logging.WARNING)


logger = logging.getLogger("questfeed")


def _open(config: dict) -> sqlite3.Connection:
    db_path = get_db_path(config)
    init_db(db_path)
    return get_connection(db_path)


def cmd_init_db(config: dict, args: list[str]) -> None:
    """Initialize the SQLite database."""
    db_path = get_db_path(config)
    init_db(db_path)
    print(f"Database initialized at {db_path}")


async def cmd_add_feed(config: dict, args: list[str]) -> None:
    """Register a feed and run its first refresh."""
    if len(args) < 2:
        print("Usage: python -m questfeed add-feed NAME URL [INTERVAL_SECONDS]")
        sys.exit(1)
    name, url = args[0], args[1]
    interval = int(args[2]) if len(args) > 2 else DEFAULT_REFRESH_INTERVAL

    conn = _open(config)
    try:
        refresher = FeedRefresher.from_config(conn, config)
        try:
            feed, result = await refresher.add_feed(name, url, refresh_interval=interval)
        except FeedValidationError as exc:
            for message in exc.messages:
                print(f"  - {message}")
            sys.exit(1)
        except sqlite3.IntegrityError:
            print(f"Feed URL already registered: {url}")
            sys.exit(1)
    finally:
        conn.close()

    if result is None:
        print(f"Feed #{feed.id} created but parsing failed; feed deactivated")
    else:
        print(f"Feed #{feed.id} created and parsed: {result.created} new articles")


def cmd_feeds(config: dict, args: list[str]) -> None:
    """List registered feeds."""
    conn = _open(config)
    feeds = list_feeds(conn)
    conn.close()

    if not feeds:
        print("No feeds registered.")
        return

    print(f"{'ID':>4} {'Active':<7} {'Interval':>8}  {'Last fetched':<26} Name")
    print("-" * 70)
    for f in feeds:
        last = f.last_fetched_at.isoformat(timespec="seconds") if f.last_fetched_at else "never"
        print(
            f"{f.id:>4} {'yes' if f.active else 'no':<7} "
            f"{f.refresh_interval:>8}  {last:<26} {f.name}"
        )


async def cmd_refresh(config: dict, args: list[str]) -> None:
    """Refresh one feed by id, or every due feed."""
    feed_id = int(args[0]) if args else None
    conn = _open(config)
    try:
        refresher = FeedRefresher.from_config(conn, config)
        results = await refresher.refresh_due_feeds(feed_id)
    finally:
        conn.close()

    for r in results:
        print(
            f"  feed #{r.feed_id}: {r.total} items, {r.created} new, "
            f"{r.existing} existing, {r.skipped} skipped"
        )
    print(f"\nRefreshed {len(results)} feed(s)")


def cmd_articles(config: dict, args: list[str]) -> None:
    """Show the most recent articles, optionally matching a search term."""
    parser = argparse.ArgumentParser(prog="python -m questfeed articles")
    parser.add_argument(
        "search", nargs="*",
        help="Words to match in title, description or content",
    )
    parser.add_argument("--feed", type=int, default=None, help="Only articles of this feed id")
    parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    parser.add_argument(
        "--per-page", type=int, default=None,
        help="Articles per page (default: 10, max: 50)",
    )
    opts = parser.parse_args(args)

    search = " ".join(opts.search) or None
    limit, offset = paginate(opts.page, opts.per_page)
    conn = _open(config)
    articles = get_recent_articles(
        conn, feed_id=opts.feed, search=search, limit=limit, offset=offset,
    )
    total = count_articles(conn, feed_id=opts.feed, search=search)
    conn.close()

    if not articles:
        print("No articles yet." if not total else f"No articles on page {opts.page}.")
        return

    for a in articles:
        print(f"[{a.published_at:%Y-%m-%d %H:%M}] {a.title}")
        print(f"    {a.url}")
        preview = a.preview_text(120)
        if preview:
            print(f"    {preview}")

    pages = (total + limit - 1) // limit
    print(f"\nPage {offset // limit + 1} of {pages} ({total} articles)")


def cmd_seed(config: dict, args: list[str]) -> None:
    """Store feeds listed in the config that are not registered yet."""
    conn = _open(config)
    added = 0
    try:
        for entry in get_seed_feeds(config):
            if get_feed_by_url(conn, entry["url"]):
                continue
            feed = Feed(
                name=entry.get("name", entry["url"]),
                url=entry["url"],
                description=entry.get("description"),
                refresh_interval=int(entry.get("refresh_interval", DEFAULT_REFRESH_INTERVAL)),
                active=bool(entry.get("active", True)),
            )
            try:
                insert_feed(conn, feed)
            except FeedValidationError as exc:
                logger.warning("Skipping seed feed %s: %s", entry["url"], exc)
                continue
            added += 1
    finally:
        conn.close()
    print(f"Seeded {added} feed(s)")


COMMANDS = {
    "init-db": cmd_init_db,
    "add-feed": cmd_add_feed,
    "feeds": cmd_feeds,
    "refresh": cmd_refresh,
    "articles": cmd_articles,
    "seed": cmd_seed,
}


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        available = ", ".join(COMMANDS)
        print(f"Usage: python -m questfeed {{{available}}}")
        sys.exit(1)

    command = sys.argv[1]
    config = load_config(os.environ.get("CONFIG_PATH", "config.yaml"))
    setup_logging(config)
    handler = COMMANDS[command]

    try:
        if inspect.iscoroutinefunction(handler):
            asyncio.run(handler(config, sys.argv[2:]))
        else:
            handler(config, sys.argv[2:])
    except Exception:
        logger.exception("Command '%s' failed", command)
        sys.exit(1)


if __name__ == "__main__":
    main()
