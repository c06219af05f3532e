"""SQLite database schema and query helpers."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from questfeed.models import AlreadyExists, Article, Feed, Inserted, InsertResult, utcnow

SCHEMA_VERSION = 1

MAX_PER_PAGE = 50

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    url TEXT UNIQUE NOT NULL,
    description TEXT,
    refresh_interval INTEGER NOT NULL DEFAULT 3600,
    active INTEGER NOT NULL DEFAULT 1,
    last_fetched_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feed_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    content TEXT,
    url TEXT NOT NULL,
    image_url TEXT,
    author TEXT,
    published_at TEXT NOT NULL,
    guid TEXT UNIQUE NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS read_statuses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    article_id INTEGER NOT NULL,
    session_id TEXT NOT NULL,
    read_at TEXT NOT NULL,
    UNIQUE (article_id, session_id),
    FOREIGN KEY (article_id) REFERENCES articles(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_feeds_active ON feeds(active);
CREATE INDEX IF NOT EXISTS idx_articles_feed_id ON articles(feed_id);
CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at);
CREATE INDEX IF NOT EXISTS idx_articles_url ON articles(url);
"""


def get_connection(db_path: str) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode and foreign keys enabled."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    """Create all tables and set schema version."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
    finally:
        conn.close()


def _dt_str(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


def _parse_dt(s: str | None) -> datetime | None:
    if s is None:
        return None
    return datetime.fromisoformat(s)


# --- Feed helpers ---


def insert_feed(conn: sqlite3.Connection, feed: Feed) -> int:
    """Validate and insert a feed, returning its ID.

    Raises sqlite3.IntegrityError when the URL is already registered.
    """
    feed.validate()
    cur = conn.execute(
        """INSERT INTO feeds
           (name, url, description, refresh_interval, active, last_fetched_at, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            feed.name.strip(),
            feed.url,
            feed.description,
            feed.refresh_interval,
            int(feed.active),
            _dt_str(feed.last_fetched_at),
            _dt_str(feed.created_at),
        ),
    )
    conn.commit()
    feed.id = cur.lastrowid
    return feed.id


def get_feed(conn: sqlite3.Connection, feed_id: int) -> Feed | None:
    row = conn.execute("SELECT * FROM feeds WHERE id = ?", (feed_id,)).fetchone()
    return _row_to_feed(row) if row else None


def get_feed_by_url(conn: sqlite3.Connection, url: str) -> Feed | None:
    row = conn.execute("SELECT * FROM feeds WHERE url = ?", (url,)).fetchone()
    return _row_to_feed(row) if row else None


def list_feeds(conn: sqlite3.Connection) -> list[Feed]:
    """All feeds, ordered by name."""
    rows = conn.execute("SELECT * FROM feeds ORDER BY name").fetchall()
    return [_row_to_feed(row) for row in rows]


def list_active_feeds(conn: sqlite3.Connection) -> list[Feed]:
    rows = conn.execute(
        "SELECT * FROM feeds WHERE active = 1 ORDER BY name"
    ).fetchall()
    return [_row_to_feed(row) for row in rows]


def set_feed_active(conn: sqlite3.Connection, feed_id: int, active: bool) -> None:
    conn.execute("UPDATE feeds SET active = ? WHERE id = ?", (int(active), feed_id))
    conn.commit()


def update_feed_last_fetched(
    conn: sqlite3.Connection, feed_id: int, fetched_at: datetime,
) -> None:
    conn.execute(
        "UPDATE feeds SET last_fetched_at = ? WHERE id = ?",
        (_dt_str(fetched_at), feed_id),
    )
    conn.commit()


def delete_feed(conn: sqlite3.Connection, feed_id: int) -> None:
    """Delete a feed; its articles and their read statuses cascade."""
    conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
    conn.commit()


def _row_to_feed(row: sqlite3.Row) -> Feed:
    return Feed(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        description=row["description"],
        refresh_interval=row["refresh_interval"],
        active=bool(row["active"]),
        last_fetched_at=_parse_dt(row["last_fetched_at"]),
        created_at=_parse_dt(row["created_at"]),
    )


# --- Article helpers ---


def find_article_by_guid(conn: sqlite3.Connection, guid: str) -> Article | None:
    row = conn.execute("SELECT * FROM articles WHERE guid = ?", (guid,)).fetchone()
    return _row_to_article(row) if row else None


def insert_article(conn: sqlite3.Connection, article: Article) -> InsertResult:
    """Insert an article unless its guid is already stored.

    A unique-constraint hit on guid (e.g. a concurrent insert of the same
    item) is reported as AlreadyExists; the stored row is left untouched.
    """
    try:
        cur = conn.execute(
            """INSERT INTO articles
               (feed_id, title, description, content, url, image_url,
                author, published_at, guid, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                article.feed_id,
                article.title,
                article.description,
                article.content,
                article.url,
                article.image_url,
                article.author,
                _dt_str(article.published_at),
                article.guid,
                _dt_str(article.created_at),
            ),
        )
        conn.commit()
    except sqlite3.IntegrityError:
        conn.rollback()
        if find_article_by_guid(conn, article.guid) is None:
            # Not a guid conflict (e.g. unknown feed_id)
            raise
        return AlreadyExists(guid=article.guid)
    article.id = cur.lastrowid
    return Inserted(article=article)


def get_article(conn: sqlite3.Connection, article_id: int) -> Article | None:
    row = conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,)).fetchone()
    return _row_to_article(row) if row else None


def _article_filters(feed_id: int | None, search: str | None) -> tuple[str, list]:
    clauses = []
    params: list = []
    if feed_id is not None:
        clauses.append("feed_id = ?")
        params.append(feed_id)
    if search:
        pattern = f"%{search.lower()}%"
        clauses.append(
            "(lower(title) LIKE ? OR lower(description) LIKE ?"
            " OR lower(coalesce(content, '')) LIKE ?)"
        )
        params.extend([pattern, pattern, pattern])
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def get_recent_articles(
    conn: sqlite3.Connection,
    feed_id: int | None = None,
    search: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> list[Article]:
    """Newest articles first, optionally filtered by feed and search text."""
    where, params = _article_filters(feed_id, search)
    rows = conn.execute(
        f"SELECT * FROM articles{where}"
        " ORDER BY published_at DESC, created_at DESC LIMIT ? OFFSET ?",
        (*params, limit, offset),
    ).fetchall()
    return [_row_to_article(row) for row in rows]


def count_articles(
    conn: sqlite3.Connection, feed_id: int | None = None, search: str | None = None,
) -> int:
    where, params = _article_filters(feed_id, search)
    row = conn.execute(f"SELECT COUNT(*) AS n FROM articles{where}", params).fetchone()
    return row["n"]


def paginate(page: int | None = None, per_page: int | None = None) -> tuple[int, int]:
    """Turn page/per_page into (limit, offset); per_page is capped at 50."""
    page = max(page or 1, 1)
    per_page = min(max(per_page or 10, 1), MAX_PER_PAGE)
    return per_page, (page - 1) * per_page


def _row_to_article(row: sqlite3.Row) -> Article:
    return Article(
        id=row["id"],
        feed_id=row["feed_id"],
        title=row["title"],
        description=row["description"],
        content=row["content"],
        url=row["url"],
        image_url=row["image_url"],
        author=row["author"],
        published_at=_parse_dt(row["published_at"]),
        guid=row["guid"],
        created_at=_parse_dt(row["created_at"]),
    )


# --- Read status helpers ---


def mark_as_read(conn: sqlite3.Connection, article_id: int, session_id: str) -> None:
    """Record that a session read an article. Repeat calls keep the first read_at."""
    conn.execute(
        """INSERT OR IGNORE INTO read_statuses (article_id, session_id, read_at)
           VALUES (?, ?, ?)""",
        (article_id, session_id, _dt_str(utcnow())),
    )
    conn.commit()


def is_read(conn: sqlite3.Connection, article_id: int, session_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM read_statuses WHERE article_id = ? AND session_id = ?",
        (article_id, session_id),
    ).fetchone()
    return row is not None
