"""Core data models for feed ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

from questfeed.errors import FeedValidationError, ItemValidationError

MIN_REFRESH_INTERVAL = 300  # seconds
DEFAULT_REFRESH_INTERVAL = 3600


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


@dataclass
class Feed:
    """An external RSS/Atom source that is refreshed periodically."""

    name: str
    url: str
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL  # seconds
    active: bool = True
    description: str | None = None
    last_fetched_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def needs_refresh(self, now: datetime | None = None) -> bool:
        """True when the feed was never fetched or its interval has elapsed."""
        if self.last_fetched_at is None:
            return True
        now = as_utc(now or utcnow())
        elapsed = now - as_utc(self.last_fetched_at)
        return elapsed > timedelta(seconds=self.refresh_interval)

    def validate(self) -> None:
        errors = []
        if not self.name or not self.name.strip():
            errors.append("Name can't be blank")
        parsed = urlparse(self.url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append("Url is invalid")
        if (
            not isinstance(self.refresh_interval, int)
            or isinstance(self.refresh_interval, bool)
            or self.refresh_interval <= MIN_REFRESH_INTERVAL
        ):
            errors.append(
                f"Refresh interval must be greater than {MIN_REFRESH_INTERVAL}"
            )
        if errors:
            raise FeedValidationError(errors)


@dataclass
class Article:
    """A normalized, persisted feed item."""

    feed_id: int
    title: str
    url: str
    guid: str
    published_at: datetime
    description: str = ""
    content: str | None = None
    image_url: str | None = None
    author: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def validate(self) -> None:
        missing = [
            name for name in ("title", "url", "guid")
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            raise ItemValidationError(
                f"Missing required field(s): {', '.join(missing)}",
                guid=self.guid or None,
            )

    def preview_text(self, limit: int = 200) -> str:
        if self.description and self.description.strip():
            return _truncate(self.description, limit)
        if self.content:
            return _truncate(self.content, limit)
        return ""


@dataclass(frozen=True)
class Guid:
    """A structured <guid> value, e.g. one carrying an isPermaLink flag."""

    value: str
    is_permalink: bool = False


@dataclass(frozen=True)
class Enclosure:
    url: str
    type: str = ""
    length: int | None = None


@dataclass
class FeedItem:
    """One parsed entry of a feed document before normalization.

    Every field is optional; feeds differ in which ones they carry.
    """

    title: str | None = None
    link: str | None = None
    guid: str | Guid | None = None
    description: str | None = None
    content_encoded: str | None = None
    content: str | None = None
    author: str | None = None
    dc_creator: str | None = None
    pub_date: datetime | None = None
    date: datetime | None = None
    enclosure: Enclosure | None = None


@dataclass(frozen=True)
class Inserted:
    article: Article


@dataclass(frozen=True)
class AlreadyExists:
    guid: str


InsertResult = Inserted | AlreadyExists


@dataclass
class RefreshResult:
    """Counters for one feed refresh."""

    feed_id: int
    total: int = 0
    created: int = 0
    existing: int = 0
    skipped: int = 0
