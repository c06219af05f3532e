"""Parse RSS/Atom documents into FeedItem records using feedparser."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import feedparser
from feedparser.exceptions import CharacterEncodingOverride

from questfeed.errors import ParseError
from questfeed.models import Enclosure, FeedItem, Guid

logger = logging.getLogger(__name__)

# Documents feedparser flags for these reasons still parse completely.
_BENIGN_BOZO = (CharacterEncodingOverride,)


def _to_datetime(st) -> datetime | None:
    if not st:
        return None
    try:
        return datetime(*st[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _first_content(entry) -> str | None:
    content = entry.get("content") or []
    if content:
        return content[0].get("value") or None
    return None


def _enclosure(entry) -> Enclosure | None:
    for enc in entry.get("enclosures") or []:
        href = enc.get("href") or enc.get("url")
        if not href:
            continue
        length = enc.get("length")
        try:
            length = int(length) if length else None
        except ValueError:
            length = None
        return Enclosure(url=href, type=enc.get("type", ""), length=length)
    return None


def _description(entry, body: str | None) -> str | None:
    summary = entry.get("summary")
    # feedparser fills a missing summary with the first content value
    if body is not None and summary == body:
        return None
    return summary


def _entry_to_item(entry, is_rss: bool) -> FeedItem:
    guid = entry.get("id")
    body = _first_content(entry)
    return FeedItem(
        title=entry.get("title"),
        link=entry.get("link"),
        guid=Guid(guid, bool(entry.get("guidislink"))) if guid else None,
        description=_description(entry, body),
        # RSS carries full bodies in content:encoded, Atom in <content>
        content_encoded=body if is_rss else None,
        content=None if is_rss else body,
        # feedparser reports <dc:creator> under "author"
        author=entry.get("author"),
        pub_date=_to_datetime(entry.get("published_parsed")),
        date=_to_datetime(entry.get("updated_parsed")),
        enclosure=_enclosure(entry),
    )


def parse_feed(raw: bytes | str) -> list[FeedItem]:
    """Parse a feed document into items, in document order.

    Raises ParseError for anything feedparser cannot read cleanly as
    RSS or Atom; no partial result is returned.
    """
    if isinstance(raw, str):
        # feedparser treats short strings as URLs or file paths
        raw = raw.encode("utf-8")

    try:
        parsed = feedparser.parse(raw)
    except Exception as exc:
        raise ParseError(f"Feed parser crashed: {exc}", cause=exc) from exc

    if parsed.get("bozo"):
        exc = parsed.get("bozo_exception")
        if not isinstance(exc, _BENIGN_BOZO):
            raise ParseError(f"Malformed feed document: {exc}", cause=exc)
        logger.debug("Ignoring benign feed warning: %s", exc)

    version = parsed.get("version") or ""
    if not version:
        raise ParseError("Unrecognized feed format")

    is_rss = version.startswith("rss")
    return [_entry_to_item(entry, is_rss) for entry in parsed.entries]
