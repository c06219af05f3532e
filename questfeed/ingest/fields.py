"""Pull normalized values out of parsed feed items.

Each extractor walks a fixed list of source fields and returns the first
one that is present. The order is the fallback policy and must not change.
"""

from __future__ import annotations

import re
from datetime import datetime

from questfeed.models import FeedItem, Guid

_IMG_SRC = re.compile(r'<img[^>]+src="([^"]+)"', re.IGNORECASE)


def _present(value) -> bool:
    return value is not None and value != ""


def _first(*values):
    for value in values:
        if _present(value):
            return value
    return None


def extract_content(item: FeedItem) -> str | None:
    content = _first(item.content_encoded, item.content, item.description)
    return str(content) if content is not None else None


def extract_author(item: FeedItem) -> str | None:
    author = _first(item.author, item.dc_creator)
    return str(author) if author is not None else None


def extract_published_date(item: FeedItem, now: datetime) -> datetime:
    """Publish time of the item; items without any date count as published `now`."""
    return _first(item.pub_date, item.date) or now


def extract_image_url(item: FeedItem) -> str | None:
    """Best-effort lead image: an image enclosure, else the first <img> in the description."""
    enclosure = item.enclosure
    if enclosure and enclosure.url and (enclosure.type or "").startswith("image/"):
        return enclosure.url

    if item.description:
        match = _IMG_SRC.search(str(item.description))
        if match:
            return match.group(1)

    return None


def derive_guid(item: FeedItem) -> str | None:
    """Identity key for an item: its own guid, falling back to its link."""
    guid = item.guid
    if isinstance(guid, Guid):
        guid = guid.value
    return _first(guid, item.link)
