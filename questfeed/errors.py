"""Error taxonomy for feed ingestion."""

from __future__ import annotations


class QuestFeedError(Exception):
    """Base class for all questfeed errors."""


class FetchError(QuestFeedError):
    """The feed URL could not be retrieved."""

    def __init__(self, url: str, cause: Exception | None = None):
        self.url = url
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to fetch {url}{detail}")


class ParseError(QuestFeedError):
    """The fetched document is not a usable RSS/Atom feed."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class ItemValidationError(QuestFeedError):
    """A single feed item could not be turned into an article."""

    def __init__(self, message: str, guid: str | None = None):
        self.guid = guid
        super().__init__(message)


class FeedValidationError(QuestFeedError):
    """A feed definition failed validation."""

    def __init__(self, messages: list[str]):
        self.messages = messages
        super().__init__("; ".join(messages))


class NotFoundError(QuestFeedError):
    """A record requested by id does not exist."""

    def __init__(self, kind: str, record_id: int):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")
