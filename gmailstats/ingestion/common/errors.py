"""Error taxonomy for the fetch pipeline.

``ListingError`` and ``CacheError`` abort a run. ``DetailFetchError`` and
``MalformedMessageError`` are per-message and end up as ``FetchFailure``
records instead of propagating.
"""
from __future__ import annotations


class GmailStatsError(Exception):
    """Base class for pipeline errors."""


class ListingError(GmailStatsError):
    def __init__(self, query: str, enqueued: int, cause: str) -> None:
        super().__init__(
            f"Listing failed for query {query!r} after {enqueued} message(s): {cause}"
        )
        self.query = query
        self.enqueued = enqueued
        self.cause = cause


class DetailFetchError(GmailStatsError):
    def __init__(self, message_id: str, cause: str) -> None:
        super().__init__(f"Failed to fetch message {message_id}: {cause}")
        self.message_id = message_id
        self.cause = cause


class MalformedMessageError(GmailStatsError):
    def __init__(self, message_id: str, cause: str) -> None:
        super().__init__(f"Malformed message {message_id}: {cause}")
        self.message_id = message_id
        self.cause = cause


class CacheError(GmailStatsError):
    """Storage failure in the message cache or its key/value store."""


PER_ITEM_ERRORS = (DetailFetchError, MalformedMessageError)
