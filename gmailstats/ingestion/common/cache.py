"""Persistent cache of resolved message senders."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol

from gmailstats.ingestion.common.errors import CacheError
from gmailstats.ingestion.common.kvstore import KeyValueStore, open_store
from gmailstats.ingestion.common.models import ResolvedMessage

logger = logging.getLogger(__name__)

MESSAGE_TYPE_TAG = "resolved_message"


class Cache(Protocol):
    def get(self, message_id: str) -> Optional[ResolvedMessage]:
        ...

    def upsert(self, message: ResolvedMessage) -> None:
        ...

    def erase_all(self) -> int:
        ...


class MessageCache:
    """Maps a message id to its ``ResolvedMessage``.

    Entries are only removed by ``erase_all``; there is no expiry.
    """

    def __init__(self, store: KeyValueStore, type_tag: str = MESSAGE_TYPE_TAG) -> None:
        self.store = store
        self.type_tag = type_tag

    @classmethod
    def open(cls, target: str | Path) -> "MessageCache":
        return cls(open_store(target))

    def get(self, message_id: str) -> Optional[ResolvedMessage]:
        raw = self.store.get(self.type_tag, message_id)
        if raw is None:
            return None
        try:
            return ResolvedMessage.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            raise CacheError(f"Corrupt cache entry for message {message_id}: {exc}") from exc

    def upsert(self, message: ResolvedMessage) -> None:
        self.store.put(self.type_tag, message.id, message.to_json())

    def erase_all(self) -> int:
        removed = self.store.clear(self.type_tag)
        logger.info("[cache] Erased %s cached message(s)", removed)
        return removed
