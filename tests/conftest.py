from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

import pytest

from gmailstats.ingestion.common.cache import MessageCache
from gmailstats.ingestion.common.kvstore import SQLiteKeyValueStore
from gmailstats.ingestion.common.models import MessagePage, ResolvedMessage


class StubGmail:
    """In-memory list and detail client.

    ``pages`` is a list of id lists; page N carries token ``page-N+1`` when a
    later page exists.
    """

    def __init__(
        self,
        pages: Iterable[Iterable[str]] = (),
        senders: Dict[str, str] | None = None,
        *,
        failing_ids: Iterable[str] = (),
        headers: Dict[str, List[dict]] | None = None,
        list_error_on_page: int | None = None,
        delay: float = 0.0,
        list_delay: float = 0.0,
    ) -> None:
        self.pages = [list(page) for page in pages]
        self.senders = dict(senders or {})
        self.failing_ids = set(failing_ids)
        self.headers = dict(headers or {})
        self.list_error_on_page = list_error_on_page
        self.delay = delay
        self.list_delay = list_delay
        self.list_calls: List[Tuple[str, str | None, int]] = []
        self.detail_calls: List[str] = []
        self._lock = threading.Lock()

    def list_messages(self, query, page_token=None, max_results=500) -> MessagePage:
        self.list_calls.append((query, page_token, max_results))
        if self.list_delay:
            threading.Event().wait(self.list_delay)
        index = int(page_token.split("-")[1]) if page_token else 0
        if self.list_error_on_page is not None and index == self.list_error_on_page:
            raise RuntimeError("quota exceeded")
        next_token = f"page-{index + 1}" if index + 1 < len(self.pages) else None
        ids = self.pages[index] if self.pages else []
        return MessagePage(ids=list(ids), next_page_token=next_token)

    def get_message(self, message_id: str) -> dict:
        with self._lock:
            self.detail_calls.append(message_id)
        if self.delay:
            threading.Event().wait(self.delay)
        if message_id in self.failing_ids:
            raise ConnectionError(f"network down for {message_id}")
        if message_id in self.headers:
            return {"id": message_id, "headers": self.headers[message_id]}
        return {
            "id": message_id,
            "headers": [
                {"name": "Subject", "value": "hello"},
                {"name": "from", "value": self.senders[message_id]},
            ],
        }


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "gmail_cache.db"


@pytest.fixture
def kv_store(cache_path: Path) -> SQLiteKeyValueStore:
    return SQLiteKeyValueStore(cache_path)


@pytest.fixture
def message_cache(kv_store: SQLiteKeyValueStore) -> MessageCache:
    return MessageCache(kv_store)


@pytest.fixture
def seed_cache(message_cache: MessageCache):
    def _seed(entries: Dict[str, str]) -> MessageCache:
        for message_id, sender in entries.items():
            message_cache.upsert(ResolvedMessage(id=message_id, sender=sender))
        return message_cache

    return _seed


@pytest.fixture
def stub_gmail():
    return StubGmail
