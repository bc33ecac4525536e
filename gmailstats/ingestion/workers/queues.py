"""Synchronized collections shared between the producer, dispatcher and fetchers."""
from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List, Optional

from gmailstats.ingestion.common.models import FetchFailure, MessageRef, ResolvedMessage


class QueueClosedError(RuntimeError):
    """Raised by ``WorkQueue.put`` after the queue has been closed."""


class WorkQueue:
    """Unbounded FIFO of pending message refs.

    ``close`` marks the producer as finished. Items already queued stay
    available; ``get`` returns ``None`` once the queue is closed and empty.
    """

    def __init__(self) -> None:
        self._items: Deque[MessageRef] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def put(self, ref: MessageRef) -> None:
        with self._cond:
            if self._closed:
                raise QueueClosedError(f"Cannot enqueue {ref.id}: work queue is closed")
            self._items.append(ref)
            self._cond.notify()

    def try_get(self) -> Optional[MessageRef]:
        with self._cond:
            return self._items.popleft() if self._items else None

    def get(self, timeout: float | None = None) -> Optional[MessageRef]:
        with self._cond:
            self._cond.wait_for(lambda: self._items or self._closed, timeout=timeout)
            return self._items.popleft() if self._items else None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def qsize(self) -> int:
        with self._cond:
            return len(self._items)

    __len__ = qsize


class ResultSet:
    """Append-only collection of resolved messages and per-item failures."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: List[ResolvedMessage] = []
        self._failures: List[FetchFailure] = []

    def add(self, message: ResolvedMessage) -> int:
        with self._lock:
            self._messages.append(message)
            return len(self._messages) + len(self._failures)

    def add_failure(self, failure: FetchFailure) -> int:
        with self._lock:
            self._failures.append(failure)
            return len(self._messages) + len(self._failures)

    def snapshot(self) -> tuple[List[ResolvedMessage], List[FetchFailure]]:
        with self._lock:
            return list(self._messages), list(self._failures)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages) + len(self._failures)
