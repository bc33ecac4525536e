"""Fetch dispatcher: drains the work queue and resolves message senders.

Cache hits are appended to the result set directly. Misses are handed to a
bounded thread pool that calls the detail client and writes the resolved
sender back to the cache. ``join`` returns only after the queue is empty
and every submitted fetch has finished.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from gmailstats.ingestion.common.cache import Cache
from gmailstats.ingestion.common.errors import (
    PER_ITEM_ERRORS,
    CacheError,
    DetailFetchError,
    MalformedMessageError,
)
from gmailstats.ingestion.common.models import (
    DispatchResult,
    FetchFailure,
    MessageRef,
    ResolvedMessage,
)
from gmailstats.ingestion.workers.queues import ResultSet, WorkQueue

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8
DEFAULT_IDLE_INTERVAL = 0.1


class DispatcherState(str, Enum):
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


class DetailClient(Protocol):
    def get_message(self, message_id: str) -> Dict[str, Any]:
        ...


def extract_sender(message_id: str, payload: Dict[str, Any]) -> str:
    """Return the first ``From`` header value (name matched case-insensitively)."""
    for header in payload.get("headers") or []:
        if str(header.get("name", "")).lower() == "from":
            value = header.get("value")
            if not value or not str(value).strip():
                raise MalformedMessageError(message_id, "empty From header")
            return str(value)
    raise MalformedMessageError(message_id, "no From header")


class FetchDispatcher:
    def __init__(
        self,
        cache: Cache,
        client: DetailClient,
        queue: WorkQueue | None = None,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        idle_interval: float = DEFAULT_IDLE_INTERVAL,
        progress_interval: int | None = None,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.cache = cache
        self.client = client
        self.queue = queue if queue is not None else WorkQueue()
        self.results = ResultSet()
        self.idle_interval = idle_interval
        self.progress_interval = progress_interval
        self.cache_hits = 0
        self.fetched = 0
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="gmailstats-fetch",
        )
        self._futures: List[Future] = []
        self._stopping = threading.Event()
        self._aborted = threading.Event()
        self._done = threading.Event()
        self._stop_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None

    @property
    def state(self) -> DispatcherState:
        if self._done.is_set():
            return DispatcherState.DONE
        if self._stopping.is_set() or self._aborted.is_set():
            return DispatcherState.DRAINING
        return DispatcherState.RUNNING

    def start(self) -> "FetchDispatcher":
        if self._thread is not None:
            raise RuntimeError("Dispatcher already started")
        self._thread = threading.Thread(
            target=self._run,
            name="gmailstats-dispatcher",
            daemon=True,
        )
        self._thread.start()
        return self

    def stop(self) -> None:
        """Signal that no more refs will be enqueued; queued work is kept."""
        with self._stop_lock:
            if self._stopping.is_set():
                return
            self._stopping.set()
        logger.info("[dispatcher] Draining %s queued message(s)", self.queue.qsize())
        self.queue.close()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def _abort(self, exc: BaseException) -> None:
        """Record the first fatal error, stop dispatching and close the queue."""
        with self._stop_lock:
            if self._error is None:
                self._error = exc
            self._aborted.set()
        self.queue.close()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the dispatcher is DONE without collecting results."""
        if self._thread is None:
            raise RuntimeError("Dispatcher is not started")
        return self._done.wait(timeout)

    def join(self, timeout: float | None = None) -> DispatchResult:
        if not self.wait(timeout):
            raise TimeoutError(f"Dispatcher did not finish within {timeout} second(s)")
        self._thread.join()
        if self._error is not None:
            raise self._error
        messages, failures = self.results.snapshot()
        return DispatchResult(
            messages=messages,
            failures=failures,
            cache_hits=self.cache_hits,
            fetched=self.fetched,
        )

    def _run(self) -> None:
        try:
            while not self._aborted.is_set():
                ref = self.queue.get(timeout=self.idle_interval)
                if ref is None:
                    if self._stopping.is_set() and self.queue.qsize() == 0:
                        break
                    continue
                self._dispatch(ref)
        except Exception as exc:
            logger.exception("[dispatcher] Aborting dispatch: %s", exc)
            self._abort(exc)
        finally:
            self._wait_in_flight()
            self._done.set()
            logger.info(
                "[dispatcher] Done: %s cache hit(s), %s fetch(es), %s outcome(s)",
                self.cache_hits,
                self.fetched,
                len(self.results),
            )

    def _dispatch(self, ref: MessageRef) -> None:
        cached = self.cache.get(ref.id)
        if cached is not None:
            self.cache_hits += 1
            self._record(self.results.add(cached))
            return
        self.fetched += 1
        self._futures.append(self._executor.submit(self._fetch, ref))

    def _wait_in_flight(self) -> None:
        wait(self._futures)
        self._executor.shutdown(wait=True)
        for future in self._futures:
            exc = future.exception()
            if exc is not None and self._error is None:
                self._abort(exc)

    def _fetch(self, ref: MessageRef) -> Optional[ResolvedMessage]:
        if self._aborted.is_set():
            return None
        try:
            message = self._resolve(ref)
        except PER_ITEM_ERRORS as exc:
            logger.warning("[fetch] Skipping %s: %s", ref.id, exc)
            self._record(
                self.results.add_failure(
                    FetchFailure(id=ref.id, reason=type(exc).__name__, error=str(exc))
                )
            )
            return None
        except Exception as exc:
            self._abort(exc)
            raise
        self._record(self.results.add(message))
        try:
            self.cache.upsert(message)
        except Exception as exc:
            logger.error("[fetch] Fatal error writing %s to the cache: %s", ref.id, exc)
            self._abort(exc)
            raise
        return message

    def _resolve(self, ref: MessageRef) -> ResolvedMessage:
        try:
            payload = self.client.get_message(ref.id)
        except (DetailFetchError, CacheError):
            raise
        except Exception as exc:
            raise DetailFetchError(ref.id, str(exc) or type(exc).__name__) from exc
        return ResolvedMessage(id=ref.id, sender=extract_sender(ref.id, payload))

    def _record(self, outcomes: int) -> None:
        if self.progress_interval and outcomes % self.progress_interval == 0:
            logger.info(
                "[dispatcher] %s message(s) resolved so far (%s queued)",
                outcomes,
                self.queue.qsize(),
            )
