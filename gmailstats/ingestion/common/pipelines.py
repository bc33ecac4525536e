"""Ingestion pipeline helpers."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, Protocol

from gmailstats.ingestion.common.cache import Cache
from gmailstats.ingestion.common.errors import ListingError
from gmailstats.ingestion.common.models import (
    MAX_PAGE_SIZE,
    DispatchResult,
    MessagePage,
    MessageRef,
    validate_page_size,
)
from gmailstats.ingestion.workers.dispatcher import (
    DEFAULT_IDLE_INTERVAL,
    DEFAULT_MAX_WORKERS,
    DetailClient,
    FetchDispatcher,
)
from gmailstats.ingestion.workers.queues import QueueClosedError, WorkQueue

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = MAX_PAGE_SIZE


class ListClient(Protocol):
    def list_messages(
        self,
        query: str,
        page_token: str | None = None,
        max_results: int = DEFAULT_PAGE_SIZE,
    ) -> MessagePage:
        ...


def iter_message_pages(
    client: ListClient,
    query: str,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Iterator[MessagePage]:
    """Yield listing pages until a response carries no next-page token."""
    validate_page_size(page_size)
    page_token: str | None = None
    while True:
        page = client.list_messages(query, page_token=page_token, max_results=page_size)
        yield page
        if not page.next_page_token:
            return
        page_token = page.next_page_token


def produce_message_refs(
    client: ListClient,
    queue: WorkQueue,
    query: str,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> int:
    """Enqueue every message id matching ``query`` and return how many were queued."""
    validate_page_size(page_size)
    enqueued = 0
    pages = 0
    try:
        for page in iter_message_pages(client, query, page_size=page_size):
            pages += 1
            for message_id in page.ids:
                queue.put(MessageRef(id=message_id))
                enqueued += 1
            logger.debug("[producer] Page %s: %s id(s)", pages, len(page.ids))
            if queue.closed:
                logger.warning("[producer] Work queue closed after page %s; listing stopped", pages)
                return enqueued
    except QueueClosedError as exc:
        logger.warning("[producer] Listing stopped after %s message(s): %s", enqueued, exc)
        return enqueued
    except ListingError as exc:
        raise ListingError(query, enqueued, exc.cause) from exc
    except Exception as exc:
        raise ListingError(query, enqueued, str(exc) or type(exc).__name__) from exc
    logger.info(
        "[producer] Listed %s message(s) across %s page(s) for query '%s'",
        enqueued,
        pages,
        query,
    )
    return enqueued


def collect_senders(
    list_client: ListClient,
    detail_client: DetailClient,
    cache: Cache,
    query: str,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_workers: int = DEFAULT_MAX_WORKERS,
    idle_interval: float = DEFAULT_IDLE_INTERVAL,
    progress_interval: int | None = None,
) -> DispatchResult:
    """Run the producer and the dispatcher concurrently and return the joined result.

    A listing failure still drains and joins the dispatcher before the
    ``ListingError`` is re-raised, so no fetch thread outlives the call.
    A fatal dispatcher error closes the work queue, which ends the listing
    early; ``join`` then re-raises that error.
    """
    queue = WorkQueue()
    dispatcher = FetchDispatcher(
        cache,
        detail_client,
        queue,
        max_workers=max_workers,
        idle_interval=idle_interval,
        progress_interval=progress_interval,
    ).start()
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="gmailstats-producer") as pool:
        producer = pool.submit(
            produce_message_refs,
            list_client,
            queue,
            query,
            page_size=page_size,
        )
        try:
            enqueued = producer.result()
        except Exception:
            dispatcher.stop()
            dispatcher.wait()
            raise
    dispatcher.stop()
    result = dispatcher.join()
    logger.info(
        "[pipeline] %s enqueued, %s resolved, %s failed (%s cache hit(s), %s fetch(es))",
        enqueued,
        len(result.messages),
        len(result.failures),
        result.cache_hits,
        result.fetched,
    )
    return result
