"""Concurrent fetch workers for the sender pipeline."""

from gmailstats.ingestion.workers.dispatcher import (
    DispatcherState,
    FetchDispatcher,
    extract_sender,
)
from gmailstats.ingestion.workers.queues import ResultSet, WorkQueue

__all__ = [
    "DispatcherState",
    "FetchDispatcher",
    "ResultSet",
    "WorkQueue",
    "extract_sender",
]
