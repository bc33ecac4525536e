"""Report the most frequent senders for a Gmail search query."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Sequence

from gmailstats.cli.runtime import configure_runtime
from gmailstats.ingestion.common.cache import MessageCache
from gmailstats.ingestion.common.errors import CacheError, ListingError
from gmailstats.ingestion.common.kvstore import open_store
from gmailstats.config import AppConfig
from gmailstats.ingestion.common.models import MAX_PAGE_SIZE, FetchFailure, validate_page_size
from gmailstats.ingestion.common.pipelines import collect_senders
from gmailstats.ingestion.gmail.service import GmailService
from gmailstats.reporting import count_senders, format_report, top_senders

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Gmail search query string",
    )
    parser.add_argument(
        "-q",
        "--gmail-query",
        dest="gmail_query",
        default=None,
        help="Gmail filter format query (alternative to the positional query)",
    )
    parser.add_argument(
        "-c",
        "--client-id",
        required=True,
        help="Path to the Google OAuth client_id.json file",
    )
    parser.add_argument(
        "-e",
        "--erase-cache",
        action="store_true",
        help="Erase cached senders and fetch everything again",
    )
    parser.add_argument(
        "--cache",
        default=None,
        help="Cache target: SQLite path or redis:// URL (fallback: GMAILSTATS_CACHE or data/gmail_cache.db)",
    )
    parser.add_argument(
        "--user-id",
        default="me",
        help="Gmail user id (default: me)",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Message ids requested per listing call (1-500, default: 500)",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Concurrent detail requests (default: 8)",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=None,
        help="Number of senders to print (default: 30)",
    )
    parser.add_argument(
        "--progress-interval",
        type=int,
        default=500,
        help="Log progress every N messages (default: 500; set to 0 to disable)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Optional log level override (e.g. INFO, DEBUG)",
    )
    parser.add_argument(
        "--structured-logs",
        action="store_true",
        default=None,
        help="Emit JSON log lines",
    )
    args = parser.parse_args(argv)
    args.query = args.gmail_query or args.query
    if not args.query:
        parser.error("a Gmail query is required (positional or --gmail-query)")
    if args.page_size is not None and not 1 <= args.page_size <= MAX_PAGE_SIZE:
        parser.error(f"--page-size must be between 1 and {MAX_PAGE_SIZE}")
    if args.max_workers is not None and args.max_workers < 1:
        parser.error("--max-workers must be at least 1")
    if args.top is not None and args.top < 0:
        parser.error("--top must not be negative")
    if args.progress_interval < 0:
        parser.error("--progress-interval must not be negative")
    return args


def report_failures(failures: List[FetchFailure]) -> None:
    for failure in failures:
        print(f"failed {failure.id}: {failure.reason}: {failure.error}", file=sys.stderr)


def check_settings(config: AppConfig) -> None:
    """Reject tuning values that came from the config file or environment."""
    validate_page_size(config.page_size)
    if config.max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {config.max_workers}")
    if config.top < 0:
        raise ValueError(f"top must not be negative, got {config.top}")
    if config.idle_interval <= 0:
        raise ValueError(f"idle_interval must be positive, got {config.idle_interval}")


def run(args: argparse.Namespace) -> int:
    try:
        config = configure_runtime(
            args.cache,
            args.log_level,
            structured=args.structured_logs,
            page_size=args.page_size,
            max_workers=args.max_workers,
            top=args.top,
        )
        check_settings(config)
    except ValueError as exc:
        logger.error("Invalid settings: %s", exc)
        return EXIT_FATAL
    try:
        cache = MessageCache.open(config.cache_target)
        if args.erase_cache:
            cache.erase_all()
        token_store = (
            cache.store
            if config.token_target == config.cache_target
            else open_store(config.token_target)
        )
        service = GmailService(
            credentials_path=args.client_id,
            token_store=token_store,
            user_id=args.user_id,
            num_retries=config.num_retries,
        )
        logger.info("Collecting senders for query '%s'", args.query)
        result = collect_senders(
            service,
            service,
            cache,
            args.query,
            page_size=config.page_size,
            max_workers=config.max_workers,
            idle_interval=config.idle_interval,
            progress_interval=(args.progress_interval or None),
        )
    except ListingError as exc:
        logger.error("Run aborted for query '%s' after %s listed message(s): %s", exc.query, exc.enqueued, exc.cause)
        return EXIT_FATAL
    except CacheError as exc:
        logger.error("Run aborted for query '%s': %s", args.query, exc)
        return EXIT_FATAL

    counts, address_failures = count_senders(result.messages)
    failures = result.failures + address_failures
    print(format_report(top_senders(counts, config.top)))
    if failures:
        report_failures(failures)
        logger.warning(
            "Completed with %s per-message failure(s); %s message(s) counted",
            len(failures),
            sum(counts.values()),
        )
        return EXIT_PARTIAL
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
