"""Count normalized sender addresses and render the top-N report."""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Tuple

from gmailstats.ingestion.common.errors import MalformedMessageError
from gmailstats.ingestion.common.models import FetchFailure, ResolvedMessage

logger = logging.getLogger(__name__)

DEFAULT_TOP = 30


def extract_address(sender: str, message_id: str = "") -> str:
    """Return the lowercased address inside the last ``<...>`` of a From header.

    A header without angle brackets is accepted as a bare address when it
    contains ``@`` and no whitespace.
    """
    value = (sender or "").strip()
    close = value.rfind(">")
    open_ = value.rfind("<", 0, close) if close != -1 else -1
    if open_ != -1:
        address = value[open_ + 1 : close].strip()
        if address:
            return address.lower()
        raise MalformedMessageError(message_id, f"empty address in From header {sender!r}")
    if "<" in value or ">" in value:
        raise MalformedMessageError(message_id, f"unbalanced brackets in From header {sender!r}")
    if "@" in value and not any(ch.isspace() for ch in value):
        return value.lower()
    raise MalformedMessageError(message_id, f"no address in From header {sender!r}")


def count_senders(
    messages: Iterable[ResolvedMessage],
) -> Tuple[Counter, List[FetchFailure]]:
    counts: Counter = Counter()
    failures: List[FetchFailure] = []
    for message in messages:
        try:
            address = extract_address(message.sender, message.id)
        except MalformedMessageError as exc:
            logger.warning("[report] Skipping %s: %s", message.id, exc)
            failures.append(
                FetchFailure(id=message.id, reason=type(exc).__name__, error=str(exc))
            )
            continue
        counts[address] += 1
    return counts, failures


def top_senders(counts: Counter, limit: int = DEFAULT_TOP) -> List[Tuple[str, int]]:
    """Sort by count descending, address ascending; keep the first ``limit``."""
    if limit <= 0:
        return []
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return ranked[:limit]


def format_report(rows: Iterable[Tuple[str, int]]) -> str:
    return "\n".join(f"{address} = {count}" for address, count in rows)
