"""Sender-frequency reporting over resolved messages."""

from gmailstats.reporting.senders import (
    DEFAULT_TOP,
    count_senders,
    extract_address,
    format_report,
    top_senders,
)

__all__ = [
    "DEFAULT_TOP",
    "count_senders",
    "extract_address",
    "format_report",
    "top_senders",
]
