"""Dataclasses describing message refs, resolved senders and run outcomes."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import List, Optional

# Gmail caps messages.list maxResults at 500.
MAX_PAGE_SIZE = 500


def validate_page_size(page_size: int) -> int:
    if page_size <= 0 or page_size > MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
    return page_size


@dataclass(frozen=True)
class MessageRef:
    id: str


@dataclass(frozen=True)
class ResolvedMessage:
    id: str
    sender: str

    def to_json(self) -> str:
        return json.dumps({"id": self.id, "sender": self.sender}, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "ResolvedMessage":
        data = json.loads(raw)
        return cls(id=data["id"], sender=data["sender"])


@dataclass(frozen=True)
class FetchFailure:
    id: str
    reason: str
    error: str


@dataclass
class MessagePage:
    ids: List[str]
    next_page_token: Optional[str] = None


@dataclass
class DispatchResult:
    messages: List[ResolvedMessage] = field(default_factory=list)
    failures: List[FetchFailure] = field(default_factory=list)
    cache_hits: int = 0
    fetched: int = 0

    @property
    def outcome_count(self) -> int:
        return len(self.messages) + len(self.failures)
