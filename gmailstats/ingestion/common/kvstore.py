"""Key/value stores addressed by ``{type_tag}-{key}`` composite keys.

One store file can hold several logical collections: the message cache and
the OAuth token live side by side, separated by their type tag.
"""
from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Protocol

try:  # pragma: no cover - optional import for redis-backed stores
    import redis
except ImportError:  # pragma: no cover
    redis = None

from gmailstats.ingestion.common.errors import CacheError

logger = logging.getLogger(__name__)

_REDIS_PREFIX = os.getenv("GMAILSTATS_REDIS_PREFIX", "gmailstats:")

_redis_clients: dict[str, "redis.Redis"] = {}

STORE_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    type_tag TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


def stored_key(type_tag: str, key: str) -> str:
    if not key:
        raise ValueError("Key MUST have a value")
    return f"{type_tag}-{key}"


class KeyValueStore(Protocol):
    def get(self, type_tag: str, key: str) -> Optional[str]:
        ...

    def put(self, type_tag: str, key: str, value: str) -> None:
        ...

    def delete(self, type_tag: str, key: str) -> None:
        ...

    def clear(self, type_tag: str | None = None) -> int:
        ...


def _is_redis_target(target: str) -> bool:
    lowered = target.lower()
    return lowered.startswith(("redis://", "rediss://", "unix://"))


def open_store(target: str | Path) -> KeyValueStore:
    """Return a Redis store for redis URLs, otherwise an SQLite file store."""
    target = str(target)
    if _is_redis_target(target):
        return RedisKeyValueStore(target)
    return SQLiteKeyValueStore(target)


class SQLiteKeyValueStore:
    """SQLite-backed store. Every call opens its own connection, so one
    instance can be shared across threads."""

    def __init__(self, database_path: Path | str, connection_timeout: float = 30.0) -> None:
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.connection_timeout = connection_timeout
        with self._connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute(STORE_SCHEMA)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.database_path, timeout=self.connection_timeout)
        except sqlite3.Error as exc:
            raise CacheError(f"Cannot open cache store {self.database_path}: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise CacheError(f"Cache store {self.database_path} failed: {exc}") from exc
        finally:
            conn.close()

    def get(self, type_tag: str, key: str) -> Optional[str]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                (stored_key(type_tag, key),),
            ).fetchone()
        return row[0] if row else None

    def put(self, type_tag: str, key: str, value: str) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, type_tag, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (
                    stored_key(type_tag, key),
                    type_tag,
                    value,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    def delete(self, type_tag: str, key: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (stored_key(type_tag, key),))

    def clear(self, type_tag: str | None = None) -> int:
        with self._connection() as conn:
            if type_tag is None:
                cursor = conn.execute("DELETE FROM kv_store")
            else:
                cursor = conn.execute("DELETE FROM kv_store WHERE type_tag = ?", (type_tag,))
            removed = cursor.rowcount
        logger.info("[cache] Removed %s entr(ies) from %s", removed, self.database_path)
        return removed


def _ensure_redis() -> None:
    if redis is None:  # pragma: no cover - runtime guard
        raise RuntimeError(
            "Redis support is not available. Install the 'redis' package to use a Redis cache target."
        )


def _get_redis_client(redis_url: str) -> "redis.Redis":
    _ensure_redis()
    client = _redis_clients.get(redis_url)
    if client is None:
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        _redis_clients[redis_url] = client
    return client


class RedisKeyValueStore:  # pragma: no cover - requires redis runtime
    """Redis-backed store; keys are namespaced with ``GMAILSTATS_REDIS_PREFIX``."""

    def __init__(self, redis_url: str) -> None:
        self.redis_url = redis_url
        self.client = _get_redis_client(redis_url)

    def _key(self, type_tag: str, key: str) -> str:
        return f"{_REDIS_PREFIX}{stored_key(type_tag, key)}"

    def get(self, type_tag: str, key: str) -> Optional[str]:
        try:
            return self.client.get(self._key(type_tag, key))
        except redis.RedisError as exc:
            raise CacheError(f"Redis get failed: {exc}") from exc

    def put(self, type_tag: str, key: str, value: str) -> None:
        try:
            self.client.set(self._key(type_tag, key), value)
        except redis.RedisError as exc:
            raise CacheError(f"Redis set failed: {exc}") from exc

    def delete(self, type_tag: str, key: str) -> None:
        try:
            self.client.delete(self._key(type_tag, key))
        except redis.RedisError as exc:
            raise CacheError(f"Redis delete failed: {exc}") from exc

    def clear(self, type_tag: str | None = None) -> int:
        pattern = f"{_REDIS_PREFIX}{type_tag}-*" if type_tag else f"{_REDIS_PREFIX}*"
        removed = 0
        try:
            batch: list[str] = []
            for key in self.client.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += self.client.delete(*batch)
                    batch = []
            if batch:
                removed += self.client.delete(*batch)
        except redis.RedisError as exc:
            raise CacheError(f"Redis clear failed: {exc}") from exc
        logger.info("[cache] Removed %s entr(ies) matching %s", removed, pattern)
        return removed
