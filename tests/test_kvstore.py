from __future__ import annotations

import sqlite3

import pytest

from gmailstats.ingestion.common import kvstore
from gmailstats.ingestion.common.errors import CacheError


def test_put_get_uses_composite_key(kv_store, cache_path):
    kv_store.put("resolved_message", "abc", '{"id": "abc"}')
    kv_store.put("oauth_token", "abc", "token")

    assert kv_store.get("resolved_message", "abc") == '{"id": "abc"}'
    assert kv_store.get("oauth_token", "abc") == "token"

    conn = sqlite3.connect(cache_path)
    keys = {row[0] for row in conn.execute("SELECT key FROM kv_store")}
    conn.close()
    assert keys == {"resolved_message-abc", "oauth_token-abc"}


def test_put_is_an_upsert(kv_store):
    kv_store.put("t", "k", "one")
    kv_store.put("t", "k", "two")
    assert kv_store.get("t", "k") == "two"


def test_clear_by_type_tag_keeps_other_collections(kv_store):
    kv_store.put("resolved_message", "a", "1")
    kv_store.put("resolved_message", "b", "2")
    kv_store.put("oauth_token", "me", "secret")

    assert kv_store.clear("resolved_message") == 2
    assert kv_store.get("resolved_message", "a") is None
    assert kv_store.get("oauth_token", "me") == "secret"

    assert kv_store.clear() == 1
    assert kv_store.get("oauth_token", "me") is None


def test_delete_and_missing_key(kv_store):
    kv_store.put("t", "k", "v")
    kv_store.delete("t", "k")
    assert kv_store.get("t", "k") is None


def test_empty_key_rejected(kv_store):
    with pytest.raises(ValueError):
        kv_store.put("t", "", "v")


def test_open_store_picks_sqlite_for_paths(tmp_path):
    store = kvstore.open_store(tmp_path / "nested" / "cache.db")
    assert isinstance(store, kvstore.SQLiteKeyValueStore)
    assert (tmp_path / "nested").is_dir()


def test_sqlite_errors_become_cache_errors(kv_store, cache_path):
    conn = sqlite3.connect(cache_path)
    conn.execute("DROP TABLE kv_store")
    conn.commit()
    conn.close()
    with pytest.raises(CacheError):
        kv_store.get("t", "k")
