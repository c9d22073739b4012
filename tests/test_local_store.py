from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from playground_services.storage.sqlite import KeyValueStore


@pytest.fixture
def store(tmp_path: Path):
    s = KeyValueStore(tmp_path / "kv" / "playground.db")
    yield s
    s.close()


def test_get_missing_returns_default(store: KeyValueStore):
    assert store.get("nope") is None
    assert store.get("nope", []) == []


def test_put_get_and_persist_across_reopen(tmp_path: Path):
    path = tmp_path / "persist.db"
    s1 = KeyValueStore(path)
    s1.put("gallery", [{"cid": "Qm1", "views": 2}])
    s1.close()

    s2 = KeyValueStore(path)
    try:
        assert s2.get("gallery") == [{"cid": "Qm1", "views": 2}]
    finally:
        s2.close()


def test_update_is_read_modify_write(store: KeyValueStore):
    store.put("counter", {"n": 1})
    result = store.update("counter", lambda d: {"n": d["n"] + 1})
    assert result == {"n": 2}
    assert store.get("counter") == {"n": 2}


def test_update_uses_default_for_missing_key(store: KeyValueStore):
    assert store.update("shared-circuits", lambda d: {**d, "Qm1": {"title": "t"}}, default={}) == {
        "Qm1": {"title": "t"}
    }


def test_failed_update_leaves_previous_value(store: KeyValueStore):
    store.put("gallery", ["a", "b"])

    def boom(_):
        raise RuntimeError("crash between read and write")

    with pytest.raises(RuntimeError):
        store.update("gallery", boom)
    assert store.get("gallery") == ["a", "b"]


def test_concurrent_updates_do_not_lose_writes(store: KeyValueStore):
    store.put("counter", 0)

    def bump(_):
        store.update("counter", lambda n: n + 1)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(bump, range(50)))

    assert store.get("counter") == 50


def test_delete(store: KeyValueStore):
    store.put("k", {"v": 1})
    assert store.delete("k") is True
    assert store.delete("k") is False
    assert store.get("k") is None
