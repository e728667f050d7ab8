import asyncio
import os

import pytest

from core.errors import StorageError
from core.store import JsonFileStore, MemoryStore, file_backend, memory_backend


def test_memory_store_missing_key_is_none():
    store = MemoryStore()
    assert asyncio.run(store.get("config")) is None


def test_memory_store_copies_values():
    async def scenario():
        store = MemoryStore()
        value = {"children": [1, 2]}
        await store.put("fs", value)
        value["children"].append(3)
        loaded = await store.get("fs")
        loaded["children"].append(4)
        return await store.get("fs")

    assert asyncio.run(scenario()) == {"children": [1, 2]}


def test_memory_store_rejects_unserializable_values():
    with pytest.raises(StorageError):
        asyncio.run(MemoryStore().put("bad", {"when": object()}))


def test_json_file_store_survives_new_instance(tmp_path):
    async def scenario():
        await JsonFileStore(str(tmp_path)).put("config", {"id": "alice", "cwd": "/"})
        return await JsonFileStore(str(tmp_path)).get("config")

    assert asyncio.run(scenario()) == {"id": "alice", "cwd": "/"}
    assert sorted(os.listdir(tmp_path)) == ["config.json"]


def test_json_file_store_overwrites(tmp_path):
    async def scenario():
        store = JsonFileStore(str(tmp_path))
        await store.put("nodes", [1])
        await store.put("nodes", [1, 2])
        return await store.get("nodes")

    assert asyncio.run(scenario()) == [1, 2]


def test_json_file_store_missing_key_is_none(tmp_path):
    assert asyncio.run(JsonFileStore(str(tmp_path / "nowhere")).get("config")) is None


def test_json_file_store_corrupt_file_is_storage_error(tmp_path):
    (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageError):
        asyncio.run(JsonFileStore(str(tmp_path)).get("config"))


def test_json_file_store_write_failure_is_storage_error(tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store = JsonFileStore(str(blocker / "node"))
    with pytest.raises(StorageError):
        asyncio.run(store.put("config", {}))


def test_memory_backend_reuses_namespace_stores():
    factory = memory_backend()
    assert factory("node:alice") is factory("node:alice")
    assert factory("node:alice") is not factory("node:bob")


def test_file_backend_separates_namespaces(tmp_path):
    factory = file_backend(str(tmp_path))

    async def scenario():
        await factory("node:alice").put("config", {"id": "alice"})
        await factory("mesh:global").put("nodes", [])
        return await factory("node:bob").get("config")

    assert asyncio.run(scenario()) is None
    assert len(os.listdir(tmp_path)) == 2
