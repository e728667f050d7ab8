"""
Persisted key-value stores.

A node only needs async ``get``/``put`` of JSON-serializable values in
its own namespace. ``MemoryStore`` keeps everything in process;
``JsonFileStore`` writes one JSON file per key and replaces it
atomically, so a crash leaves either the old or the new value.
"""

import asyncio
import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from .errors import StorageError


class KeyValueStore(ABC):
    """Durable storage scoped to one actor"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key was never written"""
        pass

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value"""
        pass


StoreFactory = Callable[[str], KeyValueStore]


class MemoryStore(KeyValueStore):
    """In-process store. Values are deep-copied so callers can't alias them."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def put(self, key: str, value: Any) -> None:
        try:
            # Reject anything the file store couldn't persist either
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"value for {key!r} is not serializable: {e}")
        self._data[key] = copy.deepcopy(value)


class JsonFileStore(KeyValueStore):
    """
    One directory per namespace, one ``<key>.json`` file per key.

    File I/O runs in a worker thread so the event loop (and every
    other node) keeps going while a node waits on disk.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, quote(key, safe="") + ".json")

    def _read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def _write(self, key: str, value: Any):
        os.makedirs(self.directory, exist_ok=True)
        data = json.dumps(value, indent=2)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError) as e:
            raise StorageError(f"read {key!r} failed: {e}")

    async def put(self, key: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"write {key!r} failed: {e}")


def memory_backend() -> StoreFactory:
    """Factory handing out one MemoryStore per namespace"""
    stores: Dict[str, MemoryStore] = {}

    def factory(namespace: str) -> KeyValueStore:
        if namespace not in stores:
            stores[namespace] = MemoryStore()
        return stores[namespace]

    return factory


def file_backend(base_dir: str) -> StoreFactory:
    """Factory handing out a JsonFileStore under ``base_dir`` per namespace"""

    def factory(namespace: str) -> KeyValueStore:
        return JsonFileStore(os.path.join(base_dir, quote(namespace, safe="")))

    return factory
