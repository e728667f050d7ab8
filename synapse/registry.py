"""
Mesh registry: the directory nodes use to find each other.

One well-known instance per mesh. Entries are kept in registration
order and never deleted. Registering a known id updates its display
name and persona in place; ``createdAt`` and position are kept.
"""

import asyncio
import logging
from typing import List, Optional

from core.errors import PeerNotFound, StorageError
from core.store import KeyValueStore
from core.types import RegistryEntry

logger = logging.getLogger(__name__)

REGISTRY_ID = "global"


class MeshRegistry:
    """Serialized owner of the registry sequence"""

    KEY = "nodes"

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.id = REGISTRY_ID
        self._entries: Optional[List[RegistryEntry]] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> List[RegistryEntry]:
        if self._entries is None:
            data = await self.store.get(self.KEY) or []
            try:
                self._entries = [RegistryEntry.from_dict(d) for d in data]
            except Exception as e:
                raise StorageError(f"registry data is corrupt: {e}")
        return self._entries

    async def register(self, entry: RegistryEntry) -> RegistryEntry:
        async with self._lock:
            entries = list(await self._load())
            for i, existing in enumerate(entries):
                if existing.id == entry.id:
                    stored = RegistryEntry(
                        id=entry.id,
                        display_name=entry.display_name,
                        persona=entry.persona,
                        created_at=existing.created_at,
                    )
                    entries[i] = stored
                    break
            else:
                stored = entry
                entries.append(stored)

            await self.store.put(self.KEY, [e.to_dict() for e in entries])
            self._entries = entries
            logger.info(f"Registered node {stored.id} as '{stored.display_name}'")
            return stored

    async def list_nodes(self) -> List[RegistryEntry]:
        async with self._lock:
            return list(await self._load())

    async def get(self, identity: str) -> Optional[RegistryEntry]:
        """Entry registered under exactly ``identity``, if any"""
        async with self._lock:
            entries = await self._load()
        for entry in entries:
            if entry.id == identity:
                return entry
        return None

    async def resolve(self, name: str) -> RegistryEntry:
        """Find a node by exact id, else by case-insensitive display name"""
        async with self._lock:
            entries = await self._load()
        for entry in entries:
            if entry.id == name:
                return entry
        wanted = name.lower()
        for entry in entries:
            if entry.display_name.lower() == wanted:
                return entry
        raise PeerNotFound(name)
