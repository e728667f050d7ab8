"""
In-process directory of node actors.

``Mesh.node(id)`` is the only way to get a NodeActor: it creates the
actor on first use and returns the same instance afterwards, so every
identity has exactly one serialized owner in the process.
"""

import logging
from typing import Dict, Optional

from core.store import StoreFactory, memory_backend
from llmgen.generator import TextGenerator
from .node import NodeActor
from .registry import MeshRegistry, REGISTRY_ID
from .relay import LocalRelay, Relay

logger = logging.getLogger(__name__)


class Mesh:
    """
    Owns the registry and every node actor of one process.

    Nodes use ``node:<id>`` store namespaces and the registry uses
    ``mesh:global``, so a node named "global" can't collide with it.
    """

    def __init__(
        self,
        store_factory: StoreFactory = None,
        generator: Optional[TextGenerator] = None,
        relay: Optional[Relay] = None,
        history_limit: int = 20,
        relay_timeout: float = 10.0,
    ):
        self.store_factory = store_factory or memory_backend()
        self.generator = generator
        self.history_limit = history_limit
        self.registry = MeshRegistry(self.store_factory(f"mesh:{REGISTRY_ID}"))
        self.relay = relay or LocalRelay(self, timeout=relay_timeout)
        self._nodes: Dict[str, NodeActor] = {}

    def node(self, identity: str) -> NodeActor:
        if not isinstance(identity, str) or not identity:
            raise ValueError("node identity must be a non-empty string")
        node = self._nodes.get(identity)
        if node is None:
            node = NodeActor(
                identity,
                store=self.store_factory(f"node:{identity}"),
                registry=self.registry,
                relay=self.relay,
                generator=self.generator,
                history_limit=self.history_limit,
            )
            self._nodes[identity] = node
            logger.debug(f"Actor created for {identity}")
        return node

    async def close(self):
        await self.relay.close()
