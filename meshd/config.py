"""
Daemon settings.

Values come from the environment (a ``.env`` file is loaded first by
the CLI) and are overridden by command-line flags.

    MESH_HOST               bind host (0.0.0.0)
    MESH_PORT               bind port (8787)
    MESH_PREFIX             route prefix, e.g. /api ("")
    MESH_DATA_DIR           JSON store directory (unset: in-memory)
    MESH_PROVIDER           text generation provider (unset: disabled)
    MESH_MODEL              provider model (provider default)
    MESH_RELAY_URL          relay through this daemon URL instead of in-process
    MESH_RELAY_TIMEOUT      seconds (10)
    MESH_GENERATOR_TIMEOUT  seconds (30)
    MESH_HISTORY_LIMIT      conversation turns kept per node (20)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from core.store import StoreFactory, file_backend, memory_backend
from llmgen.generator import TextGenerator, create_generator
from synapse.mesh import Mesh
from synapse.relay import HttpRelay, Relay


@dataclass
class DaemonConfig:
    host: str = "0.0.0.0"
    port: int = 8787
    prefix: str = ""
    data_dir: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    relay_url: Optional[str] = None
    relay_timeout: float = 10.0
    generator_timeout: float = 30.0
    history_limit: int = 20

    @classmethod
    def from_env(cls, env: Mapping[str, str] = None) -> 'DaemonConfig':
        env = os.environ if env is None else env
        try:
            return cls(
                host=env.get("MESH_HOST", cls.host),
                port=int(env.get("MESH_PORT", cls.port)),
                prefix=env.get("MESH_PREFIX", cls.prefix),
                data_dir=env.get("MESH_DATA_DIR") or None,
                provider=env.get("MESH_PROVIDER") or None,
                model=env.get("MESH_MODEL") or None,
                relay_url=env.get("MESH_RELAY_URL") or None,
                relay_timeout=float(env.get("MESH_RELAY_TIMEOUT", cls.relay_timeout)),
                generator_timeout=float(env.get("MESH_GENERATOR_TIMEOUT", cls.generator_timeout)),
                history_limit=int(env.get("MESH_HISTORY_LIMIT", cls.history_limit)),
            )
        except ValueError as e:
            raise ValueError(f"Invalid mesh setting in environment: {e}")

    def store_factory(self) -> StoreFactory:
        if self.data_dir:
            return file_backend(self.data_dir)
        return memory_backend()

    def generator(self) -> TextGenerator:
        return create_generator(self.provider, model=self.model, timeout=self.generator_timeout)

    def relay(self) -> Optional[Relay]:
        """HttpRelay when a relay URL is set; None lets the mesh relay in-process"""
        if self.relay_url:
            return HttpRelay(self.relay_url, timeout=self.relay_timeout)
        return None

    def build_mesh(self) -> Mesh:
        return Mesh(
            store_factory=self.store_factory(),
            generator=self.generator(),
            relay=self.relay(),
            history_limit=self.history_limit,
            relay_timeout=self.relay_timeout,
        )
