"""
Relay: synchronous calls from one node to another.

The caller resolves a name through the mesh registry and hands the
message plus its own context (cwd, filesystem summary, recent turns)
to a Relay client. The callee runs its dispatcher against its own
state and returns plain text. Any failure on the way, including a
timeout, surfaces as PeerUnreachable.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import aiohttp

from core.errors import PeerUnreachable
from core.types import ConversationTurn, ROOT_NAME

if TYPE_CHECKING:
    from .mesh import Mesh

logger = logging.getLogger(__name__)


@dataclass
class RelayContext:
    """What a caller tells the callee about itself"""
    caller_id: str
    cwd: str = ROOT_NAME
    fs_summary: str = ""
    history: List[ConversationTurn] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cwd": self.cwd,
            "fsSummary": self.fs_summary,
            "history": [t.to_dict() for t in self.history],
        }

    @classmethod
    def from_dict(cls, caller_id: str, data: Optional[Dict[str, Any]]) -> 'RelayContext':
        """Parse wire context; raises ValueError on malformed input"""
        if not isinstance(caller_id, str) or not caller_id:
            raise ValueError("callerId must be a non-empty string")
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("context must be an object")
        history = data.get("history") or []
        if not isinstance(history, list):
            raise ValueError("context.history must be a list")
        if not all(isinstance(t, dict) for t in history):
            raise ValueError("context.history items must be objects")
        return cls(
            caller_id=caller_id,
            cwd=str(data.get("cwd") or ROOT_NAME),
            fs_summary=str(data.get("fsSummary") or ""),
            history=[ConversationTurn.from_dict(t) for t in history],
        )


class Relay(ABC):
    """Client side of the relay protocol"""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def call(
        self,
        target_id: str,
        prompt: str,
        caller_id: str,
        context: RelayContext,
    ) -> str:
        """Run ``prompt`` on ``target_id`` and return its rendered output"""
        logger.debug(f"Relay {caller_id} -> {target_id}: {prompt!r}")
        try:
            return await asyncio.wait_for(
                self._execute(target_id, prompt, caller_id, context),
                timeout=self.timeout,
            )
        except PeerUnreachable:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Relay to {target_id} timed out after {self.timeout:g}s")
            raise PeerUnreachable(f"{target_id} did not answer within {self.timeout:g}s")
        except Exception as e:
            logger.warning(f"Relay to {target_id} failed: {type(e).__name__}: {e}")
            raise PeerUnreachable(f"{target_id}: {e}")

    @abstractmethod
    async def _execute(
        self,
        target_id: str,
        prompt: str,
        caller_id: str,
        context: RelayContext,
    ) -> str:
        pass

    async def close(self):
        pass


class LocalRelay(Relay):
    """Calls nodes living in the same process"""

    def __init__(self, mesh: 'Mesh', timeout: float = 10.0):
        super().__init__(timeout)
        self.mesh = mesh

    async def _execute(self, target_id, prompt, caller_id, context) -> str:
        node = self.mesh.node(target_id)
        return await node.execute(prompt, caller_id, context)


class HttpRelay(Relay):
    """
    Calls nodes through a mesh daemon's ``/terminal/{id}/execute`` route.

    The aiohttp session is created on first use and must be closed with
    ``close()``.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _execute(self, target_id, prompt, caller_id, context) -> str:
        url = f"{self.base_url}/terminal/{target_id}/execute"
        body = {"prompt": prompt, "callerId": caller_id, "context": context.to_dict()}
        async with self._client().post(url, json=body) as resp:
            payload = await resp.json(content_type=None)
        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise PeerUnreachable(f"{target_id}: {error or f'HTTP {resp.status}'}")
        return str(payload.get("data") or "")

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None
