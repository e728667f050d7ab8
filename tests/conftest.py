import asyncio
from typing import List, Optional

import pytest

from core.errors import StorageError
from core.store import MemoryStore
from core.types import ConversationTurn
from llmgen.generator import TextGenerator
from synapse.mesh import Mesh
from synapse.relay import Relay
from synapse.terminal import strip_ansi


class FakeGenerator(TextGenerator):
    """Scripted generator that records every conversation it is given"""

    def __init__(self, replies: Optional[List[str]] = None, error: Exception = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[List[ConversationTurn]] = []

    async def generate(self, turns: List[ConversationTurn]) -> str:
        self.calls.append(list(turns))
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return "ok"


class FlakyStore(MemoryStore):
    """MemoryStore whose reads or writes can be switched to fail"""

    def __init__(self):
        super().__init__()
        self.fail_gets = False
        self.fail_puts = False
        self.gets: List[str] = []

    async def get(self, key):
        self.gets.append(key)
        if self.fail_gets:
            raise StorageError(f"cannot read {key}")
        return await super().get(key)

    async def put(self, key, value):
        if self.fail_puts:
            raise StorageError(f"cannot write {key}")
        await super().put(key, value)


class FlakyBackend:
    """Store factory handing out one FlakyStore per namespace"""

    def __init__(self):
        self.stores = {}

    def __call__(self, namespace: str) -> FlakyStore:
        if namespace not in self.stores:
            self.stores[namespace] = FlakyStore()
        return self.stores[namespace]

    def node(self, identity: str) -> FlakyStore:
        return self(f"node:{identity}")


class RecordingRelay(Relay):
    """Relay that records calls and answers with a fixed reply or error"""

    def __init__(self, reply: str = "pong", error: Exception = None, delay: float = 0.0, timeout: float = 10.0):
        super().__init__(timeout)
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def _execute(self, target_id, prompt, caller_id, context):
        self.calls.append((target_id, prompt, caller_id, context))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class Terminal:
    """Stands in for a WebSocket: collects everything a session is sent"""

    def __init__(self):
        self.chunks: List[str] = []

    async def send(self, text: str):
        self.chunks.append(text)

    @property
    def raw(self) -> str:
        return "".join(self.chunks)

    @property
    def text(self) -> str:
        return strip_ansi(self.raw)

    def clear(self):
        self.chunks.clear()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def backend():
    return FlakyBackend()


@pytest.fixture
def mesh(generator, backend):
    return Mesh(store_factory=backend, generator=generator)


async def attach(node):
    """Open a session on ``node`` and return (terminal, session)"""
    term = Terminal()
    session = await node.open_session(term.send)
    return term, session


async def type_line(node, session, term, line):
    """Submit ``line`` on a session and return what came back, ANSI stripped"""
    term.clear()
    await node.on_session_data(session, line + "\r")
    return term.text
