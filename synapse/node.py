"""
Node actor: one per identity.

A NodeActor owns its config, filesystem tree, conversation history and
the set of live sessions attached to it. Everything that reads or
changes that state runs under the node's lock, one operation at a time.
Other nodes reach it only through ``execute()`` (the relay entry point).

Persisted keys in the node's store:
    config   ActorConfig.to_dict()
    fs       FileTree.to_dict()
"""

import asyncio
import itertools
import logging
import posixpath
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from core.errors import MeshError, StorageError
from core.files import FileTree
from core.store import KeyValueStore
from core.types import (
    ActorConfig, ConversationTurn, RegistryEntry,
    ROLE_USER, ROLE_ASSISTANT,
)
from llmgen.generator import TextGenerator
from .dispatcher import Dispatcher
from .protocol import LineEditor, NEWLINE
from .registry import MeshRegistry
from .relay import Relay, RelayContext
from .terminal import BufferOutput, CallbackOutput, Output, paint

logger = logging.getLogger(__name__)

CONFIG_KEY = "config"
FS_KEY = "fs"

T = TypeVar("T")


class Session:
    """
    A live terminal connection attached to a node.

    Sends after close (or after the transport failed) are dropped, so a
    command that outlives its session finishes without error.
    """

    _ids = itertools.count(1)

    def __init__(self, send: Callable[[str], Awaitable[None]]):
        self.id = next(Session._ids)
        self.editor = LineEditor()
        self.closed = False
        self._send = send
        self.output = CallbackOutput(self.send)

    async def send(self, text: str):
        if self.closed or not text:
            return
        try:
            await self._send(text)
        except ConnectionError as e:
            logger.debug(f"Session {self.id} send failed: {e}")
            self.closed = True

    def __repr__(self):
        return f"<Session {self.id}{' closed' if self.closed else ''}>"


class NodeActor:
    """Serialized owner of one identity's state"""

    def __init__(
        self,
        identity: str,
        store: KeyValueStore,
        registry: MeshRegistry,
        relay: Relay,
        generator: Optional[TextGenerator] = None,
        history_limit: int = 20,
    ):
        self.id = identity
        self.store = store
        self.registry = registry
        self.relay = relay
        self.generator = generator
        self.history_limit = history_limit

        self.config: Optional[ActorConfig] = None
        self.tree: Optional[FileTree] = None
        self.sessions: Set[Session] = set()
        self.history: List[ConversationTurn] = []

        self.dispatcher = Dispatcher(self)
        self._lock = asyncio.Lock()

    @property
    def hydrated(self) -> bool:
        return self.config is not None

    # ── State (lock held) ───────────────────────────────────────

    async def _ensure_config(self) -> ActorConfig:
        """Load config and tree once; create and persist defaults if new"""
        if self.config is not None:
            return self.config

        data = await self.store.get(CONFIG_KEY)
        fs_data = await self.store.get(FS_KEY)
        created = data is None
        try:
            config = ActorConfig.defaults(self.id) if created else ActorConfig.from_dict(data)
            tree = FileTree.seeded(self.id) if fs_data is None else FileTree.from_dict(fs_data)
        except (MeshError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"stored state for {self.id} is corrupt: {e}")

        listed = await self._registered_entry() if created else None
        if listed is not None:
            # Registered ahead of first contact: adopt that name and persona
            config = ActorConfig(
                id=self.id,
                display_name=listed.display_name,
                persona=listed.persona,
            )

        if created:
            await self.store.put(CONFIG_KEY, config.to_dict())
        if fs_data is None:
            await self.store.put(FS_KEY, tree.to_dict())

        self.config, self.tree = config, tree
        logger.info(f"Node {self.id} {'created' if created else 'hydrated'}")
        if created and listed is None:
            await self._announce()
        return config

    def drop_cache(self):
        """Forget hydrated state; the next operation reloads from the store"""
        self.config = None
        self.tree = None

    async def _save_config(self, config: ActorConfig) -> ActorConfig:
        # Cache only changes after the write succeeded
        await self.store.put(CONFIG_KEY, config.to_dict())
        self.config = config
        return config

    async def change_tree(self, mutate: Callable[[FileTree], T]) -> T:
        """Apply ``mutate`` to a copy of the tree, persist it, then swap it in"""
        draft = FileTree.from_dict(self.tree.to_dict())
        result = mutate(draft)
        await self.store.put(FS_KEY, draft.to_dict())
        self.tree = draft
        return result

    async def change_directory(self, path: str) -> str:
        """cd semantics: '/' resets, '..' pops, other segments append"""
        target = posixpath.normpath(posixpath.join(self.config.cwd, path))
        if target.startswith("//"):
            target = "/" + target.lstrip("/")
        await self._save_config(replace(self.config, cwd=target))
        return target

    async def _registered_entry(self) -> Optional[RegistryEntry]:
        try:
            return await self.registry.get(self.id)
        except MeshError as e:
            logger.warning(f"Node {self.id} could not read the mesh registry: {e}")
            return None

    async def _announce(self):
        entry = RegistryEntry(
            id=self.id,
            display_name=self.config.display_name,
            persona=self.config.persona,
        )
        try:
            await self.registry.register(entry)
        except MeshError as e:
            logger.warning(f"Node {self.id} could not register with the mesh: {e}")

    def remember(self, user: str, assistant: str):
        self.history.append(ConversationTurn(ROLE_USER, user))
        self.history.append(ConversationTurn(ROLE_ASSISTANT, assistant))
        if self.history_limit and len(self.history) > self.history_limit:
            del self.history[:len(self.history) - self.history_limit]

    def recent_history(self) -> List[ConversationTurn]:
        if not self.history_limit:
            return []
        return list(self.history[-self.history_limit:])

    async def _run_line(self, line: str, out: Output, context: RelayContext = None):
        await self._ensure_config()
        await self.dispatcher.dispatch(line, out, context)
        await self._save_config(replace(
            self.config,
            commands_run=self.config.commands_run + 1,
            last_active=time.time(),
        ))

    # ── Output ──────────────────────────────────────────────────

    def prompt(self) -> str:
        return paint(f"{self.id}:{self.config.cwd}$", "prompt") + " "

    async def _boot(self, session: Session):
        config = self.config
        out = session.output
        await out.write(NEWLINE)
        await out.tagged("SYSTEM", f"Synapse node {config.display_name} ({config.id}) initialized.", "system")
        await out.tagged("SYSTEM", f"persona: {config.persona.value}  status: {config.status.value}", "system")
        await out.tagged("SYSTEM", f"filesystem: {self.tree.summary()}", "system")
        await out.tagged("SYSTEM", f"sessions attached: {len(self.sessions)}", "system")
        await out.tagged("SYSTEM", "Type 'help' for commands.", "system")

    async def _broadcast(self, tag: str, text: str, style: str):
        """Notice plus fresh prompt to every session, keeping partial input"""
        for session in list(self.sessions):
            await session.send(NEWLINE)
            await session.output.tagged(tag, text, style)
            await session.send(self.prompt() + session.editor.buffer)

    # ── Public operations ───────────────────────────────────────

    async def open_session(self, send: Callable[[str], Awaitable[None]]) -> Session:
        session = Session(send)
        async with self._lock:
            config = await self._ensure_config()
            await self._save_config(replace(
                config,
                sessions_opened=config.sessions_opened + 1,
                last_active=time.time(),
            ))
            self.sessions.add(session)
            await self._boot(session)
            await session.send(self.prompt())
        logger.info(f"Node {self.id}: session {session.id} opened ({len(self.sessions)} attached)")
        return session

    async def on_session_data(self, session: Session, chunk: str):
        for step in session.editor.feed(chunk):
            await session.send(step.echo)
            if not step.submitted:
                continue
            async with self._lock:
                if step.line:
                    try:
                        await self._run_line(step.line, session.output)
                    except StorageError as e:
                        logger.error(f"Node {self.id}: {e}")
                        await session.output.error(e.render())
                if self.config is not None:
                    await session.send(self.prompt())

    def on_session_close(self, session: Session):
        session.closed = True
        self.sessions.discard(session)
        logger.info(f"Node {self.id}: session {session.id} closed ({len(self.sessions)} attached)")

    async def get_config(self) -> ActorConfig:
        async with self._lock:
            return replace(await self._ensure_config())

    async def update_config(self, patch: Dict[str, Any]) -> ActorConfig:
        async with self._lock:
            current = await self._ensure_config()
            updated = current.merged(patch)
            updated.last_active = time.time()
            await self._save_config(updated)

            if (updated.display_name, updated.persona) != (current.display_name, current.persona):
                await self._announce()

            changed = ", ".join(sorted(
                key for key, attr in ActorConfig.PATCHABLE.items()
                if getattr(updated, attr) != getattr(current, attr)
            )) or "nothing"
            await self._broadcast("SYSTEM", f"configuration updated ({changed})", "system")
            logger.info(f"Node {self.id}: config updated ({changed})")
            return replace(updated)

    async def execute(self, prompt: str, caller_id: str, context: Any = None) -> str:
        """
        Relay entry point: run ``prompt`` as if typed here, return plain text.

        ``context`` is a RelayContext or its wire dict. Local sessions see
        start and end markers around the call.
        """
        if not isinstance(context, RelayContext):
            context = RelayContext.from_dict(caller_id, context)

        out = BufferOutput()
        async with self._lock:
            await self._ensure_config()
            await self._broadcast("RELAY", f"{caller_id} -> {self.id}: {prompt.strip()}", "relay")
            try:
                await self._run_line(prompt, out, context)
            finally:
                await self._broadcast("RELAY", f"done ({caller_id})", "relay")
        return out.text()
