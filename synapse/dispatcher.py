"""
Command dispatch for node sessions and relay calls.

A completed command line goes to exactly one handler, first match wins:

    @<target> <message>    relay to another node
    <builtin> [args]       local filesystem / identity command
    anything else          fallback text generator

Recoverable failures become a single ``[ERROR]`` line on the output.
StorageError is not recoverable at this level and propagates to the
node, which decides how to report it.
"""

import asyncio
import logging
import re
import time
from typing import List, Optional, Tuple, TYPE_CHECKING

from core.errors import GeneratorUnavailable, MeshError, StorageError
from core.types import ConversationTurn, Persona, ROLE_SYSTEM, ROLE_USER
from .relay import RelayContext
from .terminal import CLEAR_SCREEN, NullOutput, Output, paint

if TYPE_CHECKING:
    from .node import NodeActor

logger = logging.getLogger(__name__)

# name -> help text, in help order
BUILTINS = {
    "help": "Show this menu",
    "clear": "Clear terminal",
    "whoami": "Display identity",
    "status": "Check node diagnostics",
    "ping": "Test latency",
    "pwd": "Print working directory",
    "ls": "List files",
    "mkdir": "mkdir <name>: create a directory",
    "touch": "touch <name>: create an empty file",
    "rm": "rm <name>: remove a file or directory",
    "cat": "cat <name>: print a file",
    "cd": "cd <path>: change working directory",
    "echo": "echo <text> [> <name>]: print or write text",
}

RELAY_RE = re.compile(r"^@(\S+)\s+(\S.*)$", re.DOTALL)
REDIRECT_RE = re.compile(r"^(.*?)\s*>\s*([^\s>]+)\s*$", re.DOTALL)
DIRECTIVE_RE = re.compile(r"\[\[(.+?)\]\]", re.DOTALL)

PERSONA_VOICE = {
    Persona.CODER: "compiling a response",
    Persona.REVIEWER: "reviewing",
    Persona.SECURITY: "scanning",
    Persona.SYSTEM: "processing",
}


def split_command(line: str) -> Tuple[str, str]:
    """('cmd', 'rest of line') with cmd lowercased"""
    parts = line.strip().split(None, 1)
    if not parts:
        return "", ""
    return parts[0].lower(), parts[1].strip() if len(parts) > 1 else ""


def is_builtin(line: str) -> bool:
    return split_command(line)[0] in BUILTINS


def strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def extract_directives(text: str) -> Tuple[str, List[str]]:
    """
    Pull ``[[command]]`` directives out of generated text.

    Returns the visible text (directives removed, blank runs collapsed)
    and the directive commands in left-to-right order.
    """
    directives = [m.group(1).strip() for m in DIRECTIVE_RE.finditer(text)]
    visible = DIRECTIVE_RE.sub("", text)
    visible = re.sub(r"[ \t]+\n", "\n", visible)
    visible = re.sub(r"\n{3,}", "\n\n", visible).strip()
    return visible, [d for d in directives if d]


class Dispatcher:
    """Routes command lines for one node"""

    def __init__(self, node: 'NodeActor'):
        self.node = node

    async def dispatch(self, line: str, out: Output, context: Optional[RelayContext] = None):
        line = line.strip()
        if not line:
            return
        logger.debug(f"[{self.node.id}] dispatch {line!r}")
        try:
            if line.startswith("@"):
                await self._relay(line, out)
            elif is_builtin(line):
                await self.run_builtin(line, out)
            else:
                await self._fallback(line, out, context)
        except StorageError:
            raise
        except MeshError as e:
            await out.error(e.render())

    # ── Builtins ────────────────────────────────────────────────

    async def run_builtin(self, line: str, out: Output):
        node = self.node
        cmd, arg = split_command(line)

        if cmd == "help":
            await out.line("Available Commands:", "info")
            for name, text in BUILTINS.items():
                await out.line(f"  {name:<8} - {text}")
            await out.line(f"  {'@<node>':<8} - @<node> <message>: relay to another node")
            await out.line("  Anything else is answered by the node's agent.")

        elif cmd == "clear":
            await out.write(CLEAR_SCREEN)

        elif cmd == "whoami":
            config = node.config
            await out.line(f"{config.display_name} ({config.id})", "identity")
            await out.line(f"persona: {config.persona.value}  status: {config.status.value}")

        elif cmd == "status":
            config = node.config
            await out.line("Running diagnostics...")
            await out.tagged("OK", f"status: {config.status.value}", "ok")
            await out.tagged("OK", f"persona: {config.persona.value}", "ok")
            await out.tagged("OK", f"cwd: {config.cwd}", "ok")
            await out.tagged("OK", f"sessions attached: {len(node.sessions)} (opened: {config.sessions_opened})", "ok")
            await out.tagged("OK", f"commands run: {config.commands_run}", "ok")
            await out.tagged("OK", f"filesystem: {len(node.tree.ls())} entries", "ok")

        elif cmd == "ping":
            start = time.perf_counter()
            await asyncio.sleep(0)
            elapsed = (time.perf_counter() - start) * 1000
            await out.line(f"PONG ({elapsed:.2f}ms)")

        elif cmd == "pwd":
            await out.line(node.config.cwd)

        elif cmd == "ls":
            entries = node.tree.ls()
            if not entries:
                await out.line("(empty)")
                return
            names = [
                paint(e.name + "/", "dir", out.color) if e.is_dir else e.name
                for e in entries
            ]
            await out.line("  ".join(names))

        elif cmd == "mkdir":
            try:
                await node.change_tree(lambda tree: tree.mkdir(arg))
            except FileExistsError:
                await out.error(f"mkdir: cannot create '{arg}': already exists")
                return
            await out.tagged("OK", f"created directory {arg}/", "ok")

        elif cmd == "touch":
            existed = node.tree.get(arg) is not None if arg else False
            await node.change_tree(lambda tree: tree.touch(arg))
            await out.tagged("OK", f"{'touched' if existed else 'created file'} {arg}", "ok")

        elif cmd == "rm":
            try:
                removed = await node.change_tree(lambda tree: tree.rm(arg))
            except FileNotFoundError:
                await out.error(f"rm: {arg}: no such file or directory")
                return
            suffix = "/" if removed.is_dir else ""
            await out.tagged("OK", f"removed {arg}{suffix}", "ok")

        elif cmd == "cat":
            try:
                content = node.tree.cat(arg)
            except IsADirectoryError:
                await out.error(f"cat: {arg}: is a directory")
                return
            except FileNotFoundError:
                await out.error(f"cat: {arg}: no such file")
                return
            for text in content.splitlines():
                await out.line(text)

        elif cmd == "cd":
            await node.change_directory(arg or "/")

        elif cmd == "echo":
            match = REDIRECT_RE.match(arg)
            if match is None:
                await out.line(strip_quotes(arg))
                return
            text, name = strip_quotes(match.group(1)), match.group(2)
            try:
                await node.change_tree(lambda tree: tree.write(name, text))
            except IsADirectoryError:
                await out.error(f"echo: {name}: is a directory")

    # ── Relay ───────────────────────────────────────────────────

    async def _relay(self, line: str, out: Output):
        node = self.node
        match = RELAY_RE.match(line)
        if match is None:
            await out.error("relay syntax: @<target> <message>")
            return
        target, message = match.group(1), match.group(2).strip()

        entry = await node.registry.resolve(target)
        if entry.id == node.id:
            await out.error("relay: cannot relay to self")
            return

        context = RelayContext(
            caller_id=node.id,
            cwd=node.config.cwd,
            fs_summary=node.tree.summary(),
            history=node.recent_history(),
        )
        await out.tagged("RELAY", f"contacting {entry.display_name} ({entry.id})...", "relay")
        response = await node.relay.call(entry.id, message, node.id, context)

        await out.line(f"--- response from {target} ---", "relay")
        for text in response.splitlines():
            await out.line(text)
        await out.line("--- end of response ---", "relay")
        node.remember(line, response)

    # ── Fallback ────────────────────────────────────────────────

    def _system_prompt(self, context: Optional[RelayContext]) -> str:
        config = self.node.config
        tree = self.node.tree
        parts = [
            config.system_prompt,
            f"You are {config.display_name} (id {config.id}), a {config.persona.value} node "
            f"in a mesh of terminal agents.",
            f"Current working directory: {config.cwd}",
            f"Top-level files: {tree.summary()}",
            "To change your local filesystem, put directives of the form [[<command>]] "
            "in your reply, using these commands: mkdir <name>, touch <name>, rm <name>, "
            "cd <path>, echo <text> > <name>. Directives are executed and removed "
            "before your reply is shown.",
            "Replies are printed in a terminal: keep them short and plain.",
        ]
        if context is not None:
            parts.append(
                f"This request was relayed from node {context.caller_id} "
                f"(its cwd: {context.cwd}; its files: {context.fs_summary or 'unknown'})."
            )
        return "\n".join(p for p in parts if p)

    async def _fallback(self, line: str, out: Output, context: Optional[RelayContext]):
        node = self.node
        if node.generator is None:
            raise GeneratorUnavailable("no text generator configured")

        if context is not None:
            history = context.history[-node.history_limit:] if node.history_limit else []
        else:
            history = node.recent_history()
        turns = [ConversationTurn(ROLE_SYSTEM, self._system_prompt(context))]
        turns.extend(history)
        turns.append(ConversationTurn(ROLE_USER, line))

        if context is None:
            voice = PERSONA_VOICE.get(node.config.persona, "processing")
            await out.line(f"{voice}...", "info")
        reply = await node.generator.generate(turns)

        visible, directives = extract_directives(reply)
        silent = NullOutput()
        for directive in directives:
            if not is_builtin(directive):
                logger.info(f"[{node.id}] ignoring non-builtin directive {directive!r}")
                continue
            try:
                await self.run_builtin(directive, silent)
            except StorageError:
                raise
            except MeshError as e:
                logger.info(f"[{node.id}] directive {directive!r} failed: {e.render()}")

        if context is None:
            node.remember(line, reply)

        lines = visible.splitlines() or [""]
        await out.tagged("AGENT", lines[0], "agent")
        for text in lines[1:]:
            await out.line(text)
