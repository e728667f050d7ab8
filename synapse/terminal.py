"""
Output sinks for command results.

Commands write through an ``Output``. Live sessions get ANSI-colored
text with CRLF line endings; relay calls collect plain text in a
``BufferOutput``; silent directives write into a ``NullOutput``.
"""

import re
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from .protocol import NEWLINE

STYLES = {
    "system": "33",     # yellow
    "agent": "33",
    "ok": "32",         # green
    "prompt": "32",
    "error": "31",      # red
    "info": "36",       # cyan
    "dir": "34",        # blue
    "identity": "35",   # magenta
    "relay": "35",
}

CLEAR_SCREEN = "\x1b[2J\x1b[H"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")


def paint(text: str, style: Optional[str], color: bool = True) -> str:
    if not color or not style or style not in STYLES:
        return text
    return f"\x1b[{STYLES[style]}m{text}\x1b[0m"


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


class Output(ABC):
    """Where a command's output goes"""

    color = False

    @abstractmethod
    async def write(self, text: str):
        pass

    async def line(self, text: str = "", style: str = None):
        await self.write(paint(text, style, self.color) + NEWLINE)

    async def tagged(self, tag: str, text: str, style: str):
        """A line like ``[TAG] text`` with only the tag colored"""
        await self.line(f"{paint(f'[{tag}]', style, self.color)} {text}")

    async def error(self, text: str):
        await self.tagged("ERROR", text, "error")


class CallbackOutput(Output):
    """Writes straight to a session's send coroutine"""

    color = True

    def __init__(self, send: Callable[[str], Awaitable[None]]):
        self._send = send

    async def write(self, text: str):
        await self._send(text)


class BufferOutput(Output):
    """Collects plain text, for relay responses"""

    def __init__(self):
        self._parts: List[str] = []

    async def write(self, text: str):
        if text == CLEAR_SCREEN:
            return
        self._parts.append(strip_ansi(text))

    def text(self) -> str:
        return "".join(self._parts).replace(NEWLINE, "\n").rstrip("\n")


class NullOutput(Output):
    """Discards everything (silent directives)"""

    async def write(self, text: str):
        pass
