"""
Terminal line discipline for node sessions.

The client sends raw keystrokes; the node does its own local echo and
line editing. Each session owns one LineEditor:

    IDLE  --char-->  ACCUMULATING  --\\r-->  IDLE (line submitted)
                     ACCUMULATING  --DEL--> ACCUMULATING | IDLE

There are no timers; state only changes on input.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

CR = "\r"
DEL = "\x7f"

NEWLINE = "\r\n"
ERASE = "\b \b"    # left, blank, left


class EditorState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


@dataclass
class Step:
    """
    One unit of editor output, in order.

    ``echo`` is written back to the session first. ``line`` is None
    while the user is still typing; after a carriage return it holds
    the trimmed command ("" for an empty line, which only earns a
    fresh prompt).
    """
    echo: str = ""
    line: Optional[str] = None

    @property
    def submitted(self) -> bool:
        return self.line is not None


class LineEditor:
    """
    Per-session input accumulator.

    Chunks are processed character by character. A chunk holding one
    keystroke (the usual case) behaves exactly like a single transition;
    a pasted chunk containing carriage returns yields one submitted step
    per line so output interleaves the way it would when typed.
    """

    def __init__(self):
        self.buffer = ""

    @property
    def state(self) -> EditorState:
        return EditorState.ACCUMULATING if self.buffer else EditorState.IDLE

    def feed(self, chunk: str) -> List[Step]:
        steps: List[Step] = []
        echo: List[str] = []
        for ch in chunk:
            if ch == CR:
                line = self.buffer.strip()
                self.buffer = ""
                echo.append(NEWLINE)
                steps.append(Step("".join(echo), line))
                echo = []
            elif ch == DEL:
                if self.buffer:
                    self.buffer = self.buffer[:-1]
                    echo.append(ERASE)
            else:
                self.buffer += ch
                echo.append(ch)
        if echo:
            steps.append(Step("".join(echo)))
        return steps
