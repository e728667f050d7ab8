"""
Core types for mesh nodes: config records, filesystem entries,
registry entries and conversation turns.

Every record has a JSON wire form (camelCase keys, as the web client
expects) produced by ``to_dict()`` and read back by ``from_dict()``.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional
import posixpath
import time

from .errors import InvalidConfig

# VNode kinds
FILE = "file"
DIR = "dir"

ROOT_NAME = "/"

# Conversation roles
ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


class Persona(str, Enum):
    """Role tag shaping cosmetic output and generator framing"""
    CODER = "coder"
    REVIEWER = "reviewer"
    SECURITY = "security"
    SYSTEM = "system"


class NodeStatus(str, Enum):
    """Lifecycle status reported by a node"""
    ONLINE = "online"
    OFFLINE = "offline"
    CONNECTING = "connecting"
    ERROR = "error"
    SYNCING = "syncing"
    PROCESSING = "processing"


DEFAULT_PROMPTS = {
    Persona.CODER: "You are a coding agent. Answer with working code and short explanations.",
    Persona.REVIEWER: "You are a code reviewer. Point out defects, risks and style problems.",
    Persona.SECURITY: "You are a security analyst. Look for vulnerabilities and unsafe patterns.",
    Persona.SYSTEM: "You are a terminal node in an agent mesh. Be brief and precise.",
}


def parse_persona(value: Any) -> Persona:
    """Coerce a wire value to Persona, rejecting anything unknown"""
    try:
        return Persona(value)
    except ValueError:
        raise InvalidConfig(
            f"persona must be one of {[p.value for p in Persona]}, got {value!r}"
        )


def parse_status(value: Any) -> NodeStatus:
    """Coerce a wire value to NodeStatus, rejecting anything unknown"""
    try:
        return NodeStatus(value)
    except ValueError:
        raise InvalidConfig(
            f"status must be one of {[s.value for s in NodeStatus]}, got {value!r}"
        )


def normalize_cwd(value: Any) -> str:
    """Return a well-formed absolute path or raise InvalidConfig"""
    if not isinstance(value, str) or not value.startswith("/"):
        raise InvalidConfig(f"cwd must be an absolute path, got {value!r}")
    path = posixpath.normpath(value)
    # normpath keeps a leading '//' (POSIX allows it); collapse it
    if path.startswith("//"):
        path = "/" + path.lstrip("/")
    return path


def display_name_for(identity: str) -> str:
    """Generated display name for a fresh node"""
    return f"node-{identity}"


@dataclass
class ActorConfig:
    """
    Per-node configuration record.

    ``sessions_opened`` and ``commands_run`` are node-local counters
    persisted alongside the config; they are server-managed and cannot
    be patched.
    """
    id: str
    display_name: str = ""
    persona: Persona = Persona.SYSTEM
    system_prompt: str = ""
    status: NodeStatus = NodeStatus.ONLINE
    cwd: str = ROOT_NAME
    last_active: float = field(default_factory=time.time)
    sessions_opened: int = 0
    commands_run: int = 0

    # wire key -> attribute name for patchable fields
    PATCHABLE = {
        "displayName": "display_name",
        "persona": "persona",
        "systemPrompt": "system_prompt",
        "status": "status",
        "cwd": "cwd",
    }
    # echoed back by GET; ignored on update
    SERVER_MANAGED = ("lastActive", "sessionsOpened", "commandsRun")

    def __post_init__(self):
        if not self.display_name:
            self.display_name = display_name_for(self.id)
        if not self.system_prompt:
            self.system_prompt = DEFAULT_PROMPTS[Persona(self.persona)]

    @classmethod
    def defaults(cls, identity: str) -> 'ActorConfig':
        """Config for a never-before-seen identity"""
        return cls(id=identity)

    def merged(self, patch: Dict[str, Any]) -> 'ActorConfig':
        """
        Return a validated copy with ``patch`` applied.

        The receiver is never modified, so a rejected patch leaves the
        cached config untouched.
        """
        if not isinstance(patch, dict):
            raise InvalidConfig("config patch must be an object")

        changes: Dict[str, Any] = {}
        for key, value in patch.items():
            if key == "id":
                if value != self.id:
                    raise InvalidConfig("id cannot be changed")
                continue
            if key in self.SERVER_MANAGED:
                continue
            attr = self.PATCHABLE.get(key)
            if attr is None:
                raise InvalidConfig(f"unknown or read-only field: {key}")

            if attr == "persona":
                changes[attr] = parse_persona(value)
            elif attr == "status":
                changes[attr] = parse_status(value)
            elif attr == "cwd":
                changes[attr] = normalize_cwd(value)
            else:
                if not isinstance(value, str):
                    raise InvalidConfig(f"{key} must be a string")
                if attr == "display_name" and not value.strip():
                    raise InvalidConfig("displayName cannot be empty")
                changes[attr] = value

        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "persona": Persona(self.persona).value,
            "systemPrompt": self.system_prompt,
            "status": NodeStatus(self.status).value,
            "cwd": self.cwd,
            "lastActive": self.last_active,
            "sessionsOpened": self.sessions_opened,
            "commandsRun": self.commands_run,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActorConfig':
        return cls(
            id=data["id"],
            display_name=data.get("displayName", ""),
            persona=parse_persona(data.get("persona", Persona.SYSTEM.value)),
            system_prompt=data.get("systemPrompt", ""),
            status=parse_status(data.get("status", NodeStatus.ONLINE.value)),
            cwd=normalize_cwd(data.get("cwd", ROOT_NAME)),
            last_active=float(data.get("lastActive", time.time())),
            sessions_opened=int(data.get("sessionsOpened", 0)),
            commands_run=int(data.get("commandsRun", 0)),
        )


@dataclass
class VNode:
    """
    A virtual filesystem entry.

    Files carry ``content`` and no children; directories carry an
    ordered ``children`` list that is never None.
    """
    name: str
    kind: str = DIR
    content: Optional[str] = None
    children: Optional[List['VNode']] = None

    def __post_init__(self):
        if self.kind == DIR:
            self.content = None
            if self.children is None:
                self.children = []
        elif self.kind == FILE:
            self.children = None
            if self.content is None:
                self.content = ""
        else:
            raise ValueError(f"Unknown node kind: {self.kind}")

    @property
    def is_dir(self) -> bool:
        return self.kind == DIR

    def get(self, name: str) -> Optional['VNode']:
        """First child with the given name"""
        if not self.is_dir:
            return None
        for child in self.children:
            if child.name == name:
                return child
        return None

    def to_dict(self) -> Dict[str, Any]:
        if self.is_dir:
            return {
                "name": self.name,
                "type": DIR,
                "children": [child.to_dict() for child in self.children],
            }
        return {"name": self.name, "type": FILE, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VNode':
        kind = data.get("type", DIR)
        if kind == DIR:
            return cls(
                name=data["name"],
                kind=DIR,
                children=[cls.from_dict(c) for c in data.get("children") or []],
            )
        return cls(name=data["name"], kind=FILE, content=data.get("content") or "")


@dataclass
class ConversationTurn:
    """One message of generator context"""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationTurn':
        role = data.get("role")
        if role not in (ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT):
            raise ValueError(f"Unknown role: {role!r}")
        return cls(role=role, content=str(data.get("content", "")))


@dataclass
class RegistryEntry:
    """A node's row in the mesh registry"""
    id: str
    display_name: str = ""
    persona: Persona = Persona.SYSTEM
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.display_name:
            self.display_name = display_name_for(self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "persona": Persona(self.persona).value,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RegistryEntry':
        """Build an entry from wire data; ``createdAt`` is optional"""
        if not isinstance(data, dict):
            raise InvalidConfig("registry entry must be an object")
        identity = data.get("id")
        if not isinstance(identity, str) or not identity:
            raise InvalidConfig("registry entry needs a non-empty string id")
        display_name = data.get("displayName") or ""
        if not isinstance(display_name, str):
            raise InvalidConfig("displayName must be a string")
        entry = cls(
            id=identity,
            display_name=display_name,
            persona=parse_persona(data.get("persona", Persona.SYSTEM.value)),
        )
        if "createdAt" in data:
            entry.created_at = float(data["createdAt"])
        return entry
