"""
Virtual filesystem for mesh nodes.

Each node owns one small tree rooted at "/". The tree lives in memory
and is persisted as a whole (``to_dict()``) by the owning node after
every mutation. Builtins only operate on the root's immediate children.
"""

import json
from typing import Any, Dict, List, Optional

from .errors import BuiltinUsageError
from .types import VNode, DIR, FILE, ROOT_NAME

LOG_DIR = "logs"
MANIFEST = "manifest.json"


def check_name(name: Optional[str], command: str) -> str:
    """Validate a child name for a builtin, raising BuiltinUsageError"""
    if not name:
        raise BuiltinUsageError(f"{command} <name>")
    if name in (".", "..") or "/" in name:
        raise BuiltinUsageError(f"{command}: invalid name '{name}'")
    return name


class FileTree:
    """
    A node's filesystem tree.

    Sibling names are unique: ``mkdir`` refuses an existing name,
    ``touch`` on an existing name is a no-op and ``write`` overwrites
    an existing file in place.
    """

    def __init__(self, root: VNode = None):
        self.root = root or VNode(ROOT_NAME, DIR)
        if not self.root.is_dir:
            raise ValueError("Filesystem root must be a directory")

    @classmethod
    def seeded(cls, identity: str) -> 'FileTree':
        """Default layout for a fresh node: logs/ and manifest.json"""
        tree = cls()
        tree.mkdir(LOG_DIR)
        manifest = {"node": identity, "version": 1, "entries": [LOG_DIR]}
        tree.write(MANIFEST, json.dumps(manifest, indent=2))
        return tree

    def ls(self) -> List[VNode]:
        """Immediate children of root, in insertion order"""
        return list(self.root.children)

    def get(self, name: str) -> Optional[VNode]:
        return self.root.get(name)

    def mkdir(self, name: str) -> VNode:
        name = check_name(name, "mkdir")
        if self.root.get(name) is not None:
            raise FileExistsError(name)
        node = VNode(name, DIR)
        self.root.children.append(node)
        return node

    def touch(self, name: str) -> VNode:
        name = check_name(name, "touch")
        existing = self.root.get(name)
        if existing is not None:
            return existing
        node = VNode(name, FILE)
        self.root.children.append(node)
        return node

    def rm(self, name: str) -> VNode:
        name = check_name(name, "rm")
        for i, child in enumerate(self.root.children):
            if child.name == name:
                return self.root.children.pop(i)
        raise FileNotFoundError(name)

    def cat(self, name: str) -> str:
        name = check_name(name, "cat")
        node = self.root.get(name)
        if node is None:
            raise FileNotFoundError(name)
        if node.is_dir:
            raise IsADirectoryError(name)
        return node.content

    def write(self, name: str, content: str) -> VNode:
        """Write or overwrite a file, creating it if absent"""
        name = check_name(name, "echo")
        node = self.root.get(name)
        if node is None:
            node = VNode(name, FILE, content=content)
            self.root.children.append(node)
        elif node.is_dir:
            raise IsADirectoryError(name)
        else:
            node.content = content
        return node

    def summary(self) -> str:
        """Comma-separated top-level entries, dirs marked with '/'"""
        names = [c.name + "/" if c.is_dir else c.name for c in self.root.children]
        return ", ".join(names) if names else "(empty)"

    def to_dict(self) -> Dict[str, Any]:
        return self.root.to_dict()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileTree':
        return cls(VNode.from_dict(data))
