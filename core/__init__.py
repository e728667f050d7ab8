# Core data model, virtual filesystem and storage for mesh nodes
from .errors import (
    MeshError,
    InvalidConfig,
    StorageError,
    PeerNotFound,
    PeerUnreachable,
    GeneratorUnavailable,
    GeneratorFailure,
    BuiltinUsageError,
)
from .types import (
    ActorConfig,
    ConversationTurn,
    NodeStatus,
    Persona,
    RegistryEntry,
    VNode,
    DIR,
    FILE,
)
from .files import FileTree
from .store import KeyValueStore, MemoryStore, JsonFileStore, memory_backend, file_backend

__all__ = [
    'MeshError',
    'InvalidConfig',
    'StorageError',
    'PeerNotFound',
    'PeerUnreachable',
    'GeneratorUnavailable',
    'GeneratorFailure',
    'BuiltinUsageError',
    'ActorConfig',
    'ConversationTurn',
    'NodeStatus',
    'Persona',
    'RegistryEntry',
    'VNode',
    'DIR',
    'FILE',
    'FileTree',
    'KeyValueStore',
    'MemoryStore',
    'JsonFileStore',
    'memory_backend',
    'file_backend',
]
