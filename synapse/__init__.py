# Synapse: per-identity terminal node actors
from .protocol import LineEditor, EditorState, Step
from .dispatcher import Dispatcher, BUILTINS, extract_directives
from .registry import MeshRegistry, REGISTRY_ID
from .relay import Relay, LocalRelay, HttpRelay, RelayContext
from .node import NodeActor, Session
from .mesh import Mesh

__all__ = [
    'LineEditor',
    'EditorState',
    'Step',
    'Dispatcher',
    'BUILTINS',
    'extract_directives',
    'MeshRegistry',
    'REGISTRY_ID',
    'Relay',
    'LocalRelay',
    'HttpRelay',
    'RelayContext',
    'NodeActor',
    'Session',
    'Mesh',
]
