"""
meshd — Synapse mesh daemon

Serves every node of a mesh over one aiohttp application: JSON routes
for the registry and node config, a relay route, and one WebSocket
terminal per session.

Usage:
    python -m meshd --port 8787 --provider claude
    python -m meshd.attach alice --url ws://127.0.0.1:8787
"""

from .config import DaemonConfig
from .server import create_app

__all__ = ['DaemonConfig', 'create_app']
