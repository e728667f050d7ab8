"""
Error taxonomy for the mesh.

Every recoverable failure a node can hit maps to one of these classes.
The dispatcher renders them as a single ``[ERROR] <label>: <detail>``
line; the HTTP layer puts ``str(error)`` in the envelope.
"""


class MeshError(Exception):
    """Base class for all mesh errors"""

    label = "error"

    def render(self) -> str:
        """One-line, user-visible form of the error"""
        detail = str(self)
        return f"{self.label}: {detail}" if detail else self.label


class InvalidConfig(MeshError):
    """A config patch or registry entry carried a rejected value"""
    label = "invalid config"


class StorageError(MeshError):
    """Persisted-store read or write failed"""
    label = "storage error"


class PeerNotFound(MeshError):
    """Relay target is not in the mesh registry"""
    label = "peer not found"


class PeerUnreachable(MeshError):
    """Relay round-trip to a known peer failed"""
    label = "peer unreachable"


class GeneratorUnavailable(MeshError):
    """No text-generation backend is configured or it failed to start"""
    label = "generator unavailable"


class GeneratorFailure(MeshError):
    """The text-generation backend raised or timed out"""
    label = "generator failure"


class BuiltinUsageError(MeshError):
    """A builtin was called without a required argument"""
    label = "usage"
