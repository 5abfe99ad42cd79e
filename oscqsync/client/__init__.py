"""Client side of OSCQuery: mirroring a peer's namespace."""

from .synchronizer import DEFAULT_PARAMETERS_PATH, RemoteParameterSynchronizer

__all__ = ["DEFAULT_PARAMETERS_PATH", "RemoteParameterSynchronizer"]
