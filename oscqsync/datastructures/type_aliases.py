"""
Semantic type aliases for oscqsync datastructures.

This module provides meaningful type aliases that make the codebase more
self-documenting by replacing raw types like str, int, float with semantic
aliases.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

# Time types
DurationSeconds: TypeAlias = float
TtlSeconds: TypeAlias = int

# Network types
HostAddress: TypeAlias = str
PortNumber: TypeAlias = int
UrlString: TypeAlias = str

# mDNS naming types
ServiceId: TypeAlias = str  # canonical "instance._type._proto.local:port"
InstanceName: TypeAlias = str
DomainName: TypeAlias = str

# OSCQuery namespace types
OscAddress: TypeAlias = str  # full OSC path, e.g. "/avatar/parameters/VRCEmote"
NodeName: TypeAlias = str
TypeTag: TypeAlias = str  # OSC type tag string, e.g. "f", "i", "T"
ParameterValue: TypeAlias = str | int | float | bool | None
FlatParameterMap: TypeAlias = Mapping[OscAddress, ParameterValue]
ParameterUpdateCallback: TypeAlias = Callable[
    [FlatParameterMap], Awaitable[None] | None
]

# Serialization types
JsonDict: TypeAlias = dict[str, Any]
