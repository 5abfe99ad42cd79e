"""
oscqsync - OSCQuery discovery and parameter synchronization

Advertises a local OSCQuery service over multicast DNS, discovers peers that
advertise the same protocol, and mirrors a peer's parameter namespace as a
flat ``{osc_address: value}`` mapping.

## Quick Start

```python
from oscqsync import OSCQueryServer, OSCQuerySettings

def on_parameters(parameters):
    print(f"{len(parameters)} parameters")

settings = OSCQuerySettings(service_name="MyTool", osc_port=9001)
async with OSCQueryServer(settings, on_parameters_updated=on_parameters) as server:
    ...
    await server.refresh_parameters()
```
"""

from .client import RemoteParameterSynchronizer
from .config import OSCQuerySettings
from .core import (
    HostInfo,
    OSCQueryError,
    OSCQueryHttpServer,
    PeerEndpoint,
    ServiceRecord,
    ServiceRegistry,
    ServiceType,
    StartupError,
)
from .core.logging import configure_logging
from .datastructures import (
    ParameterAccess,
    ParameterBranch,
    ParameterLeaf,
    ParameterNode,
    flatten_parameters,
    parse_parameter_tree,
)
from .server import OSCQueryServer

__version__ = "0.1.0"

__all__ = [
    "HostInfo",
    "OSCQueryError",
    "OSCQueryHttpServer",
    "OSCQueryServer",
    "OSCQuerySettings",
    "ParameterAccess",
    "ParameterBranch",
    "ParameterLeaf",
    "ParameterNode",
    "PeerEndpoint",
    "RemoteParameterSynchronizer",
    "ServiceRecord",
    "ServiceRegistry",
    "ServiceType",
    "StartupError",
    "configure_logging",
    "flatten_parameters",
    "parse_parameter_tree",
]
