"""
oscqsync core module.

Shared value types, the service registry, the HTTP query server and logging
configuration.
"""

from .model import (
    HostInfo,
    HostInfoExtensions,
    OSCQueryError,
    PeerEndpoint,
    ServiceRecord,
    ServiceType,
    StartupError,
    make_service_id,
)
from .query_http import OSCQueryHttpServer
from .service_registry import ServiceRegistry

__all__ = [
    "HostInfo",
    "HostInfoExtensions",
    "OSCQueryError",
    "OSCQueryHttpServer",
    "PeerEndpoint",
    "ServiceRecord",
    "ServiceRegistry",
    "ServiceType",
    "StartupError",
    "make_service_id",
]
