"""Multicast DNS advertisement and discovery for OSCQuery."""

from .advertiser import ServiceAdvertiser, ServiceProfile
from .discovery import ServiceDiscovery
from .multicast import MDNS_GROUP, MDNS_PORT, MulticastDnsService

__all__ = [
    "MDNS_GROUP",
    "MDNS_PORT",
    "MulticastDnsService",
    "ServiceAdvertiser",
    "ServiceDiscovery",
    "ServiceProfile",
]
