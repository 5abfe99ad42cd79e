"""
Shared value types for OSCQuery discovery and synchronization.

- ServiceType: the two service types an OSCQuery process advertises
- ServiceRecord: one discovered network service, keyed by its service id
- PeerEndpoint: address/port of a peer's HTTP query service
- HostInfo: the HOST_INFO document this process serves
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..datastructures.type_aliases import (
    HostAddress,
    InstanceName,
    JsonDict,
    PortNumber,
    ServiceId,
    UrlString,
)

MDNS_DOMAIN = "local"


class OSCQueryError(Exception):
    """Base exception for oscqsync errors."""

    pass


class StartupError(OSCQueryError):
    """Raised when a listener or transport cannot be started."""

    pass


class ServiceType(Enum):
    """DNS-SD service types used by OSCQuery."""

    OSC_JSON_TCP = "_oscjson._tcp"
    OSC_UDP = "_osc._udp"

    @property
    def domain(self) -> str:
        return f"{self.value}.{MDNS_DOMAIN}"

    @property
    def protocol(self) -> str:
        return self.value.split(".")[1]

    @property
    def is_udp(self) -> bool:
        return self.protocol == "_udp"

    @classmethod
    def from_labels(cls, service_label: str, proto_label: str) -> ServiceType | None:
        wanted = f"{service_label}.{proto_label}".lower()
        for member in cls:
            if member.value == wanted:
                return member
        return None


def canonical_service_name(instance_name: InstanceName, service_type: ServiceType) -> str:
    return f"{instance_name}.{service_type.domain}".lower()


def make_service_id(
    instance_name: InstanceName, service_type: ServiceType, port: PortNumber
) -> ServiceId:
    """Registry key for a service: lower-cased full service name plus port."""
    return f"{canonical_service_name(instance_name, service_type)}:{port}"


@dataclass(frozen=True, slots=True)
class ServiceRecord:
    """A service seen in a multicast DNS answer."""

    service_id: ServiceId
    instance_name: InstanceName
    service_type: ServiceType
    port: PortNumber
    address: HostAddress | None = None
    is_goodbye: bool = False

    @classmethod
    def from_srv(
        cls,
        instance_name: InstanceName,
        service_type: ServiceType,
        port: PortNumber,
        ttl: int,
        address: HostAddress | None = None,
    ) -> ServiceRecord:
        return cls(
            service_id=make_service_id(instance_name, service_type, port),
            instance_name=instance_name,
            service_type=service_type,
            port=port,
            address=address,
            is_goodbye=ttl == 0,
        )


@dataclass(frozen=True, slots=True)
class PeerEndpoint:
    """HTTP query endpoint of a discovered peer."""

    address: HostAddress
    port: PortNumber

    @property
    def url(self) -> UrlString:
        return f"http://{self.address}:{self.port}/"

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


@dataclass(frozen=True, slots=True)
class HostInfoExtensions:
    """OSCQuery extensions this process claims to support."""

    access: bool = True
    clipmode: bool = True
    range: bool = True
    type: bool = True
    value: bool = True

    def to_dict(self) -> JsonDict:
        return {
            "ACCESS": self.access,
            "CLIPMODE": self.clipmode,
            "RANGE": self.range,
            "TYPE": self.type,
            "VALUE": self.value,
        }


@dataclass(frozen=True, slots=True)
class HostInfo:
    """Static HOST_INFO descriptor served verbatim by the query server."""

    name: str
    osc_ip: HostAddress
    osc_port: PortNumber
    osc_transport: str = "UDP"
    extensions: HostInfoExtensions = field(default_factory=HostInfoExtensions)

    def to_dict(self) -> JsonDict:
        return {
            "NAME": self.name,
            "OSC_PORT": int(self.osc_port),
            "OSC_IP": self.osc_ip,
            "OSC_TRANSPORT": self.osc_transport,
            "EXTENSIONS": self.extensions.to_dict(),
        }
