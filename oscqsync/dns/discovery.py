"""
OSCQuery peer discovery.

Listens to multicast DNS answers, keeps the service registry in step with the
SRV records it sees, and hands newly found peers whose instance name carries
the configured prefix to the synchronizer.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TypeAlias

from dnslib import QTYPE, DNSRecord
from loguru import logger

from ..core.model import PeerEndpoint, ServiceRecord, ServiceType
from ..core.service_registry import ServiceRegistry
from ..datastructures.type_aliases import HostAddress
from .multicast import MulticastDnsService, RemoteAddress
from .names import label_strings, names_equal, parse_service_instance

PeerDiscoveredCallback: TypeAlias = Callable[[PeerEndpoint], None]

QUERIED_SERVICE_TYPES = (ServiceType.OSC_JSON_TCP, ServiceType.OSC_UDP)


def _all_records(message: DNSRecord) -> Iterator:
    yield from message.rr
    yield from message.ar


def resolve_address(message: DNSRecord, target) -> HostAddress | None:
    """Pick one IPv4 address for an SRV target from the same message.

    The A record owned by the SRV target wins; otherwise the first A record
    in the message is used.
    """
    fallback: HostAddress | None = None
    for rr in _all_records(message):
        if rr.rtype != QTYPE.A:
            continue
        address = str(rr.rdata)
        if target is not None and names_equal(rr.rname, target):
            return address
        if fallback is None:
            fallback = address
    return fallback


class ServiceDiscovery:
    """Tracks OSCQuery services announced on the local link."""

    def __init__(
        self,
        *,
        registry: ServiceRegistry,
        peer_name_prefix: str,
        on_peer_discovered: PeerDiscoveredCallback | None = None,
        multicast: MulticastDnsService | None = None,
    ) -> None:
        self.registry = registry
        self.peer_name_prefix = peer_name_prefix
        self._on_peer_discovered = on_peer_discovered
        self._multicast = multicast

    def attach(self, multicast: MulticastDnsService) -> None:
        self._multicast = multicast
        multicast.add_interface_listener(self.on_interface_discovered)
        multicast.add_answer_listener(self.handle_answer)

    def send_queries(self) -> None:
        if self._multicast is None:
            return
        for service_type in QUERIED_SERVICE_TYPES:
            self._multicast.send_query(service_type.domain)

    def on_interface_discovered(self, address: HostAddress) -> None:
        logger.debug(f"Network interface discovered ({address}), querying services")
        self.send_queries()

    def handle_answer(
        self, message: DNSRecord, addr: RemoteAddress | None = None
    ) -> list[ServiceRecord]:
        """Process one mDNS answer; returns the records newly registered.

        Never raises: a malformed answer is logged and ignored.
        """
        registered: list[ServiceRecord] = []
        try:
            for rr in _all_records(message):
                if rr.rtype != QTYPE.SRV:
                    continue
                record = self._process_srv(message, rr)
                if record is not None:
                    registered.append(record)
        except Exception as exc:
            logger.warning(f"Failed to parse mDNS answer from {addr}: {exc}")
        return registered

    def _process_srv(self, message: DNSRecord, rr) -> ServiceRecord | None:
        name = parse_service_instance(label_strings(rr.rname))
        if name is None:
            return None
        service_type = name.service_type
        if service_type is None:
            return None
        if service_type.is_udp:
            return None

        port = int(rr.rdata.port)
        if rr.ttl == 0:
            goodbye = ServiceRecord.from_srv(name.instance, service_type, port, ttl=0)
            logger.debug(f"Goodbye message from {goodbye.service_id}")
            self.registry.remove(goodbye.service_id)
            return None

        address = resolve_address(message, rr.rdata.target)
        record = ServiceRecord.from_srv(
            name.instance, service_type, port, ttl=rr.ttl, address=address
        )
        if not self.registry.add_if_absent(record):
            return None

        logger.info(
            f"Found service {record.service_id} {record.instance_name} "
            f"{address}:{port}"
        )
        if address is not None and record.instance_name.startswith(
            self.peer_name_prefix
        ):
            peer = PeerEndpoint(address=address, port=port)
            self.registry.set_last_peer(peer)
            if self._on_peer_discovered is not None:
                self._on_peer_discovered(peer)
        return record
