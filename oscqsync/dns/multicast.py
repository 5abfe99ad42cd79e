"""
Multicast DNS transport.

Owns the UDP socket on 224.0.0.251:5353, hands parsed messages to listeners
(answers and queries separately) and tells listeners when a new network
interface address shows up so they can re-issue their queries.

DNS wire encoding is done by dnslib; this module only moves datagrams.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from collections.abc import Callable, Iterable
from typing import TypeAlias

import psutil
from dnslib import QTYPE, DNSHeader, DNSLabel, DNSQuestion, DNSRecord
from loguru import logger

from ..core.model import StartupError
from ..datastructures.type_aliases import DurationSeconds, HostAddress, PortNumber

MDNS_GROUP = "224.0.0.251"
MDNS_PORT = 5353
ANY_ADDRESS = "0.0.0.0"

RemoteAddress: TypeAlias = tuple[str, int]
MessageListener: TypeAlias = Callable[[DNSRecord, RemoteAddress], None]
InterfaceListener: TypeAlias = Callable[[HostAddress], None]
AddressProvider: TypeAlias = Callable[[], Iterable[HostAddress]]


def ipv4_interface_addresses() -> set[HostAddress]:
    """IPv4 addresses currently configured on any local interface."""
    addresses: set[HostAddress] = set()
    for entries in psutil.net_if_addrs().values():
        for entry in entries:
            if entry.family == socket.AF_INET and entry.address:
                addresses.add(entry.address)
    return addresses


def build_query(name: DNSLabel | str, qtype: str = "PTR") -> DNSRecord:
    """One-question mDNS query (id 0, no recursion desired)."""
    return DNSRecord(
        DNSHeader(id=0, bitmap=0),
        q=DNSQuestion(name, getattr(QTYPE, qtype)),
    )


def build_response() -> DNSRecord:
    """Empty authoritative mDNS response to fill with records."""
    return DNSRecord(DNSHeader(id=0, bitmap=0, qr=1, aa=1))


class MulticastDnsProtocol(asyncio.DatagramProtocol):
    def __init__(self, service: MulticastDnsService) -> None:
        super().__init__()
        self._service = service

    def datagram_received(self, data: bytes, addr) -> None:
        self._service.dispatch(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"mDNS socket error: {exc}")


class MulticastDnsService:
    """Send and receive multicast DNS messages on the local link."""

    def __init__(
        self,
        *,
        interface_address: HostAddress = ANY_ADDRESS,
        group: HostAddress = MDNS_GROUP,
        port: PortNumber = MDNS_PORT,
        interface_poll_interval_seconds: DurationSeconds = 30.0,
        loopback: bool = True,
        address_provider: AddressProvider = ipv4_interface_addresses,
    ) -> None:
        self.interface_address = interface_address
        self.group = group
        self.port = port
        self.interface_poll_interval_seconds = interface_poll_interval_seconds
        self.loopback = loopback
        self._address_provider = address_provider
        self._answer_listeners: list[MessageListener] = []
        self._query_listeners: list[MessageListener] = []
        self._interface_listeners: list[InterfaceListener] = []
        self._socket: socket.socket | None = None
        self._transport: asyncio.DatagramTransport | None = None
        self._interface_task: asyncio.Task[None] | None = None
        self._joined: set[HostAddress] = set()

    @property
    def running(self) -> bool:
        return self._transport is not None

    def add_answer_listener(self, listener: MessageListener) -> None:
        self._answer_listeners.append(listener)

    def add_query_listener(self, listener: MessageListener) -> None:
        self._query_listeners.append(listener)

    def add_interface_listener(self, listener: InterfaceListener) -> None:
        self._interface_listeners.append(listener)

    async def start(self) -> None:
        if self._transport is not None:
            return
        try:
            sock = self._create_socket()
        except OSError as exc:
            raise StartupError(
                f"Unable to open mDNS socket on port {self.port}: {exc}"
            ) from exc

        loop = asyncio.get_running_loop()
        self._socket = sock
        transport, _ = await loop.create_datagram_endpoint(
            lambda: MulticastDnsProtocol(self), sock=sock
        )
        self._transport = transport
        logger.debug(f"mDNS transport listening on {self.group}:{self.port}")

        self.poll_interfaces()
        self._interface_task = asyncio.create_task(self._interface_loop())

    async def stop(self) -> None:
        if self._interface_task is not None:
            self._interface_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._interface_task
            self._interface_task = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.debug("mDNS transport closed")
        self._socket = None
        self._joined.clear()

    def send(self, message: DNSRecord) -> None:
        if self._transport is None:
            logger.debug("mDNS send skipped, transport not running")
            return
        self._transport.sendto(message.pack(), (self.group, self.port))

    def send_query(self, name: str, qtype: str = "PTR") -> None:
        logger.debug(f"mDNS query {qtype} {name}")
        self.send(build_query(name, qtype))

    def dispatch(self, data: bytes, addr: RemoteAddress) -> None:
        """Parse one datagram and hand it to the matching listeners."""
        try:
            message = DNSRecord.parse(data)
        except Exception as exc:
            logger.debug(f"Dropping unparsable mDNS packet from {addr}: {exc}")
            return

        listeners = (
            self._answer_listeners if message.header.qr else self._query_listeners
        )
        for listener in tuple(listeners):
            try:
                listener(message, addr)
            except Exception as exc:
                logger.error(f"mDNS listener failed for packet from {addr}: {exc}")

    def poll_interfaces(self) -> list[HostAddress]:
        """Join the group on new interface addresses and notify listeners."""
        try:
            current = set(self._address_provider())
        except Exception as exc:
            logger.warning(f"Unable to enumerate network interfaces: {exc}")
            return []

        discovered = sorted(current - self._joined)
        self._joined &= current
        for address in discovered:
            self._join_group(address)
            self._joined.add(address)
            logger.debug(f"Network interface discovered: {address}")
            for listener in tuple(self._interface_listeners):
                try:
                    listener(address)
                except Exception as exc:
                    logger.error(f"Interface listener failed for {address}: {exc}")
        return discovered

    async def _interface_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interface_poll_interval_seconds)
            self.poll_interfaces()

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                with contextlib.suppress(OSError):
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 255)
            sock.setsockopt(
                socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1 if self.loopback else 0
            )
            if self.interface_address != ANY_ADDRESS:
                sock.setsockopt(
                    socket.IPPROTO_IP,
                    socket.IP_MULTICAST_IF,
                    socket.inet_aton(self.interface_address),
                )
            sock.bind((ANY_ADDRESS, self.port))
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    def _join_group(self, address: HostAddress) -> None:
        if self._socket is None:
            return
        membership = socket.inet_aton(self.group) + socket.inet_aton(address)
        try:
            self._socket.setsockopt(
                socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership
            )
        except OSError as exc:
            # EADDRINUSE when the kernel already joined this interface
            logger.debug(f"Multicast join on {address} skipped: {exc}")
