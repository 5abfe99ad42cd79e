"""Pytest configuration and fixtures for oscqsync testing.

This module provides async fixtures for running real aiohttp peers on
ephemeral loopback ports and an in-memory multicast DNS transport. All
fixtures clean up after themselves so tests never leave listeners behind.
"""

import asyncio
import socket
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import orjson
import pytest
import pytest_asyncio
from aiohttp import web
from dnslib import QTYPE, RR, SRV, A, DNSLabel, DNSRecord
from loguru import logger

from oscqsync.core.model import ServiceType
from oscqsync.dns.multicast import MulticastDnsService, build_response


@dataclass
class NamespacePeer:
    """A fake OSCQuery peer serving one namespace document over HTTP."""

    document: Any
    status: int = 200
    gate: asyncio.Event | None = None
    request_count: int = 0
    runner: web.AppRunner | None = None
    port: int = 0
    raw_body: bytes | None = None

    @property
    def address(self) -> str:
        return "127.0.0.1"

    async def _handle(self, request: web.Request) -> web.Response:
        self.request_count += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.status != 200:
            return web.Response(status=self.status)
        body = self.raw_body if self.raw_body is not None else orjson.dumps(self.document)
        return web.Response(body=body, content_type="application/json")

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/", self._handle)
        self.runner = web.AppRunner(app, access_log=None)
        await self.runner.setup()
        site = web.TCPSite(self.runner, host=self.address, port=0)
        await site.start()
        self.port = int(self.runner.addresses[0][1])

    async def stop(self) -> None:
        if self.gate is not None:
            self.gate.set()
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None


class AsyncTestContext:
    """Context manager for async test operations with automatic cleanup."""

    def __init__(self) -> None:
        self.peers: list[NamespacePeer] = []
        self.closers: list[Callable[[], Awaitable[None]]] = []
        self.tasks: list[asyncio.Task[Any]] = []

    async def __aenter__(self) -> "AsyncTestContext":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Ensure all resources are cleaned up properly."""
        for task in self.tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        for closer in reversed(self.closers):
            try:
                await closer()
            except Exception as e:
                logger.warning(f"Error during test cleanup: {e}")

        for peer in self.peers:
            try:
                await peer.stop()
            except Exception as e:
                logger.warning(f"Error stopping namespace peer: {e}")

        self.peers.clear()
        self.closers.clear()
        self.tasks.clear()


class InMemoryMulticastDns(MulticastDnsService):
    """MulticastDnsService that records sends instead of touching the network."""

    def __init__(self, addresses: tuple[str, ...] = ("127.0.0.1",)) -> None:
        self.addresses = list(addresses)
        super().__init__(address_provider=lambda: tuple(self.addresses))
        self.sent: list[DNSRecord] = []
        self._running = False
        self.start_error: Exception | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self._running = True
        self.poll_interfaces()

    async def stop(self) -> None:
        self._running = False

    def send(self, message: DNSRecord) -> None:
        if self._running:
            self.sent.append(DNSRecord.parse(message.pack()))

    def deliver(self, message: DNSRecord, addr: tuple[str, int] = ("127.0.0.1", 5353)) -> None:
        """Feed a message through the wire format into the listeners."""
        self.dispatch(message.pack(), addr)


@pytest_asyncio.fixture
async def test_context() -> AsyncGenerator[AsyncTestContext, None]:
    """Provides a clean async test context with automatic resource cleanup."""
    async with AsyncTestContext() as ctx:
        yield ctx


@pytest_asyncio.fixture
async def peer_factory(
    test_context: AsyncTestContext,
) -> Callable[..., Awaitable[NamespacePeer]]:
    """Factory starting fake OSCQuery peers on ephemeral loopback ports.

    Example Usage:
        async def test_fetch(peer_factory):
            peer = await peer_factory({"CONTENTS": {...}})
            await synchronizer.fetch(peer.address, peer.port)
    """

    async def _create_peer(document: Any = None, **kwargs: Any) -> NamespacePeer:
        peer = NamespacePeer(document=document, **kwargs)
        await peer.start()
        test_context.peers.append(peer)
        return peer

    return _create_peer


@pytest.fixture
def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest.fixture
def multicast() -> InMemoryMulticastDns:
    return InMemoryMulticastDns()


def avatar_document(parameters: dict[str, Any] | None) -> dict[str, Any]:
    """Namespace shaped like the one a VRChat client serves."""
    avatar: dict[str, Any] = {"FULL_PATH": "/avatar", "ACCESS": 2}
    if parameters is not None:
        avatar["CONTENTS"] = {
            "parameters": {
                "FULL_PATH": "/avatar/parameters",
                "ACCESS": 2,
                "CONTENTS": parameters,
            }
        }
    return {
        "DESCRIPTION": "root node",
        "FULL_PATH": "/",
        "ACCESS": 0,
        "CONTENTS": {"avatar": avatar},
    }


def parameter(name: str, value: Any, type_tag: str = "f") -> dict[str, Any]:
    return {
        "FULL_PATH": f"/avatar/parameters/{name}",
        "ACCESS": 3,
        "TYPE": type_tag,
        "VALUE": [value],
    }


@dataclass
class UpdateRecorder:
    """Collects every map handed to the parameter update callback."""

    updates: list[dict[str, Any]] = field(default_factory=list)

    def __call__(self, parameters: Any) -> None:
        self.updates.append(dict(parameters))


@pytest.fixture
def recorder() -> UpdateRecorder:
    return UpdateRecorder()


def srv_answer(
    instance: str,
    port: int,
    address: str | None = "10.0.0.5",
    *,
    ttl: int = 120,
    service_type: ServiceType = ServiceType.OSC_JSON_TCP,
    host: str = "peer-host.local",
) -> DNSRecord:
    """mDNS response announcing one service instance, as a peer would send it."""
    response = build_response()
    type_labels = [label.encode() for label in service_type.domain.split(".")]
    name = DNSLabel([instance.encode(), *type_labels])
    response.add_answer(RR(name, QTYPE.SRV, rdata=SRV(0, 0, port, host), ttl=ttl))
    if address is not None:
        response.add_ar(RR(host, QTYPE.A, rdata=A(address), ttl=ttl))
    return response
