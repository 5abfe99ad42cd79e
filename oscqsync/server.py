"""
OSCQueryServer: owner of the whole discovery/synchronization pipeline.

One instance holds its own registry, synchronizer, HTTP query server and mDNS
transport; nothing is shared between instances. Resources are released only
through ``close()``, which ``async with`` guarantees on every exit path.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from .client.synchronizer import RemoteParameterSynchronizer
from .config import OSCQuerySettings
from .core.model import (
    HostInfo,
    PeerEndpoint,
    ServiceType,
    StartupError,
    make_service_id,
)
from .core.query_http import OSCQueryHttpServer
from .core.service_registry import ServiceRegistry
from .datastructures.parameter_tree import (
    ParameterAccess,
    ParameterBranch,
    ParameterLeaf,
    ParameterNode,
)
from .datastructures.type_aliases import (
    FlatParameterMap,
    ParameterUpdateCallback,
    PortNumber,
)
from .dns.advertiser import ServiceAdvertiser, ServiceProfile
from .dns.discovery import ServiceDiscovery
from .dns.multicast import MulticastDnsService


def default_namespace() -> ParameterNode:
    """Namespace served when the caller does not provide one."""
    return ParameterBranch(
        full_path="/",
        description="",
        access=ParameterAccess.NONE,
        children={
            "avatar": ParameterLeaf(
                full_path="/avatar", access=ParameterAccess.WRITE
            ),
        },
    )


class OSCQueryServer:
    """Advertise this process over mDNS and mirror a discovered peer's parameters.

    Usage::

        async with OSCQueryServer(settings, on_parameters_updated=print) as server:
            await server.refresh_parameters()
    """

    def __init__(
        self,
        settings: OSCQuerySettings | None = None,
        *,
        on_parameters_updated: ParameterUpdateCallback | None = None,
        namespace: ParameterNode | None = None,
        multicast: MulticastDnsService | None = None,
    ) -> None:
        self.settings = settings or OSCQuerySettings()
        self.host_info = HostInfo(
            name=self.settings.service_name,
            osc_ip=self.settings.host,
            osc_port=self.settings.osc_port,
        )
        self.namespace = namespace or default_namespace()
        self.registry = ServiceRegistry()
        self.synchronizer = RemoteParameterSynchronizer(
            registry=self.registry,
            on_update=on_parameters_updated,
            parameters_path=self.settings.parameters_path,
            timeout_seconds=self.settings.fetch_timeout_seconds,
        )
        self.multicast = multicast or MulticastDnsService(
            interface_address=self.settings.host,
            interface_poll_interval_seconds=self.settings.interface_poll_interval_seconds,
        )
        self.http = OSCQueryHttpServer(
            host=self.settings.host,
            port=self.settings.http_port,
            namespace=self.namespace,
            host_info=self.host_info,
        )
        self.discovery = ServiceDiscovery(
            registry=self.registry,
            peer_name_prefix=self.settings.peer_name_prefix,
            on_peer_discovered=self._on_peer_discovered,
        )
        self.advertiser = ServiceAdvertiser(self.multicast)
        self.discovery.attach(self.multicast)
        self.multicast.add_query_listener(self.advertiser.handle_query)
        self.multicast.add_interface_listener(self.advertiser.on_interface_discovered)
        self._fetch_tasks: set[asyncio.Task[bool]] = set()
        self._started = False
        self._closed = False

    @property
    def http_port(self) -> PortNumber:
        return self.http.bound_port

    @property
    def service_id(self) -> str:
        return make_service_id(
            self.settings.service_name, ServiceType.OSC_JSON_TCP, self.http_port
        )

    @property
    def parameters(self) -> FlatParameterMap:
        return self.synchronizer.parameters

    @property
    def last_peer(self) -> PeerEndpoint | None:
        return self.registry.last_peer

    async def start(self) -> None:
        """Start HTTP, mDNS listening and advertisement.

        Raises:
            StartupError: a listener could not be started; anything already
                started has been shut down again.
        """
        if self._started:
            return
        if self._closed:
            raise StartupError("OSCQueryServer cannot be restarted after close()")

        try:
            await self.http.start()
            # our own announcements come back to us; never sync against them
            self.registry.seed(self.service_id)
            await self.multicast.start()
            self._advertise()
        except BaseException as exc:
            await self._teardown()
            if isinstance(exc, StartupError):
                raise
            if isinstance(exc, OSError):
                raise StartupError(f"OSCQuery startup failed: {exc}") from exc
            raise
        self._started = True
        logger.info(
            f"OSCQuery service {self.settings.service_name} started "
            f"(http {self.http_port}, osc {self.settings.osc_port})"
        )

    def _advertise(self) -> None:
        addresses = (self.settings.host,)
        ttl = self.settings.record_ttl_seconds
        self.advertiser.advertise(
            ServiceProfile(
                instance_name=self.settings.service_name,
                service_type=ServiceType.OSC_JSON_TCP,
                port=self.http_port,
                addresses=addresses,
                ttl=ttl,
            )
        )
        self.advertiser.advertise(
            ServiceProfile(
                instance_name=self.settings.service_name,
                service_type=ServiceType.OSC_UDP,
                port=self.settings.osc_port,
                addresses=addresses,
                ttl=ttl,
            )
        )

    def _on_peer_discovered(self, peer: PeerEndpoint) -> None:
        if self._closed:
            return
        task = asyncio.create_task(self.synchronizer.fetch(peer.address, peer.port))
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_done)

    def _fetch_done(self, task: asyncio.Task[bool]) -> None:
        self._fetch_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Parameter fetch task failed: {exc!r}")

    async def refresh_parameters(self) -> bool:
        """Re-fetch parameters from the last known peer, if any."""
        return await self.synchronizer.refresh()

    async def close(self) -> None:
        """Withdraw advertisements and release every network resource.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        await self._teardown()
        self._started = False
        logger.info(f"OSCQuery service {self.settings.service_name} stopped")

    async def _teardown(self) -> None:
        tasks = tuple(self._fetch_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._fetch_tasks.clear()

        if self.multicast.running:
            self.advertiser.unadvertise_all()
        await self.multicast.stop()
        await self.http.stop()

    async def __aenter__(self) -> OSCQueryServer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
