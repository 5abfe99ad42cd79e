"""
Remote namespace synchronization.

Fetches a peer's OSCQuery namespace over HTTP, flattens the parameter subtree
into ``{osc_address: value}`` and republishes it through the update callback.

- At most one fetch runs at a time; calls made while one is in flight are
  dropped, not queued.
- The published map is swapped as a whole, never edited in place.
- A transport failure means the peer is gone: the last known peer is
  forgotten and an empty map is published.
- Any other failure (bad JSON, malformed tree) leaves the published map alone.
"""

from __future__ import annotations

import inspect
from collections.abc import Sequence
from threading import Lock
from types import MappingProxyType

import aiohttp
from loguru import logger

from ..core.model import PeerEndpoint
from ..core.service_registry import ServiceRegistry
from ..datastructures.parameter_tree import (
    ParameterBranch,
    find_node,
    flatten_parameters,
    parse_parameter_tree,
)
from ..datastructures.type_aliases import (
    DurationSeconds,
    FlatParameterMap,
    HostAddress,
    NodeName,
    ParameterUpdateCallback,
    PortNumber,
)
from ..serialization import decode_document

DEFAULT_PARAMETERS_PATH: tuple[NodeName, ...] = ("avatar", "parameters")

_EMPTY: FlatParameterMap = MappingProxyType({})


class RemoteParameterSynchronizer:
    """Single-flight fetcher that mirrors a peer's parameters locally."""

    def __init__(
        self,
        *,
        registry: ServiceRegistry,
        on_update: ParameterUpdateCallback | None = None,
        parameters_path: Sequence[NodeName] = DEFAULT_PARAMETERS_PATH,
        timeout_seconds: DurationSeconds = 10.0,
    ) -> None:
        self.registry = registry
        self.parameters_path = tuple(parameters_path)
        self.timeout_seconds = timeout_seconds
        self._on_update = on_update
        self._fetch_guard = Lock()
        self._state_lock = Lock()
        self._parameters: FlatParameterMap = _EMPTY

    @property
    def parameters(self) -> FlatParameterMap:
        with self._state_lock:
            return self._parameters

    @property
    def fetch_in_progress(self) -> bool:
        return self._fetch_guard.locked()

    async def fetch(self, address: HostAddress, port: PortNumber) -> bool:
        """Fetch and republish the namespace served at ``address:port``.

        Returns False without doing anything when another fetch is in flight.
        """
        if not self._fetch_guard.acquire(blocking=False):
            logger.debug(f"Fetch from {address}:{port} skipped, one is in progress")
            return False

        peer = PeerEndpoint(address=address, port=port)
        body = b""
        try:
            logger.info(f"Fetching new parameters from {peer.url}")
            try:
                body = await self._download(peer.url)
            except (aiohttp.ClientError, TimeoutError) as exc:
                logger.warning(f"Namespace fetch from {peer} failed: {exc!r}")
                await self._forget_peer()
                return True

            try:
                await self._apply_document(body)
            except Exception as exc:
                logger.error(
                    f"Unable to process namespace from {peer}: {exc}\n"
                    f"{body.decode(errors='replace')}"
                )
            return True
        finally:
            self._fetch_guard.release()

    async def refresh(self) -> bool:
        """Re-fetch from the last known peer; no-op when there is none."""
        peer = self.registry.last_peer
        if peer is None:
            return False
        return await self.fetch(peer.address, peer.port)

    async def _download(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with (
            aiohttp.ClientSession(timeout=timeout) as session,
            session.get(url) as response,
        ):
            response.raise_for_status()
            # orjson reports a body that is not UTF-8 as a JSONDecodeError
            return await response.read()

    async def _apply_document(self, body: bytes) -> None:
        root = parse_parameter_tree(decode_document(body))
        parameters_root = find_node(root, self.parameters_path)
        if not isinstance(parameters_root, ParameterBranch) or not parameters_root.children:
            logger.warning("No parameters found in peer namespace")
            return

        flat = flatten_parameters(parameters_root)
        await self._publish(MappingProxyType(flat))

    async def _forget_peer(self) -> None:
        self.registry.clear_last_peer()
        await self._publish(_EMPTY)

    async def _publish(self, parameters: FlatParameterMap) -> None:
        with self._state_lock:
            self._parameters = parameters
        logger.debug(f"Published {len(parameters)} parameters")
        if self._on_update is None:
            return
        try:
            result = self._on_update(parameters)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(f"Parameter update callback failed: {exc}")
