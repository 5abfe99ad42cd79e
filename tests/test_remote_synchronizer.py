"""
Tests for RemoteParameterSynchronizer.

Every test fetches from a real aiohttp peer on an ephemeral loopback port, so
transport failures (refused connections, error statuses, timeouts) are the
genuine aiohttp exceptions.
"""

import asyncio

import pytest

from oscqsync.client.synchronizer import RemoteParameterSynchronizer
from oscqsync.core.model import PeerEndpoint
from oscqsync.core.service_registry import ServiceRegistry
from oscqsync.datastructures.type_aliases import ParameterUpdateCallback

from tests.conftest import avatar_document, parameter

PARAMETERS = {
    "VelocityX": parameter("VelocityX", 0.5),
    "Grounded": parameter("Grounded", True, "T"),
}
FLAT = {
    "/avatar/parameters/VelocityX": 0.5,
    "/avatar/parameters/Grounded": True,
}


def _synchronizer(
    on_update: ParameterUpdateCallback | None = None, **kwargs
) -> RemoteParameterSynchronizer:
    return RemoteParameterSynchronizer(
        registry=ServiceRegistry(), on_update=on_update, **kwargs
    )


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


class TestSuccessfulFetch:
    async def test_fetch_publishes_flat_parameters(self, peer_factory, recorder) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))
        synchronizer = _synchronizer(recorder)

        assert await synchronizer.fetch(peer.address, peer.port) is True

        assert dict(synchronizer.parameters) == FLAT
        assert recorder.updates == [FLAT]

    async def test_published_map_is_read_only(self, peer_factory) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))
        synchronizer = _synchronizer()

        await synchronizer.fetch(peer.address, peer.port)

        with pytest.raises(TypeError):
            synchronizer.parameters["/x"] = 1  # type: ignore[index]

    async def test_refetch_replaces_map(self, peer_factory, recorder) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))
        synchronizer = _synchronizer(recorder)
        await synchronizer.fetch(peer.address, peer.port)
        first = synchronizer.parameters

        peer.document = avatar_document({"Viseme": parameter("Viseme", 4, "i")})
        await synchronizer.fetch(peer.address, peer.port)

        assert dict(synchronizer.parameters) == {"/avatar/parameters/Viseme": 4}
        assert dict(first) == FLAT
        assert len(recorder.updates) == 2

    async def test_async_callback_is_awaited(self, peer_factory) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))
        received: list[dict] = []

        async def on_update(parameters) -> None:
            await asyncio.sleep(0)
            received.append(dict(parameters))

        synchronizer = _synchronizer(on_update=on_update)
        await synchronizer.fetch(peer.address, peer.port)

        assert received == [FLAT]

    async def test_failing_callback_keeps_published_map(self, peer_factory) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))

        def on_update(parameters) -> None:
            raise RuntimeError("consumer bug")

        synchronizer = _synchronizer(on_update=on_update)

        assert await synchronizer.fetch(peer.address, peer.port) is True
        assert dict(synchronizer.parameters) == FLAT
        assert not synchronizer.fetch_in_progress

    async def test_custom_parameters_path(self, peer_factory, recorder) -> None:
        document = {
            "FULL_PATH": "/",
            "CONTENTS": {
                "mixer": {
                    "FULL_PATH": "/mixer",
                    "CONTENTS": {"gain": {"FULL_PATH": "/mixer/gain", "VALUE": [0.8]}},
                }
            },
        }
        peer = await peer_factory(document)
        synchronizer = _synchronizer(recorder, parameters_path=("mixer",))

        await synchronizer.fetch(peer.address, peer.port)

        assert recorder.updates == [{"/mixer/gain": 0.8}]


class TestSingleFlight:
    async def test_concurrent_fetch_is_dropped(self, peer_factory, recorder) -> None:
        """A fetch issued while another is in flight does no network work."""
        gate = asyncio.Event()
        peer = await peer_factory(avatar_document(PARAMETERS), gate=gate)
        synchronizer = _synchronizer(recorder)

        first = asyncio.create_task(synchronizer.fetch(peer.address, peer.port))
        await _wait_for(lambda: peer.request_count == 1)
        assert synchronizer.fetch_in_progress

        assert await synchronizer.fetch(peer.address, peer.port) is False

        gate.set()
        assert await first is True
        assert peer.request_count == 1
        assert recorder.updates == [FLAT]
        assert not synchronizer.fetch_in_progress

    async def test_guard_released_after_failure(self, closed_port, peer_factory) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))
        synchronizer = _synchronizer()

        await synchronizer.fetch("127.0.0.1", closed_port)

        assert not synchronizer.fetch_in_progress
        assert await synchronizer.fetch(peer.address, peer.port) is True
        assert dict(synchronizer.parameters) == FLAT


class TestTransportFailures:
    """The peer is treated as gone: last peer forgotten, empty map published."""

    async def test_connection_refused(self, closed_port, peer_factory, recorder) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))
        synchronizer = _synchronizer(recorder)
        await synchronizer.fetch(peer.address, peer.port)
        synchronizer.registry.set_last_peer(PeerEndpoint("127.0.0.1", closed_port))

        assert await synchronizer.fetch("127.0.0.1", closed_port) is True

        assert synchronizer.registry.last_peer is None
        assert dict(synchronizer.parameters) == {}
        assert recorder.updates == [FLAT, {}]

    async def test_error_status(self, peer_factory, recorder) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS), status=500)
        synchronizer = _synchronizer(recorder)
        synchronizer.registry.set_last_peer(PeerEndpoint(peer.address, peer.port))

        await synchronizer.fetch(peer.address, peer.port)

        assert synchronizer.registry.last_peer is None
        assert recorder.updates == [{}]

    async def test_timeout(self, peer_factory, recorder) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS), gate=asyncio.Event())
        synchronizer = _synchronizer(recorder, timeout_seconds=0.2)
        synchronizer.registry.set_last_peer(PeerEndpoint(peer.address, peer.port))

        assert await synchronizer.fetch(peer.address, peer.port) is True

        assert synchronizer.registry.last_peer is None
        assert recorder.updates == [{}]


class TestProcessingFailures:
    """Bad documents are logged; the published map and last peer stay put."""

    async def _seeded(self, peer_factory, recorder):
        good = await peer_factory(avatar_document(PARAMETERS))
        synchronizer = _synchronizer(recorder)
        await synchronizer.fetch(good.address, good.port)
        synchronizer.registry.set_last_peer(PeerEndpoint(good.address, good.port))
        return synchronizer

    async def test_invalid_json(self, peer_factory, recorder) -> None:
        synchronizer = await self._seeded(peer_factory, recorder)
        bad = await peer_factory(raw_body=b"{not json")

        assert await synchronizer.fetch(bad.address, bad.port) is True

        assert dict(synchronizer.parameters) == FLAT
        assert recorder.updates == [FLAT]
        assert synchronizer.registry.last_peer is not None

    async def test_body_that_is_not_utf8(self, peer_factory, recorder) -> None:
        synchronizer = await self._seeded(peer_factory, recorder)
        bad = await peer_factory(raw_body=b'{"FULL_PATH": "/\xff"}')

        assert await synchronizer.fetch(bad.address, bad.port) is True

        assert dict(synchronizer.parameters) == FLAT
        assert recorder.updates == [FLAT]
        assert synchronizer.registry.last_peer is not None
        assert not synchronizer.fetch_in_progress

    async def test_malformed_tree(self, peer_factory, recorder) -> None:
        synchronizer = await self._seeded(peer_factory, recorder)
        bad = await peer_factory({"FULL_PATH": "/", "CONTENTS": ["avatar"]})

        await synchronizer.fetch(bad.address, bad.port)

        assert dict(synchronizer.parameters) == FLAT
        assert recorder.updates == [FLAT]

    async def test_missing_parameters_node(self, peer_factory, recorder) -> None:
        synchronizer = await self._seeded(peer_factory, recorder)
        empty = await peer_factory(avatar_document(None))

        await synchronizer.fetch(empty.address, empty.port)

        assert dict(synchronizer.parameters) == FLAT
        assert recorder.updates == [FLAT]

    async def test_empty_parameters_node(self, peer_factory, recorder) -> None:
        synchronizer = await self._seeded(peer_factory, recorder)
        empty = await peer_factory(avatar_document({}))

        await synchronizer.fetch(empty.address, empty.port)

        assert recorder.updates == [FLAT]


class TestRefresh:
    async def test_refresh_without_peer_is_noop(self, recorder) -> None:
        synchronizer = _synchronizer(recorder)

        assert await synchronizer.refresh() is False
        assert recorder.updates == []

    async def test_refresh_uses_last_peer(self, peer_factory, recorder) -> None:
        peer = await peer_factory(avatar_document(PARAMETERS))
        synchronizer = _synchronizer(recorder)
        synchronizer.registry.set_last_peer(PeerEndpoint(peer.address, peer.port))

        assert await synchronizer.refresh() is True

        assert peer.request_count == 1
        assert recorder.updates == [FLAT]
