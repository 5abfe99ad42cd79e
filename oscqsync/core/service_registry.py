"""
Registry of services discovered over multicast DNS.

The registry is the shared state between the discovery handler and the remote
synchronizer: the set of known service ids (the dedup key for incoming
answers) and the last known peer to synchronize against. One lock guards both.
"""

from __future__ import annotations

from collections.abc import Iterable
from threading import RLock

from loguru import logger

from ..datastructures.type_aliases import ServiceId
from .model import PeerEndpoint, ServiceRecord


class ServiceRegistry:
    """Deduplicated set of known services plus the last known peer."""

    def __init__(self, seed_ids: Iterable[ServiceId] = ()) -> None:
        self._lock = RLock()
        self._services: dict[ServiceId, ServiceRecord | None] = {}
        self._last_peer: PeerEndpoint | None = None
        for service_id in seed_ids:
            self.seed(service_id)

    def seed(self, service_id: ServiceId) -> None:
        """Mark an id as known without a record (used for our own services)."""
        with self._lock:
            self._services.setdefault(service_id, None)
        logger.debug(f"Registry seeded with {service_id}")

    def add_if_absent(self, record: ServiceRecord) -> bool:
        """Register ``record`` unless its id is already known.

        Goodbye records are never stored. Returns True when the record was
        added.
        """
        if record.is_goodbye:
            return False
        with self._lock:
            if record.service_id in self._services:
                return False
            self._services[record.service_id] = record
            return True

    def remove(self, service_id: ServiceId) -> bool:
        with self._lock:
            if service_id not in self._services:
                return False
            del self._services[service_id]
            return True

    def contains(self, service_id: ServiceId) -> bool:
        with self._lock:
            return service_id in self._services

    def get(self, service_id: ServiceId) -> ServiceRecord | None:
        with self._lock:
            return self._services.get(service_id)

    def records(self) -> list[ServiceRecord]:
        with self._lock:
            return [record for record in self._services.values() if record]

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def __contains__(self, service_id: object) -> bool:
        return isinstance(service_id, str) and self.contains(service_id)

    @property
    def last_peer(self) -> PeerEndpoint | None:
        with self._lock:
            return self._last_peer

    def set_last_peer(self, peer: PeerEndpoint) -> None:
        with self._lock:
            self._last_peer = peer

    def clear_last_peer(self) -> PeerEndpoint | None:
        with self._lock:
            previous, self._last_peer = self._last_peer, None
            return previous

    def clear(self) -> None:
        with self._lock:
            self._services.clear()
            self._last_peer = None
