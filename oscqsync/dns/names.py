from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from dnslib import DNSLabel

from oscqsync.core.model import MDNS_DOMAIN, ServiceType
from oscqsync.datastructures.type_aliases import DomainName

SERVICE_ENUMERATION_NAME = f"_services._dns-sd._udp.{MDNS_DOMAIN}"

_HOST_LABEL_RE = re.compile(r"[^A-Za-z0-9-]+")


def _split_labels(value: str) -> tuple[str, ...]:
    cleaned = value.strip().strip(".")
    if not cleaned:
        return tuple()
    return tuple(label for label in cleaned.split(".") if label)


def label_strings(name: DNSLabel | str) -> tuple[str, ...]:
    """Labels of a DNS name, keeping dots that are part of an instance label."""
    if isinstance(name, str):
        return _split_labels(name)
    return tuple(
        label.decode("utf-8", errors="replace") for label in name.label if label
    )


def names_equal(left: DNSLabel | str, right: DNSLabel | str) -> bool:
    return tuple(label.lower() for label in label_strings(left)) == tuple(
        label.lower() for label in label_strings(right)
    )


@dataclass(frozen=True, slots=True)
class ServiceInstanceName:
    instance: str
    service: str
    proto: str
    domain: DomainName

    @property
    def service_type(self) -> ServiceType | None:
        return ServiceType.from_labels(self.service, self.proto)


def parse_service_instance(labels: Sequence[str]) -> ServiceInstanceName | None:
    """Split ``instance._service._proto.domain`` labels.

    Returns None when the name does not have that shape.
    """
    if len(labels) < 4:
        return None
    instance, service, proto = labels[0], labels[1], labels[2]
    if not service.startswith("_") or not proto.startswith("_"):
        return None
    if not instance:
        return None
    return ServiceInstanceName(
        instance=instance,
        service=service.lower(),
        proto=proto.lower(),
        domain=".".join(labels[3:]).lower(),
    )


def host_label(instance_name: str) -> str:
    """DNS-safe host label derived from an instance name."""
    cleaned = _HOST_LABEL_RE.sub("-", instance_name).strip("-")
    return cleaned or "oscquery"


def instance_label(instance_name: str, service_type: ServiceType) -> DNSLabel:
    """Full instance name as a DNSLabel; the instance stays a single label."""
    type_labels = [part.encode("ascii") for part in _split_labels(service_type.domain)]
    return DNSLabel([instance_name.encode("utf-8"), *type_labels])
