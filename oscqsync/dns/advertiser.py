"""
DNS-SD service advertisement over multicast DNS.

A ``ServiceProfile`` describes one advertised service instance and renders the
PTR/SRV/TXT/A records for it. ``ServiceAdvertiser`` announces profiles,
answers queries that match them and withdraws them with goodbye (TTL 0)
records on teardown.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from dnslib import QTYPE, DNSLabel, DNSQuestion, DNSRecord
from loguru import logger

from ..core.model import MDNS_DOMAIN, ServiceType
from ..datastructures.type_aliases import (
    HostAddress,
    InstanceName,
    PortNumber,
    TtlSeconds,
)
from .multicast import MulticastDnsService, RemoteAddress, build_response
from .names import SERVICE_ENUMERATION_NAME, host_label, instance_label, names_equal
from .records import AAAARecord, ARecord, DnsRecord, PtrRecord, SrvRecord, TxtRecord

DEFAULT_RECORD_TTL = 120


@dataclass(frozen=True, slots=True)
class ServiceProfile:
    instance_name: InstanceName
    service_type: ServiceType
    port: PortNumber
    addresses: tuple[HostAddress, ...]
    ttl: TtlSeconds = DEFAULT_RECORD_TTL
    txt: tuple[str, ...] = ("txtvers=1",)

    @property
    def instance_fqdn(self) -> DNSLabel:
        return instance_label(self.instance_name, self.service_type)

    @property
    def host_name(self) -> str:
        return f"{host_label(self.instance_name)}.{MDNS_DOMAIN}"

    def pointer_record(self) -> PtrRecord:
        return PtrRecord(
            name=self.service_type.domain, ttl=self.ttl, target=self.instance_fqdn
        )

    def enumeration_record(self) -> PtrRecord:
        return PtrRecord(
            name=SERVICE_ENUMERATION_NAME,
            ttl=self.ttl,
            target=self.service_type.domain,
        )

    def srv_record(self) -> SrvRecord:
        return SrvRecord(
            name=self.instance_fqdn,
            ttl=self.ttl,
            priority=0,
            weight=0,
            port=self.port,
            target=self.host_name,
        )

    def txt_records(self) -> list[DnsRecord]:
        return [
            TxtRecord(name=self.instance_fqdn, ttl=self.ttl, value=entry)
            for entry in self.txt
        ]

    def address_records(self, *, ipv4: bool = True, ipv6: bool = True) -> list[DnsRecord]:
        records: list[DnsRecord] = []
        for address in self.addresses:
            version = ipaddress.ip_address(address).version
            if version == 4 and ipv4:
                records.append(ARecord(name=self.host_name, ttl=self.ttl, address=address))
            elif version == 6 and ipv6:
                records.append(
                    AAAARecord(name=self.host_name, ttl=self.ttl, address=address)
                )
        return records

    def all_records(self) -> list[DnsRecord]:
        return [
            self.pointer_record(),
            self.srv_record(),
            *self.txt_records(),
            *self.address_records(),
        ]

    def answers_for(
        self, question: DNSQuestion
    ) -> tuple[list[DnsRecord], list[DnsRecord]]:
        """Answer and additional records this profile contributes to a question."""
        qname = question.qname
        qtype = question.qtype
        wants_any = qtype == QTYPE.ANY

        if names_equal(qname, self.service_type.domain) and (
            wants_any or qtype == QTYPE.PTR
        ):
            return [self.pointer_record()], [
                self.srv_record(),
                *self.txt_records(),
                *self.address_records(),
            ]

        if names_equal(qname, self.instance_fqdn):
            answers: list[DnsRecord] = []
            if wants_any or qtype == QTYPE.SRV:
                answers.append(self.srv_record())
            if wants_any or qtype == QTYPE.TXT:
                answers.extend(self.txt_records())
            if answers:
                return answers, self.address_records()

        if names_equal(qname, self.host_name):
            return (
                self.address_records(
                    ipv4=wants_any or qtype == QTYPE.A,
                    ipv6=wants_any or qtype == QTYPE.AAAA,
                ),
                [],
            )

        if names_equal(qname, SERVICE_ENUMERATION_NAME) and (
            wants_any or qtype == QTYPE.PTR
        ):
            return [self.enumeration_record()], []

        return [], []


def _append_unique(target: list[DnsRecord], records: list[DnsRecord]) -> None:
    for record in records:
        if record not in target:
            target.append(record)


def build_announcement(
    profile: ServiceProfile, *, ttl: TtlSeconds | None = None
) -> DNSRecord:
    """Unsolicited response carrying every record of ``profile``.

    ``ttl=0`` turns the announcement into a goodbye.
    """
    response = build_response()
    for record in profile.all_records():
        if ttl is not None:
            record = record.with_ttl(ttl)
        response.add_answer(record.to_rr())
    return response


class ServiceAdvertiser:
    """Announces service profiles and answers queries for them."""

    def __init__(self, multicast: MulticastDnsService) -> None:
        self._multicast = multicast
        self._profiles: list[ServiceProfile] = []

    @property
    def profiles(self) -> tuple[ServiceProfile, ...]:
        return tuple(self._profiles)

    def advertise(self, profile: ServiceProfile) -> None:
        if profile not in self._profiles:
            self._profiles.append(profile)
        logger.info(
            f"Advertising {profile.instance_name} {profile.service_type.domain} "
            f"on port {profile.port}"
        )
        self._multicast.send(build_announcement(profile))

    def announce(self) -> None:
        """Re-send announcements for every advertised profile."""
        for profile in self._profiles:
            self._multicast.send(build_announcement(profile))

    def on_interface_discovered(self, address: HostAddress) -> None:
        if not self._profiles:
            return
        logger.debug(f"Network interface discovered ({address}), re-announcing")
        self.announce()

    def unadvertise_all(self) -> None:
        for profile in self._profiles:
            logger.debug(
                f"Goodbye for {profile.instance_name} {profile.service_type.domain}"
            )
            self._multicast.send(build_announcement(profile, ttl=0))
        self._profiles.clear()

    def build_reply(self, message: DNSRecord) -> DNSRecord | None:
        answers: list[DnsRecord] = []
        additionals: list[DnsRecord] = []
        for question in message.questions:
            for profile in self._profiles:
                profile_answers, profile_additionals = profile.answers_for(question)
                _append_unique(answers, profile_answers)
                _append_unique(additionals, profile_additionals)
        if not answers:
            return None

        response = build_response()
        for record in answers:
            response.add_answer(record.to_rr())
        for record in additionals:
            if record not in answers:
                response.add_ar(record.to_rr())
        return response

    def handle_query(self, message: DNSRecord, addr: RemoteAddress) -> None:
        reply = self.build_reply(message)
        if reply is None:
            return
        logger.debug(f"Answering mDNS query from {addr} with {len(reply.rr)} records")
        self._multicast.send(reply)
