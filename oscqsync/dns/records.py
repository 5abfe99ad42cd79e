from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from dnslib import AAAA, CLASS, PTR, QTYPE, RR, SRV, TXT, A, DNSLabel

# mDNS reuses the top bit of the class field as the cache-flush flag
# for records that have a single owner (RFC 6762 section 10.2).
CACHE_FLUSH_BIT = 0x8000

RecordName: TypeAlias = DNSLabel | str


@dataclass(frozen=True, slots=True)
class DnsRecord:
    name: RecordName
    ttl: int

    @property
    def cache_flush(self) -> bool:
        return False

    def _rclass(self) -> int:
        rclass = CLASS.IN
        if self.cache_flush and self.ttl > 0:
            rclass |= CACHE_FLUSH_BIT
        return rclass

    def to_rr(self) -> RR:
        raise NotImplementedError

    def with_ttl(self, ttl: int) -> DnsRecord:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class ARecord(DnsRecord):
    address: str

    @property
    def cache_flush(self) -> bool:
        return True

    def to_rr(self) -> RR:
        return RR(
            self.name,
            rtype=QTYPE.A,
            rclass=self._rclass(),
            rdata=A(self.address),
            ttl=self.ttl,
        )

    def with_ttl(self, ttl: int) -> ARecord:
        return ARecord(name=self.name, ttl=ttl, address=self.address)


@dataclass(frozen=True, slots=True)
class AAAARecord(DnsRecord):
    address: str

    @property
    def cache_flush(self) -> bool:
        return True

    def to_rr(self) -> RR:
        return RR(
            self.name,
            rtype=QTYPE.AAAA,
            rclass=self._rclass(),
            rdata=AAAA(self.address),
            ttl=self.ttl,
        )

    def with_ttl(self, ttl: int) -> AAAARecord:
        return AAAARecord(name=self.name, ttl=ttl, address=self.address)


@dataclass(frozen=True, slots=True)
class PtrRecord(DnsRecord):
    target: RecordName

    def to_rr(self) -> RR:
        return RR(
            self.name,
            rtype=QTYPE.PTR,
            rclass=self._rclass(),
            rdata=PTR(self.target),
            ttl=self.ttl,
        )

    def with_ttl(self, ttl: int) -> PtrRecord:
        return PtrRecord(name=self.name, ttl=ttl, target=self.target)


@dataclass(frozen=True, slots=True)
class SrvRecord(DnsRecord):
    priority: int
    weight: int
    port: int
    target: RecordName

    @property
    def cache_flush(self) -> bool:
        return True

    def to_rr(self) -> RR:
        return RR(
            self.name,
            rtype=QTYPE.SRV,
            rclass=self._rclass(),
            rdata=SRV(self.priority, self.weight, self.port, self.target),
            ttl=self.ttl,
        )

    def with_ttl(self, ttl: int) -> SrvRecord:
        return SrvRecord(
            name=self.name,
            ttl=ttl,
            priority=self.priority,
            weight=self.weight,
            port=self.port,
            target=self.target,
        )


@dataclass(frozen=True, slots=True)
class TxtRecord(DnsRecord):
    value: str

    @property
    def cache_flush(self) -> bool:
        return True

    def to_rr(self) -> RR:
        return RR(
            self.name,
            rtype=QTYPE.TXT,
            rclass=self._rclass(),
            rdata=TXT(self.value),
            ttl=self.ttl,
        )

    def with_ttl(self, ttl: int) -> TxtRecord:
        return TxtRecord(name=self.name, ttl=ttl, value=self.value)
