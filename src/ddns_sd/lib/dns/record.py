"""
DNS resource record value objects
"""
import ipaddress
import shlex
from dataclasses import dataclass, replace
from typing import Any, NamedTuple, Tuple, Union

from .base import UnsupportedRecordType
from .name import DomainName

PUBLISHABLE_TYPES = ("A", "AAAA", "SRV", "PTR", "TXT", "CNAME")
MAX_TTL = 2 ** 31 - 1


class SRVData(NamedTuple):
    priority: int
    weight: int
    port: int
    target: DomainName


RecordData = Union[ipaddress.IPv4Address, ipaddress.IPv6Address, DomainName, SRVData, Tuple[str, ...]]


def _name_payload(value, absolute=None) -> DomainName:
    return DomainName.from_text(value, absolute=absolute)


def _coerce_data(rtype: str, data: Tuple[Any, ...], absolute=None) -> RecordData:
    if rtype == "A":
        return ipaddress.IPv4Address(str(data[0]))
    if rtype == "AAAA":
        return ipaddress.IPv6Address(str(data[0]))
    if rtype in ("CNAME", "PTR"):
        return _name_payload(data[0], absolute)
    if rtype == "SRV":
        priority, weight, port, target = data
        return SRVData(int(priority), int(weight), int(port), _name_payload(target, absolute))
    return tuple(str(item) for item in data)


@dataclass(frozen=True)
class DNSRecord:
    """
    One resource record.

    ``data`` holds the typed value for the record type: an IP address for
    A/AAAA, a DomainName for CNAME/PTR, SRVData for SRV and a tuple of
    strings for TXT. Records of any other type carry their raw content as a
    tuple of strings and cannot be converted or published.
    """
    name: DomainName
    ttl: int
    type: str
    data: RecordData

    def __post_init__(self):
        if not 0 <= self.ttl <= MAX_TTL:
            raise ValueError(f"TTL {self.ttl} out of range")

    @classmethod
    def build(cls, name, ttl: int, rtype: str, *data, absolute=None) -> "DNSRecord":
        """
        Build a record from loose values.

        Names (owner and payload) are absolute when written with a trailing
        dot, unless ``absolute`` says otherwise.
        """
        rtype = rtype.upper()
        return cls(DomainName.from_text(name, absolute=absolute), int(ttl), rtype,
                   _coerce_data(rtype, data, absolute))

    @classmethod
    def from_content(cls, name, ttl: int, rtype: str, content: str, absolute: bool = True) -> "DNSRecord":
        """Parse a record from the content string a store hands back."""
        rtype = rtype.upper()
        if rtype == "TXT":
            data = tuple(shlex.split(content)) if content.strip() else ("",)
        elif rtype == "SRV":
            data = tuple(content.split())
            if len(data) != 4:
                raise ValueError(f"malformed SRV content {content!r}")
        else:
            data = (content,)
        return cls(DomainName.from_text(name, absolute=absolute), int(ttl), rtype,
                   _coerce_data(rtype, data, absolute))

    @property
    def is_absolute(self) -> bool:
        return self.name.absolute

    @property
    def parent_name(self) -> DomainName:
        return self.name.parent()

    @property
    def value(self) -> str:
        """Content in the form the stores exchange"""
        if self.type == "A":
            return str(self.data)
        if self.type == "AAAA":
            return str(self.data).upper()
        if self.type in ("CNAME", "PTR"):
            return str(self.data)
        if self.type == "TXT":
            return " ".join('"' + s.replace('"', '\\"') + '"' for s in self.data)
        if self.type == "SRV":
            d = self.data
            return f"{d.priority} {d.weight} {d.port} {d.target}"
        raise UnsupportedRecordType(f"Unknown RR type {self.type}, can't convert to value")

    def with_ttl(self, ttl: int) -> "DNSRecord":
        return replace(self, ttl=ttl)

    def _map_names(self, func) -> "DNSRecord":
        if self.type not in PUBLISHABLE_TYPES:
            raise UnsupportedRecordType(f"Unsupported RR type {self.type}")
        data = self.data
        if self.type in ("CNAME", "PTR"):
            data = func(data)
        elif self.type == "SRV":
            data = data._replace(target=func(data.target))
        return replace(self, name=func(self.name), data=data)

    def to_absolute(self, base) -> "DNSRecord":
        """Qualify the owner name and any name-valued payload against ``base``."""
        if self.is_absolute and self.type in PUBLISHABLE_TYPES:
            return self
        base = DomainName.from_text(base, absolute=True)
        return self._map_names(lambda n: n if n.absolute else n.concat(base))

    def to_relative(self, base) -> "DNSRecord":
        """
        Strip ``base`` from the owner name and any name-valued payload.

        Raises ValueError when an absolute name is not inside ``base``.
        """
        if not self.is_absolute and self.type in PUBLISHABLE_TYPES:
            return self
        base = DomainName.from_text(base, absolute=True)
        return self._map_names(lambda n: n.strip_suffix(base) if n.absolute else n)

    def is_subdomain_of(self, base) -> bool:
        return self.name.is_subdomain_of(DomainName.from_text(base, absolute=self.is_absolute))

    def summary(self) -> str:
        try:
            value = self.value
        except UnsupportedRecordType:
            value = " ".join(self.data)
        return f"{self.name.fqdn} {self.ttl} {self.type} {value}"

    def __str__(self):
        return self.summary()
