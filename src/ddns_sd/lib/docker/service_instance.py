"""
DNS-SD records for one service advertised by a container
"""
import logging
import re
from typing import Dict, List, Optional

from ..dns.name import DomainName
from ..dns.record import DNSRecord

logger = logging.getLogger(__name__)

PROTOCOLS = {"": ["tcp"], "tcp": ["tcp"], "udp": ["udp"], "both": ["tcp", "udp"]}
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
PRINTABLE_ASCII = re.compile(r"\A[\x20-\x7e]+\Z")


class ServiceInstanceValidationError(Exception):
    pass


class ServiceInstance:
    """
    One ``_<service>`` label group on a container.

    Produces, relative to the managed zone, the address records for the
    container, an SRV/TXT pair per protocol, the PTR entry that advertises
    the instance and any CNAME aliases.
    """

    def __init__(self, name: str, labels: Dict[str, str], container, config):
        self.name = name
        self.labels = labels
        self.container = container
        self.config = config

    def __repr__(self):
        return f"<ServiceInstance _{self.name} on {self.container_desc}>"

    @property
    def container_desc(self) -> str:
        return f"{self.container.short_id} ({self.container.name!r})"

    def dns_records(self) -> List[DNSRecord]:
        if not self.container.addressable:
            logger.debug(
                f"Container {self.container.name} does not have IP addresses; "
                f"not creating DNS records for service {self.name}"
            )
            return []

        try:
            protos = self.protos
            for proto in protos:
                if not self.container.port_exposed(self._port_spec(proto)):
                    raise ServiceInstanceValidationError(
                        f"Port specified in labels ({self._port_spec(proto)}) on container "
                        f"{self.container_desc} not exposed."
                    )
            # Referenced records come before the records that point at them
            return (
                self._a_records(protos)
                + self._aaaa_records(protos)
                + self._srv_records(protos)
                + self._txt_records(protos)
                + self._ptr_records(protos)
                + self._cname_records(protos)
            )
        except ServiceInstanceValidationError as e:
            logger.error(f"{e} Service not registered.")
            return []

    @property
    def protos(self) -> List[str]:
        proto = (self.labels.get("protocol") or "").lower()
        if proto not in PROTOCOLS:
            raise ServiceInstanceValidationError(
                f"Invalid protocol label {self.labels['protocol']!r} on container {self.container_desc}, "
                f"must be one of 'tcp', 'udp', or 'both'."
            )
        return PROTOCOLS[proto]

    def _port_spec(self, proto: str) -> str:
        return f"{self.labels.get('port')}/{proto}"

    # Names

    @property
    def _host_name(self) -> DomainName:
        return DomainName([self.config.hostname])

    def _instance_v4_address(self, protos) -> Optional[str]:
        spec = self._port_spec(protos[0])
        if self.container.host_port_for(spec):
            published = self.container.host_address_for(spec)
            if published:
                return published
            if not self.config.host_ip_address:
                raise ServiceInstanceValidationError(
                    f"Published port on default IP address detected on container {self.container_desc}, "
                    f"but no host IP address configured."
                )
            return None
        return self.container.ipv4_address

    def _instance_address_name(self, protos) -> DomainName:
        spec = self._port_spec(protos[0])
        if self.container.host_network:
            return self._host_name
        if self.container.host_port_for(spec):
            if self.container.host_address_for(spec):
                dashed = self._instance_v4_address(protos).replace(".", "-")
                return DomainName([dashed, self.config.hostname])
            return self._host_name
        return DomainName([self.container.short_id, self.config.hostname])

    def _service_name(self, proto: str) -> DomainName:
        return DomainName([f"_{self.name}", f"_{proto}"])

    def _srv_instance_name(self, proto: str) -> DomainName:
        name = self.labels.get("instance") or self.container.name
        if not name:
            raise ServiceInstanceValidationError(f"Instance name on container {self.container_desc} is empty.")
        try:
            encoded = name.encode("utf-8")
        except UnicodeEncodeError:
            raise ServiceInstanceValidationError(
                f"Instance name {name!r} on container {self.container_desc} is not valid UTF-8."
            )
        if len(encoded) > 63:
            raise ServiceInstanceValidationError(
                f"Instance name {name!r} on container {self.container_desc} is too long (must be <= 63 octets)."
            )
        if CONTROL_CHARS.search(name):
            raise ServiceInstanceValidationError(
                f"Instance name {name!r} on container {self.container_desc} is not valid Net-Unicode "
                f"(contains ASCII control characters)."
            )
        return DomainName((name,) + self._service_name(proto).labels)

    # Records

    def _a_records(self, protos) -> List[DNSRecord]:
        address = None if self.container.host_network else self._instance_v4_address(protos)
        if not address:
            return []
        return [DNSRecord.build(self._instance_address_name(protos), self.config.record_ttl, "A", address)]

    def _aaaa_records(self, protos) -> List[DNSRecord]:
        if (self.container.host_network
                or self.container.host_port_for(self._port_spec(protos[0]))
                or not self.container.ipv6_address):
            return []
        return [DNSRecord.build(self._instance_address_name(protos), self.config.record_ttl, "AAAA",
                                self.container.ipv6_address)]

    def _ushort_label(self, key: str) -> int:
        value = self.labels.get(key)
        if value is None:
            return 0
        if not re.match(r"\A\d+\Z", value):
            raise ServiceInstanceValidationError(
                f"Value {value!r} for label {self.config.label_prefix}._{self.name}.{key} on "
                f"{self.container_desc} is not a number."
            )
        if not 0 <= int(value) <= 65535:
            raise ServiceInstanceValidationError(
                f"Value {value!r} for label {self.config.label_prefix}._{self.name}.{key} on "
                f"{self.container_desc} is invalid (must be between 0-65535 inclusive)."
            )
        return int(value)

    def _srv_records(self, protos) -> List[DNSRecord]:
        priority = self._ushort_label("priority")
        weight = self._ushort_label("weight")
        records = []
        for proto in protos:
            port = self.container.host_port_for(self._port_spec(proto)) or self.labels.get("port")
            records.append(DNSRecord.build(
                self._srv_instance_name(proto), self.config.record_ttl, "SRV",
                priority, weight, int(port), self._instance_address_name(protos),
            ))
        return records

    def _txt_records(self, protos) -> List[DNSRecord]:
        tags = self._tags()
        return [DNSRecord.build(self._srv_instance_name(proto), self.config.record_ttl, "TXT", *tags)
                for proto in protos]

    def _ptr_records(self, protos) -> List[DNSRecord]:
        return [DNSRecord.build(self._service_name(proto), self.config.record_ttl, "PTR",
                                self._srv_instance_name(proto))
                for proto in protos]

    def _cname_records(self, protos) -> List[DNSRecord]:
        aliases = [a.strip() for a in (self.labels.get("aliases") or "").split(",") if a.strip()]
        return [DNSRecord.build(alias, self.config.record_ttl, "CNAME", self._instance_address_name(protos))
                for alias in aliases]

    def _tags(self) -> List[str]:
        tags = []
        for key, value in self.labels.items():
            if key.startswith("tag."):
                tag_key = key[len("tag."):]
                self._validate_tag_key(tag_key)
                tags.append(f"{tag_key}={value}")
        for tag in (self.labels.get("tags") or "").split("\n"):
            if tag:
                self._validate_tag_key(tag)
                tags.append(tag)

        for tag in tags:
            if len(tag.encode("utf-8")) > 255:
                raise ServiceInstanceValidationError(
                    f"Tag {tag!r} on {self.container_desc} is too long (must be <= 255 octets)."
                )
        tags.sort(key=lambda t: 0 if t.startswith("txtvers=") else 1)
        return tags or [""]

    def _validate_tag_key(self, key: str) -> None:
        if key == "":
            raise ServiceInstanceValidationError(f"Tag label set on {self.container_desc} has an empty tag key.")
        if "=" in key:
            raise ServiceInstanceValidationError(
                f"Tag key {key!r} on {self.container_desc} contains an equals sign, which is forbidden."
            )
        if not PRINTABLE_ASCII.match(key):
            raise ServiceInstanceValidationError(
                f"Tag label {key!r} on {self.container_desc} contains a forbidden character "
                f"(only printable ASCII allowed)."
            )
