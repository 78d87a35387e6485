"""
View of a running Docker container as a source of DNS records
"""
import logging
import re
from typing import Dict, List, Optional

from ..dns.record import DNSRecord
from .service_instance import ServiceInstance

logger = logging.getLogger(__name__)

SERVICE_LABEL = re.compile(r"\A_([^.]+(?:\.\d+)?)\.(.+)\Z")


class Container:
    """
    A container's inspect data, reduced to what record generation needs

    Args:
        attrs: The ``docker inspect`` document for the container
        config: Configuration object
    """

    def __init__(self, attrs: dict, config):
        self.config = config
        self.id = attrs["Id"]
        self.stopped = False

        name = attrs.get("Name") or (attrs.get("Names") or [""])[0]
        self.name = name.lstrip("/")

        container_config = attrs.get("Config") or {}
        host_config = attrs.get("HostConfig") or {}
        network_settings = attrs.get("NetworkSettings") or {}

        self.host_network = (host_config.get("NetworkMode") or "").lower() == "host"
        self.ipv4_address: Optional[str] = None
        self.ipv6_address: Optional[str] = None
        self.exposed_ports: Dict[str, dict] = {}
        self.published_ports: Dict[str, Optional[list]] = {}

        if not self.host_network:
            networks = network_settings.get("Networks") or {}
            if not networks:
                logger.debug(f"[{self.short_id}] No network found in NetworkSettings")
            elif len(networks) > 1:
                logger.error(
                    f"[{self.short_id}] Unsupported NetworkSettings.Networks. "
                    f"Only a single network is supported at this time."
                )
                logger.info(f"[{self.short_id}] Networks are: {sorted(networks)}")
            else:
                network = next(iter(networks.values())) or {}
                self.ipv4_address = network.get("IPAddress") or None
                self.ipv6_address = network.get("GlobalIPv6Address") or None

            self.exposed_ports = container_config.get("ExposedPorts") or {}
            self.published_ports = network_settings.get("Ports") or {}

        logger.debug(f"[{self.short_id}] IPv4 address: {self.ipv4_address!r}")
        logger.debug(f"[{self.short_id}] IPv6 address: {self.ipv6_address!r}")
        logger.debug(f"[{self.short_id}] Exposed ports: {self.exposed_ports!r}")
        logger.debug(f"[{self.short_id}] Published ports: {self.published_ports!r}")

        self.service_instances = self._parse_service_instances(container_config.get("Labels") or {})

    def __repr__(self):
        return f"<Container {self.short_id} {self.name!r}>"

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @property
    def addressable(self) -> bool:
        return self.host_network or bool(self.ipv4_address) or bool(self.ipv6_address)

    def port_exposed(self, spec: str) -> bool:
        return self.host_network or spec in self.exposed_ports

    def _binding(self, spec: str) -> Optional[dict]:
        bindings = self.published_ports.get(spec)
        if not bindings:
            return None
        return bindings[0]

    def host_port_for(self, spec: str) -> Optional[int]:
        if self.host_network:
            return int(spec.split("/")[0])
        binding = self._binding(spec)
        port = binding.get("HostPort") if binding else None
        return int(port) if port else None

    def host_address_for(self, spec: str) -> Optional[str]:
        binding = self._binding(spec)
        address = binding.get("HostIp") if binding else None
        if address in (None, "", "0.0.0.0"):
            return None
        return address

    def dns_records(self) -> List[DNSRecord]:
        records = []
        for instance in self.service_instances:
            records.extend(instance.dns_records())
        return records

    def publish_records(self, backend) -> None:
        for rr in self.dns_records():
            backend.publish(rr)

    def suppress_records(self, backend) -> None:
        # Dependent records first; TXT and PTR go with their SRV record
        for rr in reversed(self.dns_records()):
            if rr.type not in ("TXT", "PTR"):
                backend.suppress(rr)

    def _parse_service_instances(self, labels: Dict[str, str]) -> List[ServiceInstance]:
        prefix = self.config.label_prefix + "."
        grouped: Dict[str, Dict[str, str]] = {}
        for label, value in labels.items():
            if not label.startswith(prefix):
                continue
            match = SERVICE_LABEL.match(label[len(prefix):])
            if not match:
                logger.warning(f"[{self.short_id}] Ignoring invalid label {label}.")
                continue
            grouped.setdefault(match.group(1), {})[match.group(2)] = value

        # "_http.1" and "_http.2" are two instances of the same service
        return [
            ServiceInstance(service.split(".", 1)[0], service_labels, self, self.config)
            for service, service_labels in grouped.items()
        ]
