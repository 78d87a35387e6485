"""
Shared fixtures for ddns-sd tests
"""
import pytest

from ddns_sd.lib.config import Config
from ddns_sd.lib.dns.backend import Backend
from ddns_sd.lib.dns.base import RecordStore
from ddns_sd.lib.dns.record import DNSRecord
from ddns_sd.lib.dns.retry import RetryPolicy

BASE_DOMAIN = "example.com"


class MemoryStore(RecordStore):
    """Record store kept in a dict, recording every write"""

    def __init__(self, zone=BASE_DOMAIN, settings=None):
        super().__init__(zone, settings or {})
        self.sets = {}
        self.writes = []
        self.fetches = []
        self.failures = []
        self.always_fail = None

    def seed(self, *records):
        for rr in records:
            rr = rr.to_absolute(self.zone)
            self.sets.setdefault((rr.name, rr.type), []).append(rr)

    def relative_records(self):
        return sorted(
            (rr.to_relative(self.zone) for members in self.sets.values() for rr in members),
            key=lambda rr: (str(rr.name), rr.type, rr.value),
        )

    def list_zone_records(self):
        return [rr for members in self.sets.values() for rr in members]

    def fetch_set(self, name, rtype):
        self.fetches.append((name, rtype))
        return list(self.sets.get((name, rtype), []))

    def replace_set(self, name, rtype, ttl, members):
        if self.always_fail is not None:
            raise self.always_fail
        if self.failures:
            raise self.failures.pop(0)
        members = [rr.with_ttl(ttl) for rr in members]
        self.writes.append((name, rtype, members))
        if members:
            self.sets[(name, rtype)] = members
        else:
            self.sets.pop((name, rtype), None)


@pytest.fixture
def config():
    """Configuration for host "speccy" in example.com"""
    return Config(
        hostname="speccy",
        base_domain=BASE_DOMAIN,
        backends=["log"],
        host_ip_address="192.0.2.42",
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry(sleeps):
    """Retry policy that records its sleeps instead of sleeping"""
    return RetryPolicy(sleep=sleeps.append, rand=lambda: 0.5)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def backend(config, store, retry):
    return Backend("memory", config, store, retry=retry)


def rr(name, rtype, *data, ttl=60):
    """Shorthand for a relative record"""
    return DNSRecord.build(name, ttl, rtype, *data)


CONTAINER_ID = "0123456789ab" + "cdef" * 13


def container_attrs(labels=None, name="/fred", container_id=CONTAINER_ID, network_mode="bridge",
                    ipv4="172.17.0.2", ipv6=None, exposed=("80/tcp",), published=None):
    """A trimmed ``docker inspect`` document"""
    networks = {}
    if ipv4 or ipv6:
        networks["bridge"] = {"IPAddress": ipv4 or "", "GlobalIPv6Address": ipv6 or ""}
    return {
        "Id": container_id,
        "Name": name,
        "Config": {
            "Labels": labels or {},
            "ExposedPorts": {spec: {} for spec in exposed},
        },
        "HostConfig": {"NetworkMode": network_mode},
        "NetworkSettings": {
            "Networks": networks,
            "Ports": published or {},
        },
    }


def service_labels(service="http", **labels):
    """Labels for one service, e.g. service_labels(port="80")"""
    return {f"org.discourse.service._{service}.{key}": value for key, value in labels.items()}
