"""
Base classes and errors for DNS record stores
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterable, Iterator, List, NamedTuple, Tuple


class DNSError(Exception):
    """Base exception for DNS operations"""
    pass


class InvalidRequest(DNSError):
    """A record operation was asked for a record type it does not accept"""
    pass


class ConflictError(DNSError):
    """The store's copy of a record set changed since it was last observed"""
    pass


class TransientError(DNSError):
    """The store is temporarily unable to accept the request"""
    pass


class UnsupportedRecordType(RuntimeError):
    pass


class SetChange(NamedTuple):
    """Replacement of the whole (name, type) record set with ``members``"""
    name: object
    type: str
    ttl: int
    members: Tuple


class RecordStore(ABC):
    """
    A remote store of DNS records for one zone.

    Stores deal in absolute records only. Writes replace a whole
    (name, type) record set; a store signals ``ConflictError`` when the set
    changed since it was last read and ``TransientError`` when it cannot
    take the request right now.
    """

    #: Read current state inside ``transaction()`` rather than trusting a cache
    read_through = False

    def __init__(self, zone, settings: dict):
        self.zone = zone
        self.settings = settings

    @abstractmethod
    def list_zone_records(self) -> List:
        """
        List every record in the zone

        Returns:
            Flat list of absolute DNSRecord objects, pagination already followed
        """
        pass

    @abstractmethod
    def fetch_set(self, name, rtype: str) -> List:
        """
        Read the current members of one record set

        Returns:
            List of absolute DNSRecord objects, empty if the set does not exist
        """
        pass

    @abstractmethod
    def replace_set(self, name, rtype: str, ttl: int, members: Iterable) -> None:
        """
        Replace one record set

        Args:
            name: Absolute owner name
            rtype: Record type
            ttl: TTL for the new set
            members: Records that make up the new set; empty deletes the set

        Raises:
            ConflictError: If the set changed since it was observed
            TransientError: If the store is unavailable
        """
        pass

    def replace_sets(self, changes: Iterable[SetChange]) -> None:
        """Apply several set replacements, atomically where the store can"""
        for change in changes:
            self.replace_set(change.name, change.type, change.ttl, change.members)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        yield

    def describe(self) -> str:
        return f"{type(self).__name__}({self.zone})"
