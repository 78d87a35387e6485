"""
Per-backend cache of record set contents
"""
import logging
from collections import defaultdict
from typing import Dict, List, Tuple

from .base import RecordStore
from .name import DomainName
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class RecordCache:
    """
    Last known members of each (name, type) record set.

    Not a source of truth: every decision made from it is followed by a
    write, and a conflicting write refreshes the entries involved.
    """

    def __init__(self, store: RecordStore, retry: RetryPolicy):
        self.store = store
        self.retry = retry
        self._sets: Dict[Tuple[DomainName, str], List] = defaultdict(list)

    def get(self, name, rtype: str) -> List:
        if self.store.read_through:
            return list(self.store.fetch_set(name, rtype))
        return list(self._sets.get((name, rtype), []))

    def set(self, name, rtype: str, *records) -> None:
        if records:
            self._sets[(name, rtype)] = list(records)
        else:
            self._sets.pop((name, rtype), None)

    def add(self, record) -> None:
        members = self._sets[(record.name, record.type)]
        if record not in members:
            members.append(record)

    def remove(self, record) -> None:
        key = (record.name, record.type)
        members = [r for r in self._sets.get(key, []) if r != record]
        self.set(record.name, record.type, *members)

    def refresh(self, name, rtype: str) -> None:
        logger.debug(f"Refreshing cached {rtype} set for {name.fqdn}")
        records = self.retry.transient(self.store.fetch_set, name, rtype,
                                       description=f"fetch {rtype} {name.fqdn}")
        self.set(name, rtype, *records)

    def refresh_all(self) -> None:
        records = self.retry.transient(self.store.list_zone_records,
                                       description=f"list {self.store.describe()}")
        self._sets.clear()
        for record in records:
            self._sets[(record.name, record.type)].append(record)

    def all_records(self) -> List:
        return [r for members in self._sets.values() for r in members]
