"""
Backend: record type dispatch and coupled SRV/TXT/PTR lifecycle on top of a record store
"""
import logging
import re
from typing import Callable, Iterable, List, Tuple

from .base import InvalidRequest, RecordStore, SetChange
from .cache import RecordCache
from .name import DomainName
from .record import PUBLISHABLE_TYPES, DNSRecord
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# Relative names of address records that several containers may point at
SHARED_RECORD_NAME = re.compile(r"\A(\d+-\d+-\d+-\d+\.)?[^.]+\Z")


class Backend:
    """
    Publishes and suppresses single records against one record store.

    Records come in relative to the managed zone and are qualified before
    they reach the store. Every change is planned from the record cache,
    written inside a store transaction and, when the store reports a
    conflict, re-planned after refreshing the record sets involved.
    """

    def __init__(self, name: str, config, store: RecordStore, retry: RetryPolicy = None):
        self.name = name
        self.config = config
        self.store = store
        self.base_domain = DomainName.from_text(store.zone, absolute=True)
        self.retry = retry or RetryPolicy(conflict_attempts=config.conflict_retries)
        self.cache = RecordCache(store, self.retry)
        self._shared_records = {}

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} {self.base_domain.fqdn}>"

    @property
    def shared_records(self) -> List[DNSRecord]:
        return list(self._shared_records)

    def publish(self, rr: DNSRecord) -> None:
        """
        Make ``rr`` present in the store

        A, AAAA, CNAME and TXT replace their whole record set; SRV and PTR
        are merged into the existing set.

        Raises:
            InvalidRequest: If the record type cannot be published
        """
        try:
            logger.debug(f"[{self.name}] Publishing record {rr}")
            if rr.type in ("A", "AAAA", "CNAME", "TXT"):
                self._set_record(rr.to_absolute(self.base_domain))
            elif rr.type in ("SRV", "PTR"):
                self._add_record(rr.to_absolute(self.base_domain))
            else:
                raise InvalidRequest(f"Don't know how to publish a {rr.type} record")
        except InvalidRequest:
            raise
        except Exception as e:
            logger.error(f"[{self.name}] Error while publishing record {rr}: {e}", exc_info=True)

    def suppress(self, rr: DNSRecord) -> None:
        """
        Withdraw ``rr`` from the store

        Shared address records are only remembered here and removed by
        ``suppress_shared_records``. Removing the last SRV record of a
        service also removes its TXT set and its PTR entry.

        Raises:
            InvalidRequest: For TXT and PTR records, and unknown types
        """
        try:
            logger.debug(f"[{self.name}] Suppressing record {rr}")
            if rr.type == "A":
                relative = rr.to_relative(self.base_domain)
                if SHARED_RECORD_NAME.match(str(relative.name)):
                    logger.debug(f"[{self.name}] Detected {relative.name} as a shared record")
                    self._shared_records[relative] = True
                else:
                    self._remove_record(rr.to_absolute(self.base_domain))
            elif rr.type in ("AAAA", "CNAME"):
                self._remove_record(rr.to_absolute(self.base_domain))
            elif rr.type == "SRV":
                self._remove_srv_record(rr.to_absolute(self.base_domain))
            elif rr.type in ("TXT", "PTR"):
                raise InvalidRequest(f"Cannot unconditionally suppress a {rr.type} record")
            else:
                raise InvalidRequest(f"Don't know how to suppress a {rr.type} record")
        except InvalidRequest:
            raise
        except Exception as e:
            logger.error(f"[{self.name}] Error while suppressing record {rr}: {e}", exc_info=True)

    def suppress_shared_records(self) -> None:
        """Remove every deferred shared record, and the host's own address record"""
        pending = list(self._shared_records)
        host_record = self.config.host_dns_record
        if host_record is not None and host_record not in pending:
            pending.append(host_record)

        for rr in pending:
            try:
                self._remove_record(rr.to_absolute(self.base_domain))
            except Exception as e:
                logger.error(f"[{self.name}] Error while removing shared record {rr}: {e}", exc_info=True)
        self._shared_records.clear()

    def records_in_zone(self) -> List[DNSRecord]:
        """
        Read every publishable record in the zone

        Returns:
            Records relative to the zone; records outside it are dropped
        """
        self.cache.refresh_all()
        records = []
        for rr in self.cache.all_records():
            if rr.type not in PUBLISHABLE_TYPES:
                continue
            try:
                records.append(rr.to_relative(self.base_domain))
            except ValueError as e:
                logger.warning(f"[{self.name}] Ignoring record {rr}: {e}")
        return records

    # Change planning

    def _set_record(self, rr: DNSRecord) -> None:
        self._converge(
            f"set {rr}",
            [(rr.name, rr.type)],
            lambda: [SetChange(rr.name, rr.type, rr.ttl, (rr,))],
        )

    def _add_record(self, rr: DNSRecord) -> None:
        def plan():
            members = []
            for existing in self.cache.get(rr.name, rr.type):
                existing = existing.with_ttl(rr.ttl)
                if existing not in members:
                    members.append(existing)
            if rr not in members:
                members.append(rr)
            return [SetChange(rr.name, rr.type, rr.ttl, tuple(members))]

        self._converge(f"add {rr}", [(rr.name, rr.type)], plan)

    def _remove_record(self, rr: DNSRecord) -> None:
        def plan():
            existing = self.cache.get(rr.name, rr.type)
            if not existing:
                logger.warning(f"[{self.name}] No existing {rr.type} set to remove {rr} from")
                return []
            remaining = tuple(r for r in existing if r.data != rr.data)
            return [SetChange(rr.name, rr.type, existing[0].ttl, remaining)]

        self._converge(f"remove {rr}", [(rr.name, rr.type)], plan)

    def _remove_srv_record(self, rr: DNSRecord) -> None:
        parent = rr.parent_name

        def plan():
            existing = self.cache.get(rr.name, "SRV")
            remaining = tuple(r for r in existing if r.data != rr.data)
            changes = []
            if existing:
                changes.append(SetChange(rr.name, "SRV", existing[0].ttl, remaining))
            else:
                logger.warning(f"[{self.name}] No existing SRV set to remove {rr} from")
            if remaining:
                return changes

            # No instances of the service are left, so its metadata goes too.
            # This also finishes a cascade a store applied only in part.

            txt = self.cache.get(rr.name, "TXT")
            if txt:
                logger.debug(f"[{self.name}] Removing associated TXT record for {rr.name.fqdn}")
                changes.append(SetChange(rr.name, "TXT", txt[0].ttl, ()))
            else:
                logger.warning(f"[{self.name}] TXT record for {rr.name.fqdn} is missing")

            ptrs = self.cache.get(parent, "PTR")
            kept = tuple(p for p in ptrs if p.data != rr.name)
            if len(kept) != len(ptrs):
                logger.debug(f"[{self.name}] Removing associated PTR entry {parent.fqdn} -> {rr.name.fqdn}")
                changes.append(SetChange(parent, "PTR", ptrs[0].ttl, kept))
            return changes

        self._converge(
            f"remove SRV {rr}",
            [(rr.name, "SRV"), (rr.name, "TXT"), (parent, "PTR")],
            plan,
        )

    def _converge(self, description: str, keys: Iterable[Tuple[DomainName, str]],
                  plan: Callable[[], List[SetChange]]) -> bool:
        """
        Write the changes ``plan`` computes, re-planning on conflict

        Returns:
            True if the changes were applied
        """
        description = f"[{self.name}] {description}"

        def run():
            with self.store.transaction():
                changes = plan()
                if changes:
                    self.store.replace_sets(changes)
            return changes

        def attempt():
            for change in self.retry.transient(run, description=description):
                self.cache.set(change.name, change.type, *change.members)

        def refresh():
            for name, rtype in keys:
                self.cache.refresh(name, rtype)

        return self.retry.conflict(attempt, refresh, description=description)
