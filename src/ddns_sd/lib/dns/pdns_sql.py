"""
PowerDNS generic SQL schema record store
"""
import logging
import time
from contextlib import contextmanager
from typing import Iterable, List, Optional

from sqlalchemy import (
    Boolean, Column, Integer, MetaData, String, Table, create_engine, delete, insert, or_, select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError

from ..config import ConfigError
from .base import DNSError, RecordStore, TransientError
from .name import DomainName
from .record import DNSRecord

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected
RETRY_SQLSTATES = ("40001", "40P01")
# Drivers that report these without an SQLSTATE
RETRY_MESSAGES = (
    "could not serialize access",
    "could not connect",
    "connection refused",
    "server closed the connection",
    "database is locked",
)

metadata = MetaData()

domains = Table(
    "domains", metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("type", String(6), nullable=False, default="NATIVE"),
)

records = Table(
    "records", metadata,
    Column("domain_id", Integer, nullable=False),
    Column("name", String(255)),
    Column("type", String(10)),
    Column("content", String(65535)),
    Column("ttl", Integer),
    Column("prio", Integer),
    Column("change_date", Integer),
    Column("disabled", Boolean, default=False),
    Column("auth", Boolean, default=True),
)


def _retryable(error: DBAPIError) -> bool:
    """Whether running the transaction again can succeed"""
    if error.connection_invalidated:
        return True
    code = getattr(error.orig, "pgcode", None) or ""
    # Class 08 is connection exceptions
    if code in RETRY_SQLSTATES or code.startswith("08"):
        return True
    message = str(error.orig).lower()
    return any(text in message for text in RETRY_MESSAGES)


def _content(rr: DNSRecord) -> str:
    # PowerDNS compares AAAA content textually; keep it in canonical lower case
    return rr.value.lower() if rr.type == "AAAA" else rr.value


class PdnsSqlStore(RecordStore):
    """
    Records kept directly in a PowerDNS database.

    Each change runs in a SERIALIZABLE transaction that also performs the
    reads the change was planned from, so a concurrent writer surfaces as
    a serialization failure and the whole transaction is run again.
    """

    read_through = True

    def __init__(self, zone, settings: dict, engine: Optional[Engine] = None):
        super().__init__(zone, settings)
        if engine is None:
            url = settings.get("DATABASE_URL")
            if not url:
                raise ConfigError("DDNSSD_PDNS_SQL_DATABASE_URL cannot be empty or missing")
            engine = create_engine(url, pool_pre_ping=True, isolation_level="SERIALIZABLE")
        self.engine = engine
        self.zone_name = DomainName.from_text(zone, absolute=True)
        self._conn: Optional[Connection] = None
        self._domain_id: Optional[int] = None

    def describe(self) -> str:
        return f"PowerDNS SQL ({self.zone_name})"

    @contextmanager
    def transaction(self):
        if self._conn is not None:
            yield
            return
        try:
            with self.engine.begin() as conn:
                self._conn = conn
                yield
        except DBAPIError as e:
            if _retryable(e):
                raise TransientError(f"database unavailable or transaction conflicted: {e.orig}") from e
            raise DNSError(f"database error: {e.orig}") from e
        finally:
            self._conn = None

    def _run(self, func):
        if self._conn is not None:
            return func(self._conn)
        with self.transaction():
            return func(self._conn)

    @property
    def domain_id(self) -> int:
        """Id of the PowerDNS domain the zone lives in, walking up to parent domains"""
        if self._domain_id is None:
            def lookup(conn):
                name = self.zone_name
                while len(name):
                    row = conn.execute(
                        select(domains.c.id).where(domains.c.name == str(name).lower())
                    ).first()
                    if row is not None:
                        return row.id
                    name = name.parent()
                return None

            domain_id = self._run(lookup)
            if domain_id is None:
                raise DNSError(f"No PowerDNS domain found for {self.zone_name}")
            self._domain_id = domain_id
        return self._domain_id

    def _to_record(self, row) -> DNSRecord:
        return DNSRecord.from_content(row.name, row.ttl, row.type, row.content)

    def list_zone_records(self) -> List[DNSRecord]:
        zone = str(self.zone_name).lower()
        query = (
            select(records.c.name, records.c.type, records.c.ttl, records.c.content)
            .where(records.c.domain_id == self.domain_id)
            .where(or_(records.c.name == zone, records.c.name.like(f"%.{zone}")))
        )
        rows = self._run(lambda conn: conn.execute(query).all())
        result = []
        for row in rows:
            try:
                result.append(self._to_record(row))
            except ValueError as e:
                logger.warning(f"Skipping unparseable {row.type} record {row.name}: {e}")
        return result

    def fetch_set(self, name, rtype: str) -> List[DNSRecord]:
        query = (
            select(records.c.name, records.c.type, records.c.ttl, records.c.content)
            .where(records.c.domain_id == self.domain_id)
            .where(records.c.name == str(name).lower())
            .where(records.c.type == rtype)
        )
        return [self._to_record(row) for row in self._run(lambda conn: conn.execute(query).all())]

    def replace_set(self, name, rtype: str, ttl: int, members: Iterable[DNSRecord]) -> None:
        name = str(name).lower()
        members = list(members)
        domain_id = self.domain_id

        def write(conn):
            conn.execute(
                delete(records)
                .where(records.c.domain_id == domain_id)
                .where(records.c.name == name)
                .where(records.c.type == rtype)
            )
            if members:
                now = int(time.time())
                conn.execute(insert(records), [
                    {
                        "domain_id": domain_id,
                        "name": name,
                        "type": rtype,
                        "content": _content(rr),
                        "ttl": ttl,
                        "change_date": now,
                    }
                    for rr in members
                ])

        logger.debug(f"Replacing {rtype} {name} with {[rr.value for rr in members]}")
        self._run(write)
