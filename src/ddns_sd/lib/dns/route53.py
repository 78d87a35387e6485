"""
Amazon Route53 record store
"""
import logging
import re
from typing import Dict, Iterable, List, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from ..config import ConfigError
from .base import ConflictError, DNSError, RecordStore, SetChange, TransientError
from .name import DomainName
from .record import DNSRecord

logger = logging.getLogger(__name__)

THROTTLE_CODES = ("Throttling", "ThrottlingException", "PriorRequestNotComplete", "ServiceUnavailable")

_OCTAL_ESCAPE = re.compile(r"\\(\d{3})")


def _unescape(name: str) -> str:
    """Route53 hands back characters such as ``*`` as octal escapes"""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), name)


def _value(rr: DNSRecord) -> str:
    if rr.type in ("CNAME", "PTR"):
        return rr.data.fqdn
    if rr.type == "SRV":
        d = rr.data
        return f"{d.priority} {d.weight} {d.port} {d.target.fqdn}"
    return rr.value


class Route53Store(RecordStore):
    """
    Records in a Route53 hosted zone.

    A change batch deleting a record set has to name that set exactly,
    TTL included, so the last observed state of each set is kept and
    every replacement is sent as DELETE of the old set plus CREATE of the
    new one in a single batch. Route53 rejects the whole batch with
    InvalidChangeBatch when the set no longer matches.
    """

    def __init__(self, zone, settings: dict, client=None):
        super().__init__(zone, settings)
        self.zone_name = DomainName.from_text(zone, absolute=True)

        self.zone_id = settings.get("ZONE_ID")
        if not self.zone_id:
            raise ConfigError("DDNSSD_ROUTE53_ZONE_ID cannot be empty or missing")

        if client is None:
            # Route53 is global, but the client still wants a region
            client = boto3.client("route53", region_name=settings.get("REGION") or "us-east-1")
        self.client = client
        self._observed: Dict[Tuple[DomainName, str], Tuple[int, List[str]]] = {}
        self._listed = False

    def describe(self) -> str:
        return f"Route53 ({self.zone_id}/{self.zone_name})"

    def _errors(self, operation: str):
        return _Route53Errors(operation)

    def _import(self, rrset: dict) -> List[DNSRecord]:
        """Remember one record set and return its records"""
        if "ResourceRecords" not in rrset:
            # Alias sets have no records of their own
            return []
        name = DomainName.from_text(_unescape(rrset["Name"]), absolute=True)
        rtype = rrset["Type"]
        ttl = rrset.get("TTL", 0)
        values = [item["Value"] for item in rrset["ResourceRecords"]]
        self._observed[(name, rtype)] = (ttl, values)

        records = []
        for value in values:
            try:
                records.append(DNSRecord.from_content(name, ttl, rtype, value))
            except ValueError as e:
                logger.warning(f"Skipping unparseable {rtype} record {name}: {e}")
        return records

    def list_zone_records(self) -> List[DNSRecord]:
        self._observed = {}
        result = []
        with self._errors("list record sets"):
            paginator = self.client.get_paginator("list_resource_record_sets")
            for page in paginator.paginate(HostedZoneId=self.zone_id):
                for rrset in page["ResourceRecordSets"]:
                    result.extend(self._import(rrset))
        self._listed = True
        return result

    def fetch_set(self, name, rtype: str) -> List[DNSRecord]:
        with self._errors("get record set"):
            response = self.client.list_resource_record_sets(
                HostedZoneId=self.zone_id,
                StartRecordName=name.fqdn,
                StartRecordType=rtype,
                MaxItems="1",
            )
        for rrset in response["ResourceRecordSets"]:
            if rrset["Type"] == rtype and DomainName.from_text(_unescape(rrset["Name"]), absolute=True) == name:
                return self._import(rrset)
        self._observed[(name, rtype)] = (0, [])
        return []

    @staticmethod
    def _change(action: str, name, rtype: str, ttl: int, values: List[str]) -> dict:
        return {
            "Action": action,
            "ResourceRecordSet": {
                "Name": name.fqdn,
                "Type": rtype,
                "TTL": ttl,
                "ResourceRecords": [{"Value": v} for v in values],
            },
        }

    def replace_set(self, name, rtype: str, ttl: int, members: Iterable[DNSRecord]) -> None:
        self.replace_sets([SetChange(name, rtype, ttl, tuple(members))])

    def replace_sets(self, changes: Iterable[SetChange]) -> None:
        changes = list(changes)
        for change in changes:
            key = (change.name, change.type)
            if key not in self._observed and not self._listed:
                self.fetch_set(change.name, change.type)

        batch = []
        written = {}
        for change in changes:
            old_ttl, old_values = self._observed.get((change.name, change.type), (0, []))
            new_values = []
            for rr in change.members:
                value = _value(rr)
                if value not in new_values:
                    new_values.append(value)
            written[(change.name, change.type)] = (change.ttl, new_values)

            if old_values and sorted(old_values) == sorted(new_values):
                batch.append(self._change("UPSERT", change.name, change.type, change.ttl, new_values))
                continue
            if old_values:
                batch.append(self._change("DELETE", change.name, change.type, old_ttl, old_values))
            if new_values:
                batch.append(self._change("CREATE", change.name, change.type, change.ttl, new_values))

        if not batch:
            return

        logger.debug(f"Route53 change batch: {', '.join(c['Action'] for c in batch)}")
        with self._errors("change record sets"):
            self.client.change_resource_record_sets(HostedZoneId=self.zone_id, ChangeBatch={"Changes": batch})

        self._observed.update(written)


class _Route53Errors:
    """Translate botocore exceptions into store errors"""

    def __init__(self, operation: str):
        self.operation = operation

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None:
            return False
        message = f"Route53 {self.operation} failed: {exc}"
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code")
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
            if code == "InvalidChangeBatch":
                raise ConflictError(message) from exc
            if code in THROTTLE_CODES or status >= 500:
                raise TransientError(message) from exc
            raise DNSError(message) from exc
        if isinstance(exc, (BotoConnectionError, HTTPClientError)):
            raise TransientError(message) from exc
        if isinstance(exc, BotoCoreError):
            raise DNSError(message) from exc
        return False
