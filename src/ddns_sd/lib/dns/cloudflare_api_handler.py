"""
Cloudflare DNS record store
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

import cloudflare
from cloudflare import Cloudflare

from ..config import ConfigError
from .base import ConflictError, DNSError, RecordStore, SetChange, TransientError
from .name import DomainName
from .record import DNSRecord

logger = logging.getLogger(__name__)


def _field(obj, key):
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


class CloudflareStore(RecordStore):
    """
    Records in a Cloudflare zone.

    Cloudflare has no conditional writes, so the ids of the records last
    seen in each set are remembered and a change is sent as one batch that
    deletes those ids and posts the new members. If the zone moved on in
    the meantime the batch fails as a whole and is reported as a conflict.
    """

    def __init__(self, zone, settings: dict, client: Optional[Cloudflare] = None):
        super().__init__(zone, settings)
        self.zone_name = DomainName.from_text(zone, absolute=True)

        if client is None:
            token = (settings.get("API_TOKEN") or "").strip()
            api_key = (settings.get("API_KEY") or "").strip()
            api_email = (settings.get("API_EMAIL") or "").strip()

            if token:
                logger.info("Using API Token authentication")
                client = cloudflare.Cloudflare(api_token=token)
            elif api_key and api_email:
                logger.info("Using Global API Key authentication")
                client = cloudflare.Cloudflare(api_key=api_key, api_email=api_email)
            else:
                raise ConfigError(
                    "DDNSSD_CLOUDFLARE_API_TOKEN, or DDNSSD_CLOUDFLARE_API_KEY and "
                    "DDNSSD_CLOUDFLARE_API_EMAIL, must be set"
                )
        self.cf = client
        self._zone_id = settings.get("ZONE_ID") or None
        self._observed: Dict[Tuple[DomainName, str], List[str]] = {}
        # After a full listing, a set missing from _observed is known to be empty
        self._listed = False

    def describe(self) -> str:
        return f"Cloudflare ({self.zone_name})"

    @property
    def zone_id(self) -> str:
        """Get zone ID for the managed zone"""
        if not self._zone_id:
            with self._errors("zone lookup"):
                zones = self.cf.zones.list(name=str(self.zone_name))
            if not zones or not getattr(zones, "result", None):
                raise DNSError(f"Domain {self.zone_name} not found in your Cloudflare account")
            zone_id = _field(zones.result[0], "id")
            if not zone_id:
                raise DNSError(f"Could not extract zone ID for domain {self.zone_name}")
            self._zone_id = zone_id
        return self._zone_id

    def _errors(self, operation: str):
        return _CloudflareErrors(operation)

    def _to_record(self, item) -> Optional[DNSRecord]:
        rtype = _field(item, "type")
        name = _field(item, "name")
        ttl = _field(item, "ttl") or 1
        data = _field(item, "data")
        if rtype == "SRV" and data:
            content = " ".join(str(_field(data, k)) for k in ("priority", "weight", "port", "target"))
        else:
            content = _field(item, "content") or ""
        try:
            return DNSRecord.from_content(name, ttl, rtype, content)
        except ValueError as e:
            logger.warning(f"Skipping unparseable {rtype} record {name}: {e}")
            return None

    def _read(self, **filters) -> Tuple[List[DNSRecord], Dict]:
        found = {}
        result = []
        with self._errors("list records"):
            for item in self.cf.dns.records.list(zone_id=self.zone_id, **filters):
                rr = self._to_record(item)
                if rr is None:
                    continue
                found.setdefault((rr.name, rr.type), []).append(_field(item, "id"))
                result.append(rr)
        return result, found

    def list_zone_records(self) -> List[DNSRecord]:
        result, found = self._read()
        self._observed = found
        self._listed = True
        return result

    def fetch_set(self, name, rtype: str) -> List[DNSRecord]:
        result, found = self._read(name={"exact": str(name)}, type=rtype)
        self._observed[(name, rtype)] = found.get((name, rtype), [])
        return result

    @staticmethod
    def _post(name, rtype: str, ttl: int, rr: DNSRecord) -> dict:
        post = {"name": str(name), "type": rtype, "ttl": ttl}
        if rtype == "SRV":
            post["data"] = {
                "priority": rr.data.priority,
                "weight": rr.data.weight,
                "port": rr.data.port,
                "target": str(rr.data.target),
            }
        else:
            post["content"] = rr.value
        return post

    def replace_set(self, name, rtype: str, ttl: int, members: Iterable[DNSRecord]) -> None:
        self.replace_sets([SetChange(name, rtype, ttl, tuple(members))])

    def replace_sets(self, changes: Iterable[SetChange]) -> None:
        changes = list(changes)
        for change in changes:
            key = (change.name, change.type)
            if key not in self._observed and not self._listed:
                # Never read: the ids to replace have to be known first
                self.fetch_set(change.name, change.type)

        deletes = []
        posts = []
        post_keys = []
        for change in changes:
            key = (change.name, change.type)
            deletes.extend({"id": record_id} for record_id in self._observed.get(key, []))
            for rr in change.members:
                posts.append(self._post(change.name, change.type, change.ttl, rr))
                post_keys.append(key)

        if not deletes and not posts:
            return

        logger.debug(f"Cloudflare batch: {len(deletes)} deletes, {len(posts)} posts")
        with self._errors("batch update"):
            response = self.cf.dns.records.batch(zone_id=self.zone_id, deletes=deletes, posts=posts)

        for change in changes:
            self._observed[(change.name, change.type)] = []
        created = _field(response, "posts") or []
        for key, item in zip(post_keys, created):
            self._observed[key].append(_field(item, "id"))


class _CloudflareErrors:
    """Translate Cloudflare SDK exceptions into store errors"""

    def __init__(self, operation: str):
        self.operation = operation

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None or not isinstance(exc, cloudflare.APIError):
            return False
        message = f"Cloudflare {self.operation} failed: {exc}"
        if isinstance(exc, (cloudflare.RateLimitError, cloudflare.APIConnectionError,
                            cloudflare.InternalServerError)):
            raise TransientError(message) from exc
        if isinstance(exc, (cloudflare.BadRequestError, cloudflare.NotFoundError,
                            cloudflare.ConflictError, cloudflare.UnprocessableEntityError)):
            raise ConflictError(message) from exc
        raise DNSError(message) from exc
