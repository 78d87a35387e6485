"""
Azure DNS record store, over the Azure Resource Manager REST API
"""
import json
import logging
from typing import Dict, Iterable, List, Optional, Tuple

import requests

from ..config import ConfigError
from .base import ConflictError, DNSError, RecordStore, TransientError
from .name import DomainName
from .record import DNSRecord

logger = logging.getLogger(__name__)

API_URL = "https://management.azure.com"
API_VERSION = "2018-05-01"

# record type -> (property name, per-record value key)
RECORD_PROPERTIES = {
    "A": ("ARecords", "ipv4Address"),
    "AAAA": ("AAAARecords", "ipv6Address"),
    "PTR": ("PTRRecords", "ptrdname"),
    "TXT": ("TXTRecords", "value"),
    "SRV": ("SRVRecords", None),
    "CNAME": ("CNAMERecord", "cname"),
}


class HTTPBearerAuth(requests.auth.AuthBase):
    def __init__(self, token):
        self.token = token

    def __eq__(self, other):
        return isinstance(other, HTTPBearerAuth) and self.token == other.token

    def __ne__(self, other):
        return not self == other

    def __call__(self, r):
        r.headers["Authorization"] = "Bearer " + self.token
        return r


class AzureStore(RecordStore):
    """
    Records in an Azure DNS zone.

    Every record set read or written carries an etag; writes are made
    conditional on the etag last seen, so a set changed by someone else
    is rejected with 412 and reported as a conflict.
    """

    def __init__(self, zone, settings: dict, session: Optional[requests.Session] = None):
        super().__init__(zone, settings)
        self.zone_name = DomainName.from_text(zone, absolute=True)

        self.resource_group_name = settings.get("RESOURCE_GROUP_NAME")
        if not self.resource_group_name:
            raise ConfigError("DDNSSD_AZURE_RESOURCE_GROUP_NAME cannot be empty or missing")
        access_token = settings.get("ACCESS_TOKEN")
        if not access_token:
            raise ConfigError("DDNSSD_AZURE_ACCESS_TOKEN cannot be empty or missing")
        try:
            account = json.loads(access_token)
            token = account["accessToken"]
            self.subscription = account["subscription"]
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigError(f"DDNSSD_AZURE_ACCESS_TOKEN is not a valid account token: {e}")

        self.api_url = (settings.get("API_URL") or API_URL).rstrip("/")
        if session is None:
            session = requests.Session()
        session.auth = HTTPBearerAuth(token)
        self.session = session
        self._etags: Dict[Tuple[DomainName, str], str] = {}

    def describe(self) -> str:
        return f"Azure DNS ({self.resource_group_name}/{self.zone_name})"

    @property
    def zone_url(self) -> str:
        return (
            f"{self.api_url}/subscriptions/{self.subscription}/resourceGroups/{self.resource_group_name}"
            f"/providers/Microsoft.Network/dnsZones/{self.zone_name}"
        )

    def _relative_name(self, name: DomainName) -> str:
        if name == self.zone_name:
            return "@"
        return str(name.strip_suffix(self.zone_name))

    def _set_url(self, name: DomainName, rtype: str) -> str:
        return f"{self.zone_url}/{rtype}/{self._relative_name(name)}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        params = kwargs.pop("params", None)
        if params is None and "api-version=" not in url:
            params = {"api-version": API_VERSION}
        try:
            response = self.session.request(method, url, params=params, timeout=30, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientError(f"Azure {method} {url} failed: {e}") from e

        if response.status_code == 412:
            raise ConflictError(f"Azure {method} {url}: record set changed (412)")
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientError(f"Azure {method} {url}: HTTP {response.status_code}")
        return response

    @staticmethod
    def _check(response: requests.Response, *ok: int) -> None:
        if response.status_code not in ok:
            try:
                detail = response.json().get("error", {}).get("message")
            except ValueError:
                detail = response.text
            raise DNSError(
                f"Azure {response.request.method} {response.url}: HTTP {response.status_code}: {detail}"
            )

    def _import_set(self, item: dict) -> List[DNSRecord]:
        rtype = item.get("type", "").rsplit("/", 1)[-1]
        props = item.get("properties", {})
        name = props.get("fqdn") or f"{item['name']}.{self.zone_name}"
        name = DomainName.from_text(name, absolute=True)
        if item.get("etag"):
            self._etags[(name, rtype)] = item["etag"]
        if rtype not in RECORD_PROPERTIES:
            return []

        prop, key = RECORD_PROPERTIES[rtype]
        entries = props.get(prop) or []
        if isinstance(entries, dict):
            entries = [entries]
        ttl = props.get("TTL", 0)

        result = []
        for entry in entries:
            if rtype == "SRV":
                data = (entry["priority"], entry["weight"], entry["port"], entry["target"])
            elif rtype == "TXT":
                data = tuple(entry.get("value") or [""])
            else:
                data = (entry[key],)
            result.append(DNSRecord.build(name, ttl, rtype, *data, absolute=True))
        return result

    def list_zone_records(self) -> List[DNSRecord]:
        self._etags = {}
        result = []
        url = f"{self.zone_url}/recordsets"
        while url:
            response = self._request("GET", url)
            self._check(response, 200)
            body = response.json()
            for item in body.get("value", []):
                result.extend(self._import_set(item))
            url = body.get("nextLink")
        return result

    def fetch_set(self, name, rtype: str) -> List[DNSRecord]:
        response = self._request("GET", self._set_url(name, rtype))
        if response.status_code == 404:
            self._etags.pop((name, rtype), None)
            return []
        self._check(response, 200)
        return self._import_set(response.json())

    @staticmethod
    def _export_members(rtype: str, members: List[DNSRecord]):
        prop, key = RECORD_PROPERTIES[rtype]
        if rtype == "SRV":
            value = [
                {
                    "priority": rr.data.priority,
                    "weight": rr.data.weight,
                    "port": rr.data.port,
                    "target": str(rr.data.target),
                }
                for rr in members
            ]
        elif rtype == "TXT":
            # Azure rejects empty strings; an empty tag list becomes an empty value
            value = [{"value": [s for s in rr.data if s]} for rr in members]
        elif rtype == "CNAME":
            value = {key: str(members[0].data)}
        else:
            value = [{key: str(rr.data)} for rr in members]
        return prop, value

    def replace_set(self, name, rtype: str, ttl: int, members: Iterable[DNSRecord]) -> None:
        members = list(members)
        if rtype not in RECORD_PROPERTIES:
            raise DNSError(f"Azure store cannot write {rtype} records")
        url = self._set_url(name, rtype)
        etag = self._etags.get((name, rtype))

        if not members:
            headers = {"If-Match": etag} if etag else {}
            logger.debug(f"Deleting Azure record set {rtype} {name}")
            response = self._request("DELETE", url, headers=headers)
            self._check(response, 200, 202, 204)
            self._etags.pop((name, rtype), None)
            return

        prop, value = self._export_members(rtype, members)
        headers = {"If-Match": etag} if etag else {"If-None-Match": "*"}
        body = {"properties": {"TTL": ttl, prop: value}}
        logger.debug(f"Writing Azure record set {rtype} {name}: {body}")
        response = self._request("PUT", url, json=body, headers=headers)
        self._check(response, 200, 201)
        new_etag = response.json().get("etag")
        if new_etag:
            self._etags[(name, rtype)] = new_etag
