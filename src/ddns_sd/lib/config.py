"""
Configuration management for ddns-sd
"""
import ipaddress
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

ENV_PREFIX = "DDNSSD_"
DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"
DEFAULT_LABEL_PREFIX = "org.discourse.service"
CONFIG_FILE = Path("~/.config/ddns-sd/config.yaml").expanduser()

HOSTNAME_RE = re.compile(r"\A[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?\Z")
DOMAIN_RE = re.compile(r"\A([A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?\.)*[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?\.?\Z")

TRUE_VALUES = ("yes", "y", "on", "1", "true")
FALSE_VALUES = ("no", "n", "off", "0", "false")

# Settings names that never get printed in full
SECRET_SETTINGS = ("API_TOKEN", "API_KEY", "ACCESS_TOKEN", "DATABASE_URL")


class ConfigError(Exception):
    """Configuration error"""
    pass


def parse_bool(value, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigError(f"Value for {name} ({value!r}) is not a recognised boolean")


def parse_int(value, name: str, minimum: int = 0, maximum: int = 2 ** 31 - 1) -> int:
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Value for {name} ({value!r}) is not an integer")
    if not minimum <= number <= maximum:
        raise ConfigError(f"Value for {name} ({number}) must be between {minimum} and {maximum}")
    return number


@dataclass
class Config:
    """Configuration data"""
    hostname: str
    base_domain: str
    backends: List[str]
    backend_configs: Dict[str, Dict[str, str]] = field(default_factory=dict)
    ipv6_only: bool = False
    record_ttl: int = 60
    host_ip_address: Optional[str] = None
    docker_host: str = DEFAULT_DOCKER_HOST
    label_prefix: str = DEFAULT_LABEL_PREFIX

    # Worker settings
    reconcile_interval: int = 0
    conflict_retries: int = 10

    # Logging
    log_level: str = "INFO"
    debug_loggers: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.validate()

    @classmethod
    def load(cls, env: Optional[Mapping[str, str]] = None, config_file: Optional[Path] = None) -> "Config":
        """
        Load configuration

        Values come from an optional YAML file, overridden by DDNSSD_*
        environment variables (a .env file is read into the environment
        when ``env`` is not given).

        Raises:
            ConfigError: If a value is missing or invalid
        """
        if env is None:
            load_dotenv()
            env = os.environ

        data = {}
        if config_file is None and CONFIG_FILE.exists():
            config_file = CONFIG_FILE
        if config_file is not None:
            config_file = Path(config_file).expanduser()
            if not config_file.exists():
                raise ConfigError(f"Configuration file {config_file} not found")
            with open(config_file) as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Configuration file {config_file} is not valid YAML: {e}")
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file {config_file} must contain a mapping")

        # "backends" is either a list of names or a mapping of name -> settings
        configured = data.pop("backends", None)
        backend_configs = {}
        if isinstance(configured, dict):
            backend_configs = {
                str(name).lower(): {str(k).upper(): str(v) for k, v in (settings or {}).items()}
                for name, settings in configured.items()
            }
            configured = list(configured)

        def get(key: str, default=None):
            env_key = ENV_PREFIX + key.upper()
            if env.get(env_key) not in (None, ""):
                return env[env_key]
            return data.get(key, default)

        backends = get("backend", configured)
        if isinstance(backends, str):
            backends = [b.strip() for b in backends.split(",") if b.strip()]
        backends = [str(b).lower() for b in (backends or [])]

        for backend in backends:
            prefix = f"{ENV_PREFIX}{backend.upper()}_"
            settings = backend_configs.setdefault(backend, {})
            for key, value in env.items():
                if key.startswith(prefix):
                    settings[key[len(prefix):]] = value

        debug_loggers = get("debug_loggers", [])
        if isinstance(debug_loggers, str):
            debug_loggers = [n.strip() for n in debug_loggers.split(",") if n.strip()]

        ipv6_only = parse_bool(get("ipv6_only", False), "DDNSSD_IPV6_ONLY")

        return cls(
            hostname=get("hostname") or "",
            base_domain=get("base_domain") or "",
            backends=backends,
            backend_configs=backend_configs,
            ipv6_only=ipv6_only,
            record_ttl=parse_int(get("record_ttl", 60), "DDNSSD_RECORD_TTL"),
            host_ip_address=get("host_ip_address") or None,
            docker_host=env.get("DOCKER_HOST") or data.get("docker_host") or DEFAULT_DOCKER_HOST,
            label_prefix=get("label_prefix", DEFAULT_LABEL_PREFIX),
            reconcile_interval=parse_int(get("reconcile_interval", 0), "DDNSSD_RECONCILE_INTERVAL"),
            conflict_retries=parse_int(get("conflict_retries", 10), "DDNSSD_CONFLICT_RETRIES", minimum=1),
            log_level=str(get("log_level", "INFO")).upper(),
            debug_loggers=list(debug_loggers),
        )

    def validate(self) -> None:
        if not self.hostname:
            raise ConfigError("DDNSSD_HOSTNAME cannot be empty or missing")
        if not HOSTNAME_RE.match(self.hostname):
            raise ConfigError(f"DDNSSD_HOSTNAME ({self.hostname!r}) is not a valid hostname")

        if not self.base_domain:
            raise ConfigError("DDNSSD_BASE_DOMAIN cannot be empty or missing")
        if not DOMAIN_RE.match(self.base_domain):
            raise ConfigError(f"DDNSSD_BASE_DOMAIN ({self.base_domain!r}) is not a valid domain name")
        self.base_domain = self.base_domain.rstrip(".").lower()

        if not self.backends:
            raise ConfigError("DDNSSD_BACKEND cannot be empty or missing")
        from .factory import BackendFactory
        unknown = [b for b in self.backends if b not in BackendFactory.get_backends()]
        if unknown:
            raise ConfigError(
                f"Unknown backend(s) {', '.join(unknown)}; "
                f"available: {', '.join(sorted(BackendFactory.get_backends()))}"
            )

        if not 0 <= self.record_ttl <= 2 ** 31 - 1:
            raise ConfigError(f"DDNSSD_RECORD_TTL ({self.record_ttl}) is out of range")

        if self.host_ip_address:
            try:
                address = ipaddress.ip_address(self.host_ip_address)
            except ValueError:
                raise ConfigError(f"DDNSSD_HOST_IP_ADDRESS ({self.host_ip_address!r}) is not an IP address")
            wanted = 6 if self.ipv6_only else 4
            if address.version != wanted:
                raise ConfigError(f"DDNSSD_HOST_IP_ADDRESS ({self.host_ip_address}) must be an IPv{wanted} address")

        for name, settings in self.backend_configs.items():
            base = settings.get("BASE_DOMAIN")
            if base and not DOMAIN_RE.match(base):
                raise ConfigError(f"DDNSSD_{name.upper()}_BASE_DOMAIN ({base!r}) is not a valid domain name")

    def backend_config(self, name: str) -> Dict[str, str]:
        return self.backend_configs.get(name, {})

    def backend_base_domain(self, name: str) -> str:
        return (self.backend_config(name).get("BASE_DOMAIN") or self.base_domain).rstrip(".").lower()

    @property
    def host_dns_record(self):
        """The host's own address record, relative to the zone"""
        if not self.host_ip_address:
            return None
        from .dns.record import DNSRecord
        return DNSRecord.build(self.hostname, self.record_ttl, "AAAA" if self.ipv6_only else "A",
                               self.host_ip_address)

    def masked(self) -> Dict[str, object]:
        """Configuration as a dict, with secrets shortened for display"""
        from .utils import mask_secret
        return {
            "hostname": self.hostname,
            "base_domain": self.base_domain,
            "backends": list(self.backends),
            "backend_configs": {
                name: {k: mask_secret(v) if k in SECRET_SETTINGS else v for k, v in settings.items()}
                for name, settings in self.backend_configs.items()
            },
            "ipv6_only": self.ipv6_only,
            "record_ttl": self.record_ttl,
            "host_ip_address": self.host_ip_address,
            "docker_host": self.docker_host,
            "label_prefix": self.label_prefix,
            "reconcile_interval": self.reconcile_interval,
            "conflict_retries": self.conflict_retries,
            "log_level": self.log_level,
            "debug_loggers": list(self.debug_loggers),
        }
