"""
Factory for backend instantiation
"""
import logging
from typing import Dict, List, Type

from .config import Config, ConfigError
from .dns.azure import AzureStore
from .dns.backend import Backend
from .dns.base import RecordStore
from .dns.cloudflare_api_handler import CloudflareStore
from .dns.log import LogBackend
from .dns.pdns_sql import PdnsSqlStore
from .dns.route53 import Route53Store

logger = logging.getLogger(__name__)


class BackendFactory:
    """Factory for DNS backends"""

    # Either a RecordStore, wrapped in a Backend, or a Backend subclass used as-is
    _backends = {
        "azure": AzureStore,
        "cloudflare": CloudflareStore,
        "log": LogBackend,
        "pdns_sql": PdnsSqlStore,
        "route53": Route53Store,
    }

    @classmethod
    def create(cls, name: str, config: Config) -> Backend:
        """
        Create backend instance

        Args:
            name: Registered backend name
            config: Configuration object

        Returns:
            Backend instance

        Raises:
            ConfigError: If the backend is unknown or its settings are incomplete
        """
        if name not in cls._backends:
            raise ConfigError(f"Unsupported backend: {name}")
        target = cls._backends[name]
        if issubclass(target, Backend):
            return target(name, config)

        zone = config.backend_base_domain(name)
        store = target(zone, config.backend_config(name))
        logger.debug(f"Created {store.describe()} for backend {name}")
        return Backend(name, config, store)

    @classmethod
    def create_all(cls, config: Config) -> List[Backend]:
        return [cls.create(name, config) for name in config.backends]

    @classmethod
    def get_backends(cls) -> Dict[str, Type]:
        """Get available backends"""
        return cls._backends

    @classmethod
    def register_backend(cls, name: str, backend_class: Type):
        """Register new backend"""
        if not issubclass(backend_class, (RecordStore, Backend)):
            raise TypeError(f"{backend_class} is neither a RecordStore nor a Backend")
        cls._backends[name] = backend_class
