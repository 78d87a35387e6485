"""
Backend that only logs what it is asked to do
"""
import logging
from typing import List

from .backend import Backend
from .name import DomainName

logger = logging.getLogger(__name__)


class LogBackend(Backend):
    """Owns no records; every publish and suppress is just logged"""

    def __init__(self, name: str, config):
        # No store behind this backend, so none of the base setup applies
        self.name = name
        self.config = config
        self.base_domain = DomainName.from_text(config.backend_base_domain(name), absolute=True)
        self._shared_records = {}

    def __repr__(self):
        return f"<LogBackend {self.name}>"

    def publish(self, rr) -> None:
        logger.info(f"publish:  {rr}")

    def suppress(self, rr) -> None:
        logger.info(f"suppress: {rr}")

    def suppress_shared_records(self) -> None:
        logger.info("suppress shared records")

    def records_in_zone(self) -> List:
        return []
