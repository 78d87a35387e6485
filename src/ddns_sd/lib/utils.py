"""
Utility functions for ddns-sd
"""
import logging
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class DebugLoggerFilter(logging.Filter):
    """
    Drop DEBUG records except from the permitted loggers

    A permitted name also lets through its child loggers, so
    ``ddns_sd.lib.dns`` covers every store.
    """

    def __init__(self, permitted: Iterable[str]):
        super().__init__()
        self.permitted = tuple(permitted)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno != logging.DEBUG or not self.permitted:
            return True
        return any(record.name == name or record.name.startswith(name + ".") for name in self.permitted)


def setup_logging(level: str = "INFO", debug: bool = False, permitted: Optional[Iterable[str]] = None) -> None:
    """Configure root logging once for the process"""
    if debug:
        level = "DEBUG"
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)
    if permitted:
        log_filter = DebugLoggerFilter(permitted)
        for handler in logging.getLogger().handlers:
            handler.addFilter(log_filter)


def mask_secret(value: str, visible: int = 4) -> str:
    """Shorten a secret for display"""
    if not value:
        return ""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"
