"""
Core library for ddns-sd
"""

from .config import Config, ConfigError
from .factory import BackendFactory
