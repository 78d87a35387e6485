"""
Command implementations for ddns-sd
"""
from .debug import debug_command
from .manage import list_command, reconcile_command
from .run import run_command

__all__ = [
    'debug_command',
    'list_command',
    'reconcile_command',
    'run_command',
]
