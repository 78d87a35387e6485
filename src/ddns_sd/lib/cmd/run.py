"""
Run command implementation: the long-running sync daemon
"""
import logging
import signal
import threading
from pathlib import Path
from typing import Optional

import typer

from ..config import ConfigError
from ..system import System
from .common import console, load_config

logger = logging.getLogger(__name__)


def run_command(config_file: Optional[Path] = None, keep_records: bool = False, debug: bool = False) -> None:
    """
    Keep DNS records in sync with running containers until signalled

    SIGINT and SIGTERM withdraw this host's records (unless
    ``keep_records``) and stop the worker.
    """
    config = load_config(config_file, debug)

    try:
        system = System(config)
    except ConfigError as e:
        console.print(f"[bold red]Configuration error: {e}")
        raise typer.Exit(code=1)

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}; shutting down")
        # The worker may be holding the queue lock on this same thread
        threading.Thread(
            target=system.shutdown,
            kwargs={"suppress_records": not keep_records},
            name="shutdown",
            daemon=True,
        ).start()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    system.run()
